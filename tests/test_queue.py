"""Tests for the reserve queue."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from perpreserve.engine.errors import DuplicateItem, EmptyQueue, IndexOutOfBounds, InvalidItem
from perpreserve.engine.queue import BondQueue


class TestQueueOrdering:
    """FIFO behaviour at both ends."""

    def test_empty_queue(self):
        """Fresh queue has no head, no tail and zero length."""
        q = BondQueue()
        assert len(q) == 0
        assert q.head() is None
        assert q.tail() is None

    def test_enqueue_dequeue_order(self):
        """Items come out in insertion order."""
        q = BondQueue()
        for item in ("a", "b", "c"):
            q.enqueue(item)
        assert q.head() == "a"
        assert q.tail() == "c"
        assert list(q) == ["a", "b", "c"]
        assert q.dequeue() == "a"
        assert q.dequeue() == "b"
        assert q.head() == q.tail() == "c"

    def test_random_access(self):
        """at() counts from the head, even after dequeues."""
        q = BondQueue()
        for item in ("a", "b", "c"):
            q.enqueue(item)
        q.dequeue()
        assert q.at(0) == "b"
        assert q.at(1) == "c"
        with pytest.raises(IndexOutOfBounds):
            q.at(2)
        with pytest.raises(IndexOutOfBounds):
            q.at(-1)

    def test_reset(self):
        """reset() empties the queue and forgets membership."""
        q = BondQueue()
        q.enqueue("a")
        q.reset()
        assert len(q) == 0
        assert not q.contains("a")


class TestQueueMembership:
    """Membership never leaks and duplicates are rejected."""

    def test_never_enqueued_is_not_member(self):
        """Unknown items are not members."""
        q = BondQueue()
        q.enqueue("a")
        assert not q.contains("b")
        assert "b" not in q

    def test_dequeued_is_not_member(self):
        """Dequeued items lose membership."""
        q = BondQueue()
        q.enqueue("a")
        q.enqueue("b")
        q.dequeue()
        assert not q.contains("a")
        assert q.contains("b")

    def test_duplicate_rejected(self):
        """Enqueuing a member twice fails."""
        q = BondQueue()
        q.enqueue("a")
        with pytest.raises(DuplicateItem):
            q.enqueue("a")
        assert len(q) == 1

    def test_reenqueue_after_dequeue(self):
        """An item can come back after leaving the queue."""
        q = BondQueue()
        q.enqueue("a")
        q.dequeue()
        q.enqueue("a")
        assert q.contains("a")
        assert len(q) == 1

    def test_empty_dequeue_fails(self):
        """Dequeuing an empty queue always fails."""
        q = BondQueue()
        with pytest.raises(EmptyQueue):
            q.dequeue()
        q.enqueue("a")
        q.dequeue()
        with pytest.raises(EmptyQueue):
            q.dequeue()

    def test_none_rejected(self):
        """None is not a valid item."""
        q = BondQueue()
        with pytest.raises(InvalidItem):
            q.enqueue(None)

    def test_interleaved_sequence(self):
        """Membership matches a reference list across a mixed sequence."""
        q = BondQueue()
        reference = []
        ops = ["e1", "e2", "d", "e3", "e4", "d", "d", "e5", "e2"]
        for op in ops:
            if op == "d":
                assert q.dequeue() == reference.pop(0)
            else:
                q.enqueue(op[1:])
                reference.append(op[1:])
            assert list(q) == reference
            for item in ("1", "2", "3", "4", "5"):
                assert q.contains(item) == (item in reference)


class TestQueueUndo:
    """drop_tail and push_head revert enqueue and dequeue."""

    def test_drop_tail_reverts_enqueue(self):
        """The last enqueued item comes back out."""
        q = BondQueue()
        q.enqueue("a")
        q.enqueue("b")
        assert q.drop_tail() == "b"
        assert list(q) == ["a"]
        assert not q.contains("b")
        q.enqueue("b")
        assert q.tail() == "b"

    def test_push_head_reverts_dequeue(self):
        """A dequeued item returns to the front."""
        q = BondQueue()
        q.enqueue("a")
        q.enqueue("b")
        item = q.dequeue()
        q.push_head(item)
        assert list(q) == ["a", "b"]
        assert q.head() == "a"
        assert q.at(0) == "a"

    def test_push_head_on_empty_queue(self):
        """Undoing the only dequeue leaves a one-item queue."""
        q = BondQueue()
        q.enqueue("a")
        q.push_head(q.dequeue())
        assert len(q) == 1
        assert q.head() == q.tail() == "a"

    def test_push_head_duplicate(self):
        """Membership still forbids duplicates."""
        q = BondQueue()
        q.enqueue("a")
        with pytest.raises(DuplicateItem):
            q.push_head("a")

    def test_drop_tail_empty(self):
        """Nothing to drop from an empty queue."""
        with pytest.raises(EmptyQueue):
            BondQueue().drop_tail()
