"""Reserve queue - FIFO of active bond instances with O(1) membership.

Storage is a sparse index -> item dict between two counters plus a companion
membership set. Mint eligibility only targets the tail and maturity eviction
only targets the head, so both ends and membership are O(1).
"""

from typing import Dict, Generic, Hashable, Iterator, Optional, Set, TypeVar

from .errors import DuplicateItem, EmptyQueue, IndexOutOfBounds, InvalidItem

T = TypeVar("T", bound=Hashable)


class BondQueue(Generic[T]):
    """Ordered, duplicate-free queue."""

    def __init__(self):
        self._items: Dict[int, T] = {}
        self._members: Set[T] = set()
        self._first = 0
        self._last = -1
        self.reset()

    def reset(self) -> None:
        """Empty the queue (first index greater than last index)."""
        self._items.clear()
        self._members.clear()
        self._first = 0
        self._last = -1

    def enqueue(self, item: T) -> None:
        """Append item at the tail."""
        if item is None:
            raise InvalidItem("Expected valid item")
        if item in self._members:
            raise DuplicateItem(f"Expected item to NOT be in queue: {item!r}")
        self._last += 1
        self._items[self._last] = item
        self._members.add(item)

    def dequeue(self) -> T:
        """Remove and return the head."""
        if self._last < self._first:
            raise EmptyQueue("Expected non-empty queue")
        item = self._items.pop(self._first)
        self._members.discard(item)
        self._first += 1
        return item

    def head(self) -> Optional[T]:
        """Oldest item, or None when empty."""
        return self._items.get(self._first) if len(self) else None

    def tail(self) -> Optional[T]:
        """Newest item, or None when empty."""
        return self._items.get(self._last) if len(self) else None

    def contains(self, item: T) -> bool:
        return item in self._members

    def at(self, index: int) -> T:
        """Item at position index counted from the head."""
        if index < 0 or index >= len(self):
            raise IndexOutOfBounds(f"Expected index to be in bounds: {index}")
        return self._items[self._first + index]

    def __len__(self) -> int:
        return self._last - self._first + 1

    def __contains__(self, item: object) -> bool:
        return item in self._members

    def __iter__(self) -> Iterator[T]:
        for i in range(self._first, self._last + 1):
            yield self._items[i]

    def drop_tail(self) -> T:
        """Remove and return the tail, reverting the last enqueue."""
        if self._last < self._first:
            raise EmptyQueue("Expected non-empty queue")
        item = self._items.pop(self._last)
        self._members.discard(item)
        self._last -= 1
        return item

    def push_head(self, item: T) -> None:
        """Put item back in front of the head, reverting a dequeue."""
        if item is None:
            raise InvalidItem("Expected valid item")
        if item in self._members:
            raise DuplicateItem(f"Expected item to NOT be in queue: {item!r}")
        self._first -= 1
        self._items[self._first] = item
        self._members.add(item)
