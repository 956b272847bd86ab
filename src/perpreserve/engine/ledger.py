"""Token ledger - balance bookkeeping collaborator.

The engine never stores token balances itself: every tranche held in reserve,
every perp balance and the fee/reward pools live in a TokenLedger under the
engine's reserve account. InMemoryLedger is the reference implementation used
by the scenario runner and the tests.

Rollback is journal based: between checkpoint() and commit()/rollback() the
ledger records the previous value of every key it writes, so undoing a call
costs as much as the call itself, not as much as the whole ledger.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple

from .errors import InsufficientAllowance, InsufficientBalance, InvalidAmount

_MISSING = object()


class TokenLedger(Protocol):
    """Fungible token transfer primitive."""

    def balance_of(self, token: str, account: str) -> int:
        ...

    def total_supply(self, token: str) -> int:
        ...

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        ...

    def allowance(self, token: str, owner: str, spender: str) -> int:
        ...

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        ...

    def transfer_from(self, token: str, spender: str, owner: str, recipient: str, amount: int) -> None:
        ...

    def mint(self, token: str, account: str, amount: int) -> None:
        ...

    def burn(self, token: str, account: str, amount: int) -> None:
        ...

    def checkpoint(self) -> Any:
        ...

    def rollback(self, checkpoint: Any) -> None:
        ...

    def commit(self, checkpoint: Any) -> None:
        ...


class InMemoryLedger:
    """Dictionary-backed ledger with allowance semantics."""

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._supply: Dict[str, int] = {}
        self._journal: Optional[List[Tuple[dict, Any, Any]]] = None

    def _write(self, store: dict, key: Any, value: int) -> None:
        if self._journal is not None:
            self._journal.append((store, key, store.get(key, _MISSING)))
        store[key] = value

    def balance_of(self, token: str, account: str) -> int:
        return self._balances.get((token, account), 0)

    def total_supply(self, token: str) -> int:
        return self._supply.get(token, 0)

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Allowance must be non-negative, got {amount}")
        self._write(self._allowances, (token, owner, spender), amount)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self._allowances.get((token, owner, spender), 0)

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Transfer amount must be non-negative, got {amount}")
        balance = self.balance_of(token, sender)
        if balance < amount:
            raise InsufficientBalance(
                f"{token}: transfer amount {amount} exceeds balance {balance} of {sender}"
            )
        self._write(self._balances, (token, sender), balance - amount)
        self._write(self._balances, (token, recipient), self.balance_of(token, recipient) + amount)

    def transfer_from(self, token: str, spender: str, owner: str, recipient: str, amount: int) -> None:
        allowed = self.allowance(token, owner, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{token}: transfer amount {amount} exceeds allowance {allowed}"
            )
        self.transfer(token, owner, recipient, amount)
        self._write(self._allowances, (token, owner, spender), allowed - amount)

    def mint(self, token: str, account: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Mint amount must be non-negative, got {amount}")
        self._write(self._balances, (token, account), self.balance_of(token, account) + amount)
        self._write(self._supply, token, self.total_supply(token) + amount)

    def burn(self, token: str, account: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Burn amount must be non-negative, got {amount}")
        balance = self.balance_of(token, account)
        if balance < amount:
            raise InsufficientBalance(
                f"{token}: burn amount {amount} exceeds balance {balance} of {account}"
            )
        self._write(self._balances, (token, account), balance - amount)
        self._write(self._supply, token, self.total_supply(token) - amount)

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def checkpoint(self) -> int:
        """Start recording writes; returns a marker for rollback/commit."""
        if self._journal is None:
            self._journal = []
        return len(self._journal)

    def rollback(self, checkpoint: int) -> None:
        """Undo every write made since the checkpoint."""
        journal = self._journal or []
        while len(journal) > checkpoint:
            store, key, previous = journal.pop()
            if previous is _MISSING:
                store.pop(key, None)
            else:
                store[key] = previous
        if checkpoint == 0:
            self._journal = None

    def commit(self, checkpoint: int) -> None:
        """Keep the writes since the checkpoint; stop recording at the outermost one."""
        if checkpoint == 0:
            self._journal = None
