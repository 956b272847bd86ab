"""Reserve engine - mint, redeem, rollover and queue advancement.

Key Concepts:
- The reserve queue holds bonds in maturity order. The tail is the mintable
  bond; every other queued bond is stale but still backs the perp supply.
- A bond whose maturity falls inside the tolerable window is dequeued from the
  head, and any tranche balance it leaves behind moves to the icebox.
- Redemption walks icebox first, then the queue head to tail, so stale
  inventory unwinds before fresh inventory.
- Every state-changing call is atomic: engine writes are journaled as undo
  steps and the ledger journals its own writes, so a failure restores the
  state as it was before the call at a cost proportional to the call.

Bond lifecycle:
    NOT_ISSUED -> ACTIVE (tail) -> IN_QUEUE_STALE (newer tail) -> ICEBOXED (dequeued)
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .bonds import BondInstance, Tranche, TrancheClass, class_id, classify, seniority_of
from .errors import (
    BondMaturesTooLate,
    BondMaturesTooSoon,
    BondNotConfigured,
    BondOutOfOrder,
    DuplicateItem,
    ExceededMaxMintPerTranche,
    ExceededMaxSupply,
    InsufficientBalance,
    InvalidAmount,
    NothingToMint,
    UnacceptableDepositTranche,
    UnacceptableRollover,
    ZeroYield,
)
from .fees import FeePolicy
from .fixed_point import YIELD_ONE, mul_div_up
from .ledger import InMemoryLedger, TokenLedger
from .pricing import PricingStrategy, UnitPricingStrategy
from .queue import BondQueue
from .yields import YieldTable

if TYPE_CHECKING:
    from ..config.schema import Config

logger = logging.getLogger(__name__)


class BondState(Enum):
    """Membership state of a bond instance."""
    NOT_ISSUED = "not_issued"
    ACTIVE = "active"
    IN_QUEUE_STALE = "in_queue_stale"
    ICEBOXED = "iceboxed"


@dataclass(frozen=True)
class MintResult:
    """Outcome of a deposit."""
    tranche: Tranche
    tranche_amount: int
    mint_amount: int
    fee: int  # + charged to caller, - rebate paid to caller
    protocol_fee: int = 0


@dataclass(frozen=True)
class RedeemedTranche:
    """One leg of a redemption basket."""
    tranche: Tranche
    amount: int  # Tranche units sent to the caller
    perp_amount: int  # Perp burned for this leg


@dataclass(frozen=True)
class BurnResult:
    """Outcome of a redemption; remainder is the unmet part of the request."""
    requested: int
    burn_amount: int
    fee: int
    redemptions: Tuple[RedeemedTranche, ...] = field(default_factory=tuple)
    remainder: int = 0
    protocol_fee: int = 0


@dataclass(frozen=True)
class RolloverResult:
    """Outcome of a rollover. Zero amounts mean nothing was exchanged."""
    tranche_in: Tranche
    tranche_out: Tranche
    tranche_in_amount: int
    tranche_out_amount: int
    perp_value: int
    reward: int  # + paid to caller, - charged to caller

    @property
    def is_noop(self) -> bool:
        return self.tranche_out_amount == 0


class ReserveEngine:
    """Accounting state machine for the perp reserve."""

    def __init__(
        self,
        mint_class: TrancheClass,
        yield_table: YieldTable,
        fee_policy: FeePolicy,
        pricing_strategy: Optional[PricingStrategy] = None,
        ledger: Optional[TokenLedger] = None,
        clock: Optional[Callable[[], int]] = None,
        perp_token: str = "PERP",
        reserve_account: str = "reserve",
        reward_token: Optional[str] = None,
        fee_token: Optional[str] = None,
        protocol_fee_recipient: str = "protocol",
        min_maturity_window: int = 0,
        max_maturity_window: Optional[int] = None,
        maturity_boundary: str = "inclusive",
        burn_mode: str = "drain",
        max_supply: Optional[int] = None,
        max_mint_per_tranche: Optional[int] = None,
    ):
        """
        Initialize reserve engine.

        Args:
            mint_class: Tranche class accepted for new mintable bonds
            yield_table: Per-class, per-seniority conversion rates
            fee_policy: Mint/burn fee and rollover reward parameters
            pricing_strategy: Tranche prices for rollover equivalence (unit prices by default)
            ledger: Token balances (fresh in-memory ledger by default)
            clock: Returns the current unix time in seconds
            perp_token: Ledger symbol of the perpetual token
            reserve_account: Ledger account holding reserve tranches and fees
            reward_token: Token of the rollover reward pool (perp by default)
            fee_token: Token in which mint and burn fees settle (perp by default)
            protocol_fee_recipient: Ledger account receiving the protocol fee
            min_maturity_window: Seconds before maturity at which a bond stops being mintable
            max_maturity_window: Maximum seconds to maturity accepted for a new bond
            maturity_boundary: "inclusive" treats maturity == now + window as stale
            burn_mode: "drain" dequeues every stale head, "single" at most one per call
            max_supply: Optional perp supply cap
            max_mint_per_tranche: Optional cap on perp minted against a single tranche
        """
        if maturity_boundary not in ("inclusive", "exclusive"):
            raise ValueError(f"Unknown maturity_boundary: {maturity_boundary}")
        if burn_mode not in ("drain", "single"):
            raise ValueError(f"Unknown burn_mode: {burn_mode}")

        self.mint_class = mint_class
        self.yield_table = yield_table
        self.fee_policy = fee_policy
        self.pricing_strategy = pricing_strategy or UnitPricingStrategy()
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.clock = clock or (lambda: int(time.time()))
        self.perp_token = perp_token
        self.reserve_account = reserve_account
        self.reward_token = reward_token or perp_token
        self.fee_token = fee_token or perp_token
        self.protocol_fee_recipient = protocol_fee_recipient
        self.maturity_boundary = maturity_boundary
        self.burn_mode = burn_mode
        self.update_tolerable_maturity(min_maturity_window, max_maturity_window)
        self.update_minting_limits(max_supply, max_mint_per_tranche)

        self.yield_table.register(mint_class)

        self._queue: BondQueue[BondInstance] = BondQueue()
        self._bonds: Dict[str, BondInstance] = {}  # queued, by address
        self._retired: Dict[str, BondInstance] = {}  # dequeued, by address
        self._icebox: Dict[str, Tranche] = {}  # insertion ordered
        self._minted_per_tranche: Dict[str, int] = {}
        self._undo: Optional[List[Callable[[], None]]] = None

    @classmethod
    def from_config(
        cls,
        config: "Config",
        ledger: Optional[TokenLedger] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> "ReserveEngine":
        """Build an engine (with its yield table, fee policy and pricing) from a Config."""
        mint_class = config.mint_class.tranche_class()
        yield_table = YieldTable()
        yield_table.set_yields(mint_class, config.mint_class.fixed_yields())
        settings = config.engine
        return cls(
            mint_class=mint_class,
            yield_table=yield_table,
            fee_policy=config.fees.to_policy(),
            pricing_strategy=config.pricing.to_strategy(),
            ledger=ledger,
            clock=clock,
            perp_token=settings.perp_token,
            reserve_account=settings.reserve_account,
            reward_token=settings.reward_token,
            fee_token=settings.fee_token,
            protocol_fee_recipient=settings.protocol_fee_recipient,
            min_maturity_window=settings.min_maturity_window_sec,
            max_maturity_window=settings.max_maturity_window_sec,
            maturity_boundary=settings.maturity_boundary,
            burn_mode=settings.burn_mode,
            max_supply=settings.to_units(settings.max_supply),
            max_mint_per_tranche=settings.to_units(settings.max_mint_per_tranche),
        )

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def update_yields(self, tranche_class: TrancheClass, rates: Sequence[int]) -> None:
        self.yield_table.set_yields(tranche_class, rates)

    def update_tolerable_maturity(self, min_window: int, max_window: Optional[int] = None) -> None:
        """Set the tolerable maturity window bounds (seconds)."""
        if min_window < 0:
            raise ValueError(f"min_window must be non-negative, got {min_window}")
        if max_window is not None and max_window <= min_window:
            raise ValueError(f"max_window {max_window} must exceed min_window {min_window}")
        self.min_maturity_window = min_window
        self.max_maturity_window = max_window

    def update_fee_policy(self, fee_policy: FeePolicy) -> None:
        self.fee_policy = fee_policy

    def update_pricing_strategy(self, pricing_strategy: PricingStrategy) -> None:
        self.pricing_strategy = pricing_strategy

    def update_minting_limits(
        self, max_supply: Optional[int] = None, max_mint_per_tranche: Optional[int] = None
    ) -> None:
        self.max_supply = max_supply
        self.max_mint_per_tranche = max_mint_per_tranche

    def update_mint_class(self, mint_class: TrancheClass) -> None:
        """Accept a different class for future bonds; queued bonds are unaffected."""
        self.mint_class = mint_class
        self.yield_table.register(mint_class)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def now(self) -> int:
        return int(self.clock())

    def head(self) -> Optional[BondInstance]:
        return self._queue.head()

    def tail(self) -> Optional[BondInstance]:
        return self._queue.tail()

    def queued_bonds(self) -> List[BondInstance]:
        return list(self._queue)

    def queue_length(self) -> int:
        return len(self._queue)

    def icebox(self) -> List[Tranche]:
        return list(self._icebox.values())

    def is_stale(self, maturity: int, now: Optional[int] = None) -> bool:
        """True when the maturity falls inside the tolerable window."""
        limit = (self.now() if now is None else now) + self.min_maturity_window
        if self.maturity_boundary == "inclusive":
            return maturity <= limit
        return maturity < limit

    def mint_bond(self) -> Optional[BondInstance]:
        """The tail bond while it is still outside the tolerable window."""
        tail = self._queue.tail()
        if tail is None or self.is_stale(tail.maturity):
            return None
        return tail

    def bond_state(self, bond: BondInstance) -> BondState:
        if self._queue.contains(bond):
            return BondState.ACTIVE if bond == self.mint_bond() else BondState.IN_QUEUE_STALE
        if bond.address in self._retired:
            return BondState.ICEBOXED
        return BondState.NOT_ISSUED

    def reserve_balance(self, tranche: Tranche) -> int:
        return self.ledger.balance_of(tranche.address, self.reserve_account)

    def perp_supply(self) -> int:
        return self.ledger.total_supply(self.perp_token)

    def perp_balance(self, account: str) -> int:
        return self.ledger.balance_of(self.perp_token, account)

    def fee_reserve(self) -> int:
        """Fee token held by the reserve account (collected fees)."""
        return self.ledger.balance_of(self.fee_token, self.reserve_account)

    def reward_pool(self) -> int:
        return self.ledger.balance_of(self.reward_token, self.reserve_account)

    def reserve_tranches(self) -> Iterator[Tranche]:
        """Held tranches in redemption order: icebox first, then queue head to tail."""
        for tranche in list(self._icebox.values()):
            yield tranche
        for bond in self._queue:
            for tranche in bond.tranches:
                yield tranche

    def tranche_yield(self, tranche: Tranche) -> int:
        """Current yield of a tranche held or accepted by the reserve (zero if unknown)."""
        bond = self._bonds.get(tranche.bond_address) or self._retired.get(tranche.bond_address)
        if bond is None or tranche not in bond.tranches:
            return 0
        data = classify(bond)
        return self.yield_table.yield_of(class_id(data), seniority_of(data, tranche.address))

    def perp_value(self, tranche: Tranche, amount: int) -> int:
        """Perp units equivalent to `amount` of the tranche at its yield."""
        return amount * self.tranche_yield(tranche) // YIELD_ONE

    def priced_value(self, tranche: Tranche, amount: int) -> int:
        """Perp value additionally scaled by the strategy price."""
        scale = 10 ** self.pricing_strategy.decimals()
        return self.perp_value(tranche, amount) * self.pricing_strategy.price(tranche) // scale

    def reserve_value(self) -> int:
        return sum(
            self.priced_value(t, self.reserve_balance(t)) for t in self.reserve_tranches()
        )

    def deviation_ratio(self, reserve_value: Optional[int] = None, supply: Optional[int] = None) -> int:
        value = self.reserve_value() if reserve_value is None else reserve_value
        total = self.perp_supply() if supply is None else supply
        return self.fee_policy.compute_deviation_ratio(value, total)

    # ------------------------------------------------------------------
    # Atomicity
    # ------------------------------------------------------------------

    def _on_rollback(self, step: Callable[[], None]) -> None:
        if self._undo is not None:
            self._undo.append(step)

    def _put(self, mapping: dict, key: str, value) -> None:
        """Journaled mapping[key] = value."""
        if key in mapping:
            previous = mapping[key]
            self._on_rollback(lambda: mapping.__setitem__(key, previous))
        else:
            self._on_rollback(lambda: mapping.pop(key, None))
        mapping[key] = value

    def _remove(self, mapping: dict, key: str) -> None:
        """Journaled removal of key from mapping (no-op when absent)."""
        if key in mapping:
            previous = mapping.pop(key)
            self._on_rollback(lambda: mapping.__setitem__(key, previous))

    @contextmanager
    def _atomic(self, operation: str):
        """Run a state transition all-or-nothing."""
        self._undo = []
        checkpoint = self.ledger.checkpoint()
        try:
            yield
        except Exception as exc:
            for step in reversed(self._undo):
                step()
            self.ledger.rollback(checkpoint)
            logger.warning("Rolled back %s: %s", operation, exc)
            raise
        else:
            self.ledger.commit(checkpoint)
        finally:
            self._undo = None

    # ------------------------------------------------------------------
    # Queue advancement
    # ------------------------------------------------------------------

    def advance_mint_bond(self, bond: BondInstance) -> BondInstance:
        """
        Enqueue a new mintable bond at the tail.

        Raises:
            BondNotConfigured: If the bond's class differs from the mint class
            BondMaturesTooSoon: If the bond is already inside the tolerable window
            BondMaturesTooLate: If the bond matures beyond the maximum window
            BondOutOfOrder: If the bond matures before the current tail
            DuplicateItem: If the bond is queued or was already retired
        """
        with self._atomic("advance_mint_bond"):
            now = self.now()
            data = classify(bond)
            if data.tranche_class != self.mint_class:
                raise BondNotConfigured(f"Bond {bond.address} does not match the mint class")
            if self.is_stale(bond.maturity, now):
                raise BondMaturesTooSoon(
                    f"Bond {bond.address} matures at {bond.maturity}, "
                    f"window ends at {now + self.min_maturity_window}"
                )
            if self.max_maturity_window is not None and bond.maturity > now + self.max_maturity_window:
                raise BondMaturesTooLate(
                    f"Bond {bond.address} matures at {bond.maturity}, "
                    f"limit is {now + self.max_maturity_window}"
                )
            tail = self._queue.tail()
            if tail is not None and bond.maturity < tail.maturity:
                raise BondOutOfOrder(
                    f"Bond {bond.address} matures before tail {tail.address}"
                )
            if bond.address in self._bonds:
                raise DuplicateItem(f"Bond {bond.address} is already queued")
            if bond.address in self._retired:
                raise DuplicateItem(f"Bond {bond.address} was already retired")

            self._queue.enqueue(bond)
            self._on_rollback(self._queue.drop_tail)
            self._put(self._bonds, bond.address, bond)
            self.yield_table.register(data.tranche_class)

        logger.info(
            "Advanced mint bond: new_tail=%s maturity=%d previous_tail=%s queue_length=%d",
            bond.address, bond.maturity, tail.address if tail else None, len(self._queue),
        )
        return bond

    def advance_burn_bond(self) -> List[BondInstance]:
        """
        Dequeue stale bonds from the head and icebox their residual tranches.

        In "drain" mode this loops until the head is no longer stale or the
        queue is empty; in "single" mode it dequeues at most one bond.

        Returns:
            Bonds dequeued by this call, oldest first
        """
        dequeued: List[BondInstance] = []
        with self._atomic("advance_burn_bond"):
            now = self.now()
            while len(self._queue):
                head = self._queue.head()
                if not self.is_stale(head.maturity, now):
                    break
                self._queue.dequeue()
                self._on_rollback(lambda item=head: self._queue.push_head(item))
                self._remove(self._bonds, head.address)
                self._put(self._retired, head.address, head)
                for tranche in head.tranches:
                    # retired tranches can no longer be deposited
                    self._remove(self._minted_per_tranche, tranche.address)
                    if self.reserve_balance(tranche) > 0:
                        self._put(self._icebox, tranche.address, tranche)
                        logger.debug("Iceboxed tranche %s", tranche.address)
                dequeued.append(head)
                if self.burn_mode == "single":
                    break

        if dequeued:
            logger.info(
                "Advanced burn bond: dequeued=%s icebox_size=%d queue_length=%d",
                [b.address for b in dequeued], len(self._icebox), len(self._queue),
            )
        return dequeued

    # ------------------------------------------------------------------
    # Fee settlement
    # ------------------------------------------------------------------

    def _collect(self, caller: str, recipient: str, amount: int) -> None:
        """Move `amount` fee token from the caller; non-perp fee tokens need an allowance."""
        if self.fee_token == self.perp_token:
            self.ledger.transfer(self.fee_token, caller, recipient, amount)
        else:
            self.ledger.transfer_from(self.fee_token, self.reserve_account, caller, recipient, amount)

    def _settle_fee(self, caller: str, fee: int, protocol_fee: int = 0) -> None:
        """
        Collect a positive fee from the caller or pay a negative one from the fee reserve.

        A perp rebate the reserve cannot cover is minted, within max_supply. A
        rebate in any other fee token must be covered by the reserve balance.
        The protocol fee is always charged to the caller.
        """
        if fee > 0:
            self._collect(caller, self.reserve_account, fee)
        elif fee < 0:
            rebate = -fee
            if self.fee_token != self.perp_token:
                self.ledger.transfer(self.fee_token, self.reserve_account, caller, rebate)
            else:
                paid = min(rebate, self.fee_reserve())
                if paid > 0:
                    self.ledger.transfer(self.perp_token, self.reserve_account, caller, paid)
                shortfall = rebate - paid
                if shortfall > 0:
                    supply = self.perp_supply()
                    if self.max_supply is not None and supply + shortfall > self.max_supply:
                        raise ExceededMaxSupply(supply + shortfall, self.max_supply)
                    self.ledger.mint(self.perp_token, caller, shortfall)
        if protocol_fee > 0:
            self._collect(caller, self.protocol_fee_recipient, protocol_fee)

    # ------------------------------------------------------------------
    # Mint / redeem / rollover
    # ------------------------------------------------------------------

    def deposit(self, caller: str, tranche: Tranche, amount: int) -> MintResult:
        """
        Deposit tranches of the mintable bond and mint perp.

        Args:
            caller: Ledger account depositing (must have approved the reserve account)
            tranche: Tranche of the current tail bond
            amount: Tranche units to deposit

        Returns:
            MintResult with minted amount and signed fee

        Raises:
            InvalidAmount: If amount <= 0
            UnacceptableDepositTranche: If the tranche is not of the mintable bond
            ZeroYield: If the tranche's seniority has no configured yield
            NothingToMint: If the yield rounds the mint amount down to zero
            ExceededMaxSupply / ExceededMaxMintPerTranche: If a minting limit is hit
        """
        with self._atomic("deposit"):
            if amount <= 0:
                raise InvalidAmount(f"Deposit amount must be positive, got {amount}")
            bond = self.mint_bond()
            if bond is None or tranche not in bond.tranches:
                raise UnacceptableDepositTranche(
                    f"Tranche {tranche.address} is not part of the mintable bond"
                )
            data = classify(bond)
            rate = self.yield_table.yield_of(class_id(data), seniority_of(data, tranche.address))
            if rate == 0:
                raise ZeroYield(f"No yield configured for tranche {tranche.address}")
            mint_amount = amount * rate // YIELD_ONE
            if mint_amount == 0:
                raise NothingToMint(f"Deposit of {amount} mints nothing")

            supply = self.perp_supply()
            if self.max_supply is not None and supply + mint_amount > self.max_supply:
                raise ExceededMaxSupply(supply + mint_amount, self.max_supply)
            minted = self._minted_per_tranche.get(tranche.address, 0) + mint_amount
            if self.max_mint_per_tranche is not None and minted > self.max_mint_per_tranche:
                raise ExceededMaxMintPerTranche(tranche.address, minted, self.max_mint_per_tranche)

            dr_before = dr_after = None
            if self.fee_policy.is_curve_driven:
                value = self.reserve_value()
                dr_before = self.deviation_ratio(value, supply)
                dr_after = self.deviation_ratio(
                    value + self.priced_value(tranche, amount), supply + mint_amount
                )
            fee = self.fee_policy.mint_fee(mint_amount, dr_before, dr_after)
            protocol_fee = self.fee_policy.protocol_fee(mint_amount)

            self.ledger.transfer_from(
                tranche.address, self.reserve_account, caller, self.reserve_account, amount
            )
            self.ledger.mint(self.perp_token, caller, mint_amount)
            self._settle_fee(caller, fee, protocol_fee)
            self._put(self._minted_per_tranche, tranche.address, minted)

        logger.info(
            "Deposit: caller=%s tranche=%s amount=%d minted=%d fee=%d protocol_fee=%d",
            caller, tranche.address, amount, mint_amount, fee, protocol_fee,
        )
        return MintResult(
            tranche=tranche,
            tranche_amount=amount,
            mint_amount=mint_amount,
            fee=fee,
            protocol_fee=protocol_fee,
        )

    def redeem(self, caller: str, requested: int) -> BurnResult:
        """
        Burn up to `requested` perp for a basket of reserve tranches.

        Holdings are consumed icebox first, then queue head to tail. When the
        reserve cannot cover the request, the unmet part is returned as
        `remainder`; sum(perp_amount) + remainder == requested.

        Raises:
            InvalidAmount: If requested <= 0
            InsufficientBalance: If the caller cannot cover the request or the fee
        """
        with self._atomic("redeem"):
            if requested <= 0:
                raise InvalidAmount(f"Redeem amount must be positive, got {requested}")
            balance = self.perp_balance(caller)
            if balance < requested:
                raise InsufficientBalance(
                    f"{self.perp_token}: redeem amount {requested} exceeds balance {balance}"
                )

            remaining = requested
            legs: List[RedeemedTranche] = []
            priced_out = 0
            for tranche in self.reserve_tranches():
                if remaining == 0:
                    break
                held = self.reserve_balance(tranche)
                rate = self.tranche_yield(tranche)
                if held == 0 or rate == 0:
                    continue
                value = held * rate // YIELD_ONE
                if value == 0:
                    continue
                if value <= remaining:
                    out, burned = held, value
                else:
                    out, burned = remaining * YIELD_ONE // rate, remaining
                    if out == 0:
                        continue
                legs.append(RedeemedTranche(tranche=tranche, amount=out, perp_amount=burned))
                priced_out += self.priced_value(tranche, out)
                remaining -= burned

            burn_amount = requested - remaining
            if burn_amount == 0:
                logger.info("Redeem: caller=%s requested=%d reserve empty", caller, requested)
                return BurnResult(requested=requested, burn_amount=0, fee=0, remainder=requested)

            dr_before = dr_after = None
            if self.fee_policy.is_curve_driven:
                supply = self.perp_supply()
                value = self.reserve_value()
                dr_before = self.deviation_ratio(value, supply)
                dr_after = self.deviation_ratio(value - priced_out, supply - burn_amount)
            fee = self.fee_policy.burn_fee(burn_amount, dr_before, dr_after)
            protocol_fee = self.fee_policy.protocol_fee(burn_amount)

            self.ledger.burn(self.perp_token, caller, burn_amount)
            for leg in legs:
                self.ledger.transfer(leg.tranche.address, self.reserve_account, caller, leg.amount)
            self._settle_fee(caller, fee, protocol_fee)
            self._prune_icebox()

        logger.info(
            "Redeem: caller=%s requested=%d burned=%d remainder=%d fee=%d protocol_fee=%d legs=%d",
            caller, requested, burn_amount, remaining, fee, protocol_fee, len(legs),
        )
        return BurnResult(
            requested=requested,
            burn_amount=burn_amount,
            fee=fee,
            redemptions=tuple(legs),
            remainder=remaining,
            protocol_fee=protocol_fee,
        )

    def _is_rollover_source(self, tranche: Tranche, mint_bond: BondInstance) -> bool:
        if tranche.address in self._icebox:
            return self._icebox[tranche.address] == tranche
        bond = self._bonds.get(tranche.bond_address)
        return bond is not None and bond != mint_bond and tranche in bond.tranches

    def rollover(
        self, caller: str, tranche_in: Tranche, tranche_out: Tranche, amount_in: int
    ) -> RolloverResult:
        """
        Swap fresh tranches of the mintable bond for stale reserve tranches.

        amount_out = amount_in * price_in * yield_in / (price_out * yield_out),
        capped at the reserve's tranche_out balance (amount_in is scaled down,
        rounding in the reserve's favour, when the cap binds).

        Raises:
            InvalidAmount: If amount_in <= 0
            UnacceptableRollover: If tranche_in is not of the mintable bond, or
                tranche_out is neither iceboxed nor part of a stale queued bond
        """
        with self._atomic("rollover"):
            if amount_in <= 0:
                raise InvalidAmount(f"Rollover amount must be positive, got {amount_in}")
            mint_bond = self.mint_bond()
            if mint_bond is None or tranche_in not in mint_bond.tranches:
                raise UnacceptableRollover(
                    f"Tranche in {tranche_in.address} is not part of the mintable bond"
                )
            if not self._is_rollover_source(tranche_out, mint_bond):
                raise UnacceptableRollover(
                    f"Tranche out {tranche_out.address} is not a stale reserve tranche"
                )

            unit_in = self.pricing_strategy.price(tranche_in) * self.tranche_yield(tranche_in)
            unit_out = self.pricing_strategy.price(tranche_out) * self.tranche_yield(tranche_out)
            available = self.reserve_balance(tranche_out)
            noop = RolloverResult(tranche_in, tranche_out, 0, 0, 0, 0)
            if unit_in == 0 or unit_out == 0 or available == 0:
                logger.info("Rollover: caller=%s nothing to exchange", caller)
                return noop

            amount_out = amount_in * unit_in // unit_out
            used_in = amount_in
            if amount_out > available:
                amount_out = available
                used_in = mul_div_up(available, unit_out, unit_in)
            if amount_out == 0:
                logger.info("Rollover: caller=%s amount rounds to zero", caller)
                return noop

            priced_in = self.priced_value(tranche_in, used_in)
            priced_out = self.priced_value(tranche_out, amount_out)
            supply = self.perp_supply()
            dr_before = dr_after = None
            if self.fee_policy.is_curve_driven:
                value = self.reserve_value()
                dr_before = self.deviation_ratio(value, supply)
                dr_after = self.deviation_ratio(value + priced_in - priced_out, supply)
            reward = self.fee_policy.rollover_reward(
                priced_in, self.reward_pool(), supply, dr_before, dr_after
            )

            self.ledger.transfer_from(
                tranche_in.address, self.reserve_account, caller, self.reserve_account, used_in
            )
            self.ledger.transfer(tranche_out.address, self.reserve_account, caller, amount_out)
            if reward > 0:
                self.ledger.transfer(self.reward_token, self.reserve_account, caller, reward)
            elif reward < 0:
                self.ledger.transfer(self.reward_token, caller, self.reserve_account, -reward)
            self._prune_icebox()

        logger.info(
            "Rollover: caller=%s in=%s:%d out=%s:%d reward=%d",
            caller, tranche_in.address, used_in, tranche_out.address, amount_out, reward,
        )
        return RolloverResult(
            tranche_in=tranche_in,
            tranche_out=tranche_out,
            tranche_in_amount=used_in,
            tranche_out_amount=amount_out,
            perp_value=priced_in,
            reward=reward,
        )

    def _prune_icebox(self) -> None:
        """Drop icebox entries drained to zero by an explicit redeem or rollover."""
        drained = [a for a, t in self._icebox.items() if self.reserve_balance(t) == 0]
        if not drained:
            return
        previous = dict(self._icebox)
        self._on_rollback(lambda: (self._icebox.clear(), self._icebox.update(previous)))
        for address in drained:
            del self._icebox[address]
