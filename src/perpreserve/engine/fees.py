"""Fee policy - mint fee, burn fee and rollover reward.

Key Concepts:
- Percentages are signed fixed-point integers with PERC_DECIMALS (1e8 = 100%).
- Fees: positive = charged to the caller, negative = rebate paid to the caller.
- Rollover reward: positive = paid to the caller, negative = charged.
- Protocol fee: a non-negative percentage charged on top of the mint and burn
  fee and sent to the protocol fee recipient rather than the reserve.
- Fee-pair invariant: if either the mint or the burn fee can go negative, the
  opposite side must overcompensate in the positive direction. Otherwise a
  mint -> burn loop with no net position change drains the fee reserve. The
  invariant is a property of the parameter pair and is checked once, when the
  policy is constructed.
- Curve-driven fees average a PiecewiseCurve over the deviation ratio observed
  before and after the operation, clamped to [floor, ceiling].
"""

from dataclasses import dataclass
from typing import Optional

from .curves import PiecewiseCurve, Range
from .fixed_point import ONE, apply_perc, mul_div


def validate_perc(name: str, perc: int) -> None:
    """Percentages must lie within [-100%, 100%]."""
    if perc < -ONE or perc > ONE:
        raise ValueError(f"{name} must be within [-{ONE}, {ONE}], got {perc}")


def validate_fee_pair(mint_floor: int, burn_floor: int) -> None:
    """
    Enforce negative-fee overcompensation on the worst-case fee pair.

    Raises:
        ValueError: If a negative fee is not strictly outweighed by the opposite fee
    """
    if mint_floor < 0 and burn_floor <= -mint_floor:
        raise ValueError(
            f"Negative mint fee {mint_floor} requires burn fee > {-mint_floor}, got {burn_floor}"
        )
    if burn_floor < 0 and mint_floor <= -burn_floor:
        raise ValueError(
            f"Negative burn fee {burn_floor} requires mint fee > {-burn_floor}, got {mint_floor}"
        )


@dataclass(frozen=True)
class CurveFee:
    """Curve-driven percentage, clamped to [floor, ceiling]."""
    curve: PiecewiseCurve
    floor: int
    ceiling: int

    def __post_init__(self):
        validate_perc("floor", self.floor)
        validate_perc("ceiling", self.ceiling)
        if self.floor > self.ceiling:
            raise ValueError(f"Curve floor {self.floor} exceeds ceiling {self.ceiling}")

    def perc(self, dr_before: int, dr_after: int) -> int:
        avg = self.curve.average(Range.between(dr_before, dr_after))
        return max(self.floor, min(self.ceiling, avg))


class FeePolicy:
    """Checked fee and reward parameters."""

    def __init__(
        self,
        mint_fee_perc: int = 0,
        burn_fee_perc: int = 0,
        rollover_reward_perc: int = 0,
        protocol_fee_perc: int = 0,
        mint_curve: Optional[CurveFee] = None,
        burn_curve: Optional[CurveFee] = None,
        rollover_curve: Optional[CurveFee] = None,
        target_collateralization: int = ONE,
    ):
        """
        Initialize fee policy.

        Args:
            mint_fee_perc: Fixed mint fee percentage (used when no mint curve)
            burn_fee_perc: Fixed burn fee percentage (used when no burn curve)
            rollover_reward_perc: Fixed rollover reward percentage
            protocol_fee_perc: Share of each mint and burn charged for the protocol
            mint_curve: Optional deviation-ratio driven mint fee
            burn_curve: Optional deviation-ratio driven burn fee
            rollover_curve: Optional deviation-ratio driven rollover reward
            target_collateralization: Reserve value / perp supply considered on target

        Raises:
            ValueError: If any percentage is out of bounds or the fee pair can leak value
        """
        validate_perc("mint_fee_perc", mint_fee_perc)
        validate_perc("burn_fee_perc", burn_fee_perc)
        validate_perc("rollover_reward_perc", rollover_reward_perc)
        validate_perc("protocol_fee_perc", protocol_fee_perc)
        if protocol_fee_perc < 0:
            raise ValueError(f"protocol_fee_perc must be non-negative, got {protocol_fee_perc}")
        if target_collateralization <= 0:
            raise ValueError(
                f"target_collateralization must be positive, got {target_collateralization}"
            )

        mint_floor = mint_curve.floor if mint_curve else mint_fee_perc
        burn_floor = burn_curve.floor if burn_curve else burn_fee_perc
        validate_fee_pair(mint_floor, burn_floor)

        self.mint_fee_perc = mint_fee_perc
        self.burn_fee_perc = burn_fee_perc
        self.rollover_reward_perc = rollover_reward_perc
        self.protocol_fee_perc = protocol_fee_perc
        self.mint_curve = mint_curve
        self.burn_curve = burn_curve
        self.rollover_curve = rollover_curve
        self.target_collateralization = target_collateralization

    @property
    def is_curve_driven(self) -> bool:
        return any((self.mint_curve, self.burn_curve, self.rollover_curve))

    def compute_deviation_ratio(self, reserve_value: int, perp_supply: int) -> int:
        """
        How far collateralization is from target, in PERC_DECIMALS.

        dr = (reserve_value / perp_supply) / target_collateralization; 1.0 when supply is zero.
        """
        if perp_supply <= 0:
            return ONE
        collateralization = mul_div(reserve_value, ONE, perp_supply)
        return mul_div(collateralization, ONE, self.target_collateralization)

    def _perc(
        self,
        fixed: int,
        curve: Optional[CurveFee],
        dr_before: Optional[int],
        dr_after: Optional[int],
    ) -> int:
        if curve is None or dr_before is None:
            return fixed
        return curve.perc(dr_before, dr_before if dr_after is None else dr_after)

    def mint_fee_perc_at(self, dr_before: Optional[int] = None, dr_after: Optional[int] = None) -> int:
        return self._perc(self.mint_fee_perc, self.mint_curve, dr_before, dr_after)

    def burn_fee_perc_at(self, dr_before: Optional[int] = None, dr_after: Optional[int] = None) -> int:
        return self._perc(self.burn_fee_perc, self.burn_curve, dr_before, dr_after)

    def rollover_reward_perc_at(
        self, dr_before: Optional[int] = None, dr_after: Optional[int] = None
    ) -> int:
        return self._perc(self.rollover_reward_perc, self.rollover_curve, dr_before, dr_after)

    def mint_fee(self, amount: int, dr_before: Optional[int] = None, dr_after: Optional[int] = None) -> int:
        """Signed fee on a mint of `amount` perp."""
        return apply_perc(self.mint_fee_perc_at(dr_before, dr_after), amount)

    def burn_fee(self, amount: int, dr_before: Optional[int] = None, dr_after: Optional[int] = None) -> int:
        """Signed fee on a burn of `amount` perp."""
        return apply_perc(self.burn_fee_perc_at(dr_before, dr_after), amount)

    def rollover_reward(
        self,
        amount: int,
        pool_balance: int,
        total_supply: int,
        dr_before: Optional[int] = None,
        dr_after: Optional[int] = None,
    ) -> int:
        """
        Signed reward for rolling over `amount` perp worth of tranches.

        The base is the caller's pro-rata share of the reward pool:
        pool_balance * amount / total_supply.
        """
        if total_supply <= 0 or amount <= 0:
            return 0
        share = pool_balance * amount // total_supply
        return apply_perc(self.rollover_reward_perc_at(dr_before, dr_after), share)

    def protocol_fee(self, amount: int) -> int:
        """Protocol's cut on a mint or burn of `amount` perp (never negative)."""
        return apply_perc(self.protocol_fee_perc, amount)
