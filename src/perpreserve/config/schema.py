"""Pydantic schema for configuration validation.

Human-facing values (percentages, yields, prices, supply caps) are decimals in
the config file and converted to fixed-point integers when the engine is built.
"""

import hashlib
import json
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from ..engine.bonds import TrancheClass
from ..engine.curves import Breakpoints, Line, PiecewiseCurve
from ..engine.fees import CurveFee, FeePolicy, validate_fee_pair
from ..engine.fixed_point import (
    PERC_DECIMALS,
    TRANCHE_RATIO_GRANULARITY,
    YIELD_DECIMALS,
    to_fixed,
)
from ..engine.pricing import TablePricingStrategy, UnitPricingStrategy


class EngineSettings(BaseModel):
    """Reserve engine parameters."""
    perp_token: str = Field(default="PERP", description="Ledger symbol of the perpetual token")
    reserve_account: str = Field(default="reserve", description="Ledger account holding the reserve")
    reward_token: Optional[str] = Field(default=None, description="Rollover reward token (perp if unset)")
    fee_token: Optional[str] = Field(default=None, description="Mint/burn fee token (perp if unset)")
    protocol_fee_recipient: str = Field(default="protocol", description="Ledger account receiving the protocol fee")
    token_decimals: int = Field(default=18, ge=0, le=36, description="Decimals of perp and tranche tokens")
    min_maturity_window_sec: int = Field(
        ge=0, default=7 * 86400,
        description="Bonds maturing within this window are stale: not mintable, dequeued"
    )
    max_maturity_window_sec: Optional[int] = Field(
        default=None, gt=0,
        description="Bonds maturing beyond this window are rejected"
    )
    maturity_boundary: Literal["inclusive", "exclusive"] = Field(
        default="inclusive",
        description="inclusive: maturity == now + window counts as stale"
    )
    burn_mode: Literal["drain", "single"] = Field(
        default="drain",
        description="drain: dequeue every stale head per call; single: at most one"
    )
    max_supply: Optional[float] = Field(default=None, gt=0, description="Perp supply cap")
    max_mint_per_tranche: Optional[float] = Field(default=None, gt=0, description="Perp mint cap per tranche")

    @model_validator(mode='after')
    def validate_windows(self):
        """Ensure max window > min window."""
        if (
            self.max_maturity_window_sec is not None
            and self.max_maturity_window_sec <= self.min_maturity_window_sec
        ):
            raise ValueError(
                f"max_maturity_window_sec ({self.max_maturity_window_sec}) must exceed "
                f"min_maturity_window_sec ({self.min_maturity_window_sec})"
            )
        return self

    def to_units(self, value: Optional[float]) -> Optional[int]:
        """Convert a whole-token amount to base units."""
        if value is None:
            return None
        return to_fixed(value, self.token_decimals)


class MintClassConfig(BaseModel):
    """Tranche class accepted for minting, with its yields."""
    collateral_token: str = Field(description="Collateral token backing the bonds")
    ratios: List[int] = Field(min_length=1, description="Tranche ratios, senior first, out of 1000")
    yields: List[float] = Field(description="Perp minted per tranche unit, per seniority")

    @field_validator('ratios')
    @classmethod
    def validate_ratios(cls, v):
        """Ratios must be positive and sum to the granularity."""
        if any(r <= 0 for r in v):
            raise ValueError(f"Tranche ratios must be positive, got {v}")
        if sum(v) != TRANCHE_RATIO_GRANULARITY:
            raise ValueError(f"Tranche ratios must sum to {TRANCHE_RATIO_GRANULARITY}, got {sum(v)}")
        return v

    @model_validator(mode='after')
    def validate_yields(self):
        """One non-negative yield per tranche."""
        if len(self.yields) != len(self.ratios):
            raise ValueError(
                f"Expected {len(self.ratios)} yields, got {len(self.yields)}"
            )
        if any(y < 0 for y in self.yields):
            raise ValueError(f"Yields must be non-negative, got {self.yields}")
        return self

    def tranche_class(self) -> TrancheClass:
        return TrancheClass(self.collateral_token, tuple(self.ratios))

    def fixed_yields(self) -> List[int]:
        return [to_fixed(y, YIELD_DECIMALS) for y in self.yields]


class LineConfig(BaseModel):
    """Line segment through two points (x = deviation ratio, y = percentage)."""
    x1: float
    y1: float
    x2: float
    y2: float

    @model_validator(mode='after')
    def validate_not_vertical(self):
        if self.x1 == self.x2 and self.y1 != self.y2:
            raise ValueError("Line segment cannot be vertical")
        return self

    def to_line(self) -> Line:
        return Line(
            to_fixed(self.x1, PERC_DECIMALS),
            to_fixed(self.y1, PERC_DECIMALS),
            to_fixed(self.x2, PERC_DECIMALS),
            to_fixed(self.y2, PERC_DECIMALS),
        )


class CurveFeeConfig(BaseModel):
    """Three-segment fee curve over the deviation ratio."""
    seg1: LineConfig
    seg2: LineConfig
    seg3: LineConfig
    breakpoints: Tuple[float, float] = Field(description="Lower and upper deviation-ratio breakpoints")
    floor: float = Field(default=-1.0, ge=-1, le=1, description="Minimum percentage")
    ceiling: float = Field(default=1.0, ge=-1, le=1, description="Maximum percentage")

    @model_validator(mode='after')
    def validate_bounds(self):
        if self.breakpoints[0] > self.breakpoints[1]:
            raise ValueError(f"Breakpoints out of order: {self.breakpoints}")
        if self.floor > self.ceiling:
            raise ValueError(f"Curve floor {self.floor} exceeds ceiling {self.ceiling}")
        return self

    def to_curve_fee(self) -> CurveFee:
        curve = PiecewiseCurve(
            seg1=self.seg1.to_line(),
            seg2=self.seg2.to_line(),
            seg3=self.seg3.to_line(),
            breakpoints=Breakpoints(
                to_fixed(self.breakpoints[0], PERC_DECIMALS),
                to_fixed(self.breakpoints[1], PERC_DECIMALS),
            ),
        )
        return CurveFee(
            curve=curve,
            floor=to_fixed(self.floor, PERC_DECIMALS),
            ceiling=to_fixed(self.ceiling, PERC_DECIMALS),
        )


class FeePolicyConfig(BaseModel):
    """Fee and reward parameters (fractions, e.g. 0.01 = 1%)."""
    mint_fee_perc: float = Field(default=0.0, ge=-1, le=1, description="Mint fee")
    burn_fee_perc: float = Field(default=0.0, ge=-1, le=1, description="Burn fee")
    rollover_reward_perc: float = Field(default=0.0, ge=-1, le=1, description="Rollover reward")
    protocol_fee_perc: float = Field(default=0.0, ge=0, le=1, description="Protocol fee on mint and burn")
    mint_curve: Optional[CurveFeeConfig] = None
    burn_curve: Optional[CurveFeeConfig] = None
    rollover_curve: Optional[CurveFeeConfig] = None
    target_collateralization: float = Field(
        default=1.0, gt=0, description="Reserve value / perp supply considered on target"
    )

    @model_validator(mode='after')
    def validate_fee_pair(self):
        """A negative fee on one side must be overcompensated by the other."""
        mint_floor = self.mint_curve.floor if self.mint_curve else self.mint_fee_perc
        burn_floor = self.burn_curve.floor if self.burn_curve else self.burn_fee_perc
        validate_fee_pair(
            to_fixed(mint_floor, PERC_DECIMALS),
            to_fixed(burn_floor, PERC_DECIMALS),
        )
        return self

    def to_policy(self) -> FeePolicy:
        return FeePolicy(
            mint_fee_perc=to_fixed(self.mint_fee_perc, PERC_DECIMALS),
            burn_fee_perc=to_fixed(self.burn_fee_perc, PERC_DECIMALS),
            rollover_reward_perc=to_fixed(self.rollover_reward_perc, PERC_DECIMALS),
            protocol_fee_perc=to_fixed(self.protocol_fee_perc, PERC_DECIMALS),
            mint_curve=self.mint_curve.to_curve_fee() if self.mint_curve else None,
            burn_curve=self.burn_curve.to_curve_fee() if self.burn_curve else None,
            rollover_curve=self.rollover_curve.to_curve_fee() if self.rollover_curve else None,
            target_collateralization=to_fixed(self.target_collateralization, PERC_DECIMALS),
        )


class PricingConfig(BaseModel):
    """Tranche pricing used for rollover equivalence."""
    strategy: Literal["unit", "table"] = Field(default="unit", description="Pricing strategy")
    decimals: int = Field(default=8, ge=0, le=36, description="Price decimals")
    prices: Dict[str, float] = Field(default_factory=dict, description="Per-tranche prices (table only)")
    default_price: float = Field(default=1.0, ge=0, description="Fallback price (table only)")

    def to_strategy(self):
        if self.strategy == "unit":
            return UnitPricingStrategy(decimals=self.decimals)
        return TablePricingStrategy(
            prices={k: to_fixed(v, self.decimals) for k, v in self.prices.items()},
            default_price=to_fixed(self.default_price, self.decimals),
            decimals=self.decimals,
        )


class ScenarioConfig(BaseModel):
    """Scenario runner parameters."""
    start_time: int = Field(default=1_700_000_000, ge=0, description="Unix time of day 0")
    horizon_days: int = Field(gt=0, default=180, description="Scenario length")
    step_days: int = Field(gt=0, default=1, description="Step length in days")
    bond_issue_frequency_days: int = Field(gt=0, default=28, description="Days between new bonds")
    bond_duration_days: int = Field(gt=0, default=84, description="Bond maturity from issue")
    num_users: int = Field(gt=0, default=10, description="Simulated users")
    collateral_per_bond: float = Field(gt=0, default=10_000.0, description="Collateral each user tranches per bond")
    deposit_probability: float = Field(ge=0, le=1, default=0.4)
    redeem_probability: float = Field(ge=0, le=1, default=0.2)
    rollover_probability: float = Field(ge=0, le=1, default=0.3)
    max_fraction_per_op: float = Field(gt=0, le=1, default=0.25, description="Max share of a balance moved per operation")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")

    @model_validator(mode='after')
    def validate_probabilities(self):
        """Operation probabilities must sum to <= 1.0."""
        total = self.deposit_probability + self.redeem_probability + self.rollover_probability
        if total > 1.0 + 1e-9:
            raise ValueError(f"Operation probabilities should sum to <= 1.0, got {total:.3f}")
        return self


class Config(BaseModel):
    """Complete configuration for the reserve engine."""
    engine: EngineSettings = Field(default_factory=EngineSettings)
    mint_class: MintClassConfig
    fees: FeePolicyConfig = Field(default_factory=FeePolicyConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    scenario: ScenarioConfig = Field(default_factory=ScenarioConfig)

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
