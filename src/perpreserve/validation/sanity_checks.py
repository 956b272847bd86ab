"""Sanity checks and validation for configuration and engine state."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.fixed_point import ONE
from ..engine.reserve import ReserveEngine


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "input", "queue", "collateral"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run sanity checks on configuration and engine state."""

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config

    def check_config_inputs(self) -> List[ValidationWarning]:
        """
        Check configuration inputs for implausible values.

        Returns:
            List of validation warnings
        """
        warnings = []
        fees = self.config.fees
        mint_class = self.config.mint_class

        # Yield above 1.0 mints more perp than tranche units deposited
        for seniority, y in enumerate(mint_class.yields):
            if y > 1.0:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="input",
                    message=f"Yield for seniority {seniority} exceeds 1.0",
                    details=f"Current value: {y}"
                ))

        if all(y == 0 for y in mint_class.yields):
            warnings.append(ValidationWarning(
                severity="error",
                category="input",
                message="No tranche has a nonzero yield; nothing can be minted",
            ))

        # Fee pair margin: mint + burn is the cost of a round trip
        mint_floor = fees.mint_curve.floor if fees.mint_curve else fees.mint_fee_perc
        burn_floor = fees.burn_curve.floor if fees.burn_curve else fees.burn_fee_perc
        if (mint_floor < 0 or burn_floor < 0) and mint_floor + burn_floor < 0.001:
            warnings.append(ValidationWarning(
                severity="warning",
                category="fees",
                message="Round-trip fee margin is below 0.1% while a rebate is configured",
                details=f"Mint floor: {mint_floor*100:.3f}%, Burn floor: {burn_floor*100:.3f}%"
            ))

        # Rollover reward paid out regardless of collateralization
        reward_floor = fees.rollover_curve.floor if fees.rollover_curve else fees.rollover_reward_perc
        if reward_floor > 0.05:
            warnings.append(ValidationWarning(
                severity="warning",
                category="fees",
                message="Rollover reward floor above 5% of the pro-rata pool share",
                details=f"Current value: {reward_floor*100:.1f}%"
            ))

        # Maturity window vs bond cadence
        settings = self.config.engine
        scenario = self.config.scenario
        duration_sec = scenario.bond_duration_days * 86400
        if settings.min_maturity_window_sec >= duration_sec:
            warnings.append(ValidationWarning(
                severity="error",
                category="input",
                message="Bonds are stale on issue: min maturity window >= bond duration",
                details=f"Window: {settings.min_maturity_window_sec}s, Duration: {duration_sec}s"
            ))
        if (
            settings.max_maturity_window_sec is not None
            and settings.max_maturity_window_sec < duration_sec
        ):
            warnings.append(ValidationWarning(
                severity="error",
                category="input",
                message="Bonds are rejected on issue: max maturity window < bond duration",
                details=f"Window: {settings.max_maturity_window_sec}s, Duration: {duration_sec}s"
            ))
        if scenario.bond_issue_frequency_days * 86400 > duration_sec - settings.min_maturity_window_sec:
            warnings.append(ValidationWarning(
                severity="warning",
                category="queue",
                message="Mintable bond goes stale before the next bond is issued",
                details="Deposits will be rejected between bond issues"
            ))

        return warnings

    def check_engine(self, engine: ReserveEngine) -> List[ValidationWarning]:
        """
        Check engine state for broken invariants.

        Args:
            engine: Reserve engine to inspect

        Returns:
            List of validation warnings
        """
        warnings = []
        bonds = engine.queued_bonds()

        # Queue must be in non-decreasing maturity order
        for prev, nxt in zip(bonds, bonds[1:]):
            if nxt.maturity < prev.maturity:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="queue",
                    message=f"Queue out of maturity order at bond {nxt.address}",
                    details=f"{prev.address}@{prev.maturity} precedes {nxt.address}@{nxt.maturity}"
                ))

        # Iceboxed tranches must not belong to queued bonds
        queued = {b.address for b in bonds}
        for tranche in engine.icebox():
            if tranche.bond_address in queued:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="queue",
                    message=f"Iceboxed tranche {tranche.address} belongs to a queued bond",
                ))

        # Stale bonds should have been dequeued
        head = engine.head()
        if head is not None and engine.is_stale(head.maturity):
            warnings.append(ValidationWarning(
                severity="warning",
                category="queue",
                message=f"Head bond {head.address} is inside the tolerable window",
                details="advance_burn_bond() has not been called since it went stale"
            ))

        supply = engine.perp_supply()
        value = engine.reserve_value()
        if supply > 0 and value == 0:
            warnings.append(ValidationWarning(
                severity="error",
                category="collateral",
                message="Perp supply is outstanding with an empty reserve",
                details=f"Supply: {supply}"
            ))
        elif supply > 0:
            dr = engine.deviation_ratio(value, supply)
            if dr < ONE * 95 // 100:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="collateral",
                    message=f"Reserve is under-collateralized (deviation ratio {dr / ONE:.4f})",
                    details=f"Reserve value: {value}, Supply: {supply}"
                ))

        return warnings

    def check_metrics(self, metrics: Dict[str, Any]) -> List[ValidationWarning]:
        """
        Check recorded step metrics for issues.

        Args:
            metrics: Step metrics dictionary

        Returns:
            List of validation warnings
        """
        warnings = []
        for key in ("perp_supply", "reserve_value", "fee_reserve"):
            value = metrics.get(key, 0)
            if value < 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="bounds",
                    message=f"Negative {key} on day {metrics.get('day')}",
                    details=f"Value: {value}"
                ))
        failed = metrics.get("failed_ops", 0)
        attempted = metrics.get("attempted_ops", 0)
        if attempted and failed / attempted > 0.5:
            warnings.append(ValidationWarning(
                severity="warning",
                category="operations",
                message=f"More than half of the operations failed on day {metrics.get('day')}",
                details=f"Failed: {failed} of {attempted}"
            ))
        return warnings


def validate_engine_state(
    config: Config,
    engine: ReserveEngine,
    metrics_over_time: Optional[List[Dict[str, Any]]] = None
) -> List[ValidationWarning]:
    """
    Validate configuration, engine state and (optionally) recorded metrics.

    Returns:
        List of all validation warnings
    """
    checker = SanityChecker(config)
    warnings = []
    warnings.extend(checker.check_config_inputs())
    warnings.extend(checker.check_engine(engine))
    if metrics_over_time:
        warnings.extend(checker.check_metrics(metrics_over_time[-1]))
    return warnings
