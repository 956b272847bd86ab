"""Scenario runner - drive a reserve engine through a simulated bond schedule.

Key Features:
- New bonds issued on a fixed cadence and enqueued as the mintable bond
- Stale bonds dequeued (and iceboxed) at the start of every step
- Users randomly deposit, redeem and roll over with a seeded generator
- Rejected operations are counted, not fatal
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config.schema import Config
from ..engine.bonds import BondInstance, Tranche, create_bond
from ..engine.errors import ReserveError
from ..engine.fixed_point import ONE, TRANCHE_RATIO_GRANULARITY
from ..engine.ledger import InMemoryLedger
from ..engine.reserve import ReserveEngine

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
FRACTION_STEPS = 10_000


@dataclass
class ScenarioResult:
    """Complete scenario result."""
    config: Config
    metrics_over_time: List[Dict[str, Any]]
    final_metrics: Dict[str, Any]
    failed_ops: Dict[str, int] = field(default_factory=dict)

    def to_dataframe(self) -> pd.DataFrame:
        """Per-step metrics as a DataFrame indexed by day."""
        df = pd.DataFrame(self.metrics_over_time)
        if not df.empty:
            df = df.set_index('day')
        return df


class ScenarioRunner:
    """Run a reserve engine against a simulated population of users."""

    def __init__(self, config: Config):
        """
        Initialize scenario runner.

        Args:
            config: Engine and scenario configuration
        """
        self.config = config
        self.scenario = config.scenario
        self._now = self.scenario.start_time
        self.ledger = InMemoryLedger()
        self.engine = ReserveEngine.from_config(config, ledger=self.ledger, clock=lambda: self._now)
        self.users = [f"user-{i}" for i in range(self.scenario.num_users)]
        self._scale = 10 ** config.engine.token_decimals
        self._bonds_issued = 0
        self._failed: Dict[str, int] = {"deposit": 0, "redeem": 0, "rollover": 0, "issue": 0}

    def _tokens(self, units: int) -> float:
        return units / self._scale

    def _fraction_of(self, rng: np.random.Generator, balance: int) -> int:
        """Random share of a balance, at most max_fraction_per_op."""
        steps = int(rng.integers(1, FRACTION_STEPS + 1))
        return balance * steps * int(self.scenario.max_fraction_per_op * FRACTION_STEPS) // (
            FRACTION_STEPS * FRACTION_STEPS
        )

    def issue_bond(self) -> Optional[BondInstance]:
        """Create a new bond, enqueue it and hand its tranches to every user."""
        mint_class = self.config.mint_class
        maturity = self._now + self.scenario.bond_duration_days * SECONDS_PER_DAY
        bond = create_bond(
            f"{mint_class.collateral_token}-BOND-{self._bonds_issued}",
            mint_class.collateral_token,
            mint_class.ratios,
            maturity,
        )
        self._bonds_issued += 1
        try:
            self.engine.advance_mint_bond(bond)
        except ReserveError as exc:
            self._failed["issue"] += 1
            logger.warning("Bond %s rejected: %s", bond.address, exc)
            return None

        collateral = int(self.scenario.collateral_per_bond * self._scale)
        for tranche in bond.tranches:
            amount = collateral * tranche.ratio // TRANCHE_RATIO_GRANULARITY
            for user in self.users:
                self.ledger.mint(tranche.address, user, amount)
        return bond

    def _approve(self, user: str, tranche: Tranche, amount: int) -> None:
        self.ledger.approve(tranche.address, user, self.config.engine.reserve_account, amount)

    def _mintable_tranches(self) -> List[Tranche]:
        bond = self.engine.mint_bond()
        if bond is None:
            return []
        return [t for t in bond.tranches if self.engine.tranche_yield(t) > 0]

    def _try_deposit(self, rng: np.random.Generator, user: str) -> bool:
        held = [(t, self.ledger.balance_of(t.address, user)) for t in self._mintable_tranches()]
        held = [(t, b) for t, b in held if b > 0]
        if not held:
            return False
        tranche, balance = held[int(rng.integers(len(held)))]
        amount = self._fraction_of(rng, balance)
        if amount <= 0:
            return False
        self._approve(user, tranche, amount)
        self.engine.deposit(user, tranche, amount)
        return True

    def _try_redeem(self, rng: np.random.Generator, user: str) -> bool:
        amount = self._fraction_of(rng, self.engine.perp_balance(user))
        if amount <= 0:
            return False
        self.engine.redeem(user, amount)
        return True

    def _try_rollover(self, rng: np.random.Generator, user: str) -> bool:
        mint_bond = self.engine.mint_bond()
        if mint_bond is None:
            return False
        fresh = [
            (t, self.ledger.balance_of(t.address, user)) for t in self._mintable_tranches()
        ]
        fresh = [(t, b) for t, b in fresh if b > 0]
        stale = [
            t for t in self.engine.reserve_tranches()
            if t.bond_address != mint_bond.address
            and self.engine.reserve_balance(t) > 0
            and self.engine.tranche_yield(t) > 0
        ]
        if not fresh or not stale:
            return False
        tranche_in, balance = fresh[int(rng.integers(len(fresh)))]
        tranche_out = stale[int(rng.integers(len(stale)))]
        amount = self._fraction_of(rng, balance)
        if amount <= 0:
            return False
        self._approve(user, tranche_in, amount)
        self.engine.rollover(user, tranche_in, tranche_out, amount)
        return True

    def _record(self, day: int, attempted: int, failed: int, ops: Dict[str, int]) -> Dict[str, Any]:
        supply = self.engine.perp_supply()
        value = self.engine.reserve_value()
        return {
            'day': day,
            'perp_supply': self._tokens(supply),
            'reserve_value': self._tokens(value),
            'deviation_ratio': self.engine.deviation_ratio(value, supply) / ONE,
            'queue_length': self.engine.queue_length(),
            'icebox_size': len(self.engine.icebox()),
            'fee_reserve': self._tokens(self.engine.fee_reserve()),
            'deposits': ops['deposit'],
            'redeems': ops['redeem'],
            'rollovers': ops['rollover'],
            'attempted_ops': attempted,
            'failed_ops': failed,
        }

    def run(self, random_seed: Optional[int] = None) -> ScenarioResult:
        """
        Run the scenario.

        Args:
            random_seed: Override the configured seed

        Returns:
            ScenarioResult with per-step metrics
        """
        seed = self.scenario.random_seed if random_seed is None else random_seed
        rng = np.random.default_rng(seed)
        p_deposit = self.scenario.deposit_probability
        p_redeem = p_deposit + self.scenario.redeem_probability
        p_rollover = p_redeem + self.scenario.rollover_probability
        actions = {
            'deposit': self._try_deposit,
            'redeem': self._try_redeem,
            'rollover': self._try_rollover,
        }

        logger.info(
            "Running scenario: horizon=%dd step=%dd users=%d seed=%d config=%s",
            self.scenario.horizon_days, self.scenario.step_days, len(self.users), seed,
            self.config.compute_hash(),
        )

        metrics_over_time = []
        last_issue: Optional[int] = None
        for day in range(0, self.scenario.horizon_days + 1, self.scenario.step_days):
            self._now = self.scenario.start_time + day * SECONDS_PER_DAY

            if last_issue is None or day - last_issue >= self.scenario.bond_issue_frequency_days:
                self.issue_bond()
                last_issue = day
            self.engine.advance_burn_bond()

            ops = {name: 0 for name in actions}
            attempted = failed = 0
            for user in self.users:
                draw = rng.random()
                if draw < p_deposit:
                    name = 'deposit'
                elif draw < p_redeem:
                    name = 'redeem'
                elif draw < p_rollover:
                    name = 'rollover'
                else:
                    continue
                try:
                    if actions[name](rng, user):
                        attempted += 1
                        ops[name] += 1
                except ReserveError as exc:
                    attempted += 1
                    failed += 1
                    self._failed[name] += 1
                    logger.debug("Day %d: %s by %s rejected: %s", day, name, user, exc)

            metrics_over_time.append(self._record(day, attempted, failed, ops))

        final = dict(metrics_over_time[-1]) if metrics_over_time else {}
        final['bonds_issued'] = self._bonds_issued
        final['config_hash'] = self.config.compute_hash()
        logger.info(
            "Scenario finished: supply=%.2f reserve_value=%.2f deviation_ratio=%.4f failed=%s",
            final.get('perp_supply', 0.0), final.get('reserve_value', 0.0),
            final.get('deviation_ratio', 0.0), self._failed,
        )
        return ScenarioResult(
            config=self.config,
            metrics_over_time=metrics_over_time,
            final_metrics=final,
            failed_ops=dict(self._failed),
        )
