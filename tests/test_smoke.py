"""Smoke tests for configuration, scenario runner, validation and export.

These tests verify basic functionality without deep validation.
Run these first to catch obvious breakage.
"""

import json
import pytest
import sys
import os

import pandas as pd

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from perpreserve.cli import main
from perpreserve.config.loader import config_from_dict, load_config
from perpreserve.config.schema import Config
from perpreserve.engine.fees import FeePolicy
from perpreserve.engine.ledger import InMemoryLedger
from perpreserve.engine.reserve import ReserveEngine
from perpreserve.engine.yields import YieldTable
from perpreserve.reporting.export import export_csv, export_json
from perpreserve.simulation.runner import ScenarioResult, ScenarioRunner
from perpreserve.validation.sanity_checks import SanityChecker, validate_engine_state


def short_config(days: int = 60, users: int = 3) -> Config:
    config = load_config()
    config.scenario.horizon_days = days
    config.scenario.num_users = users
    return config


class TestConfigLoading:
    """Smoke tests for configuration loading."""

    def test_load_default_config(self):
        """Config loads without errors."""
        config = load_config()
        assert config is not None
        assert isinstance(config, Config)

    def test_config_has_required_sections(self):
        """Config contains all expected sections."""
        config = load_config()
        assert hasattr(config, 'engine')
        assert hasattr(config, 'mint_class')
        assert hasattr(config, 'fees')
        assert hasattr(config, 'pricing')
        assert hasattr(config, 'scenario')

    def test_config_hash_is_deterministic(self):
        """Same config produces same hash."""
        config1 = load_config()
        config2 = load_config()
        assert config1.compute_hash() == config2.compute_hash()

    def test_config_round_trip(self):
        """to_dict output rebuilds an equal config."""
        config = load_config()
        rebuilt = config_from_dict(config.to_dict())
        assert rebuilt.compute_hash() == config.compute_hash()

    def test_partial_file_layers_over_defaults(self, tmp_path):
        """A file naming one key keeps every other default."""
        path = tmp_path / "override.yaml"
        path.write_text("engine:\n  burn_mode: single\nfees:\n  protocol_fee_perc: 0.001\n")
        config = load_config(path)
        defaults = load_config()
        assert config.engine.burn_mode == "single"
        assert config.fees.protocol_fee_perc == 0.001
        assert config.engine.min_maturity_window_sec == defaults.engine.min_maturity_window_sec
        assert config.fees.mint_curve == defaults.fees.mint_curve
        assert config.mint_class == defaults.mint_class

    def test_empty_file_is_defaults(self, tmp_path):
        """An empty override file changes nothing."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).compute_hash() == load_config().compute_hash()

    def test_non_mapping_file_rejected(self, tmp_path):
        """The top level must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_ratios_rejected(self):
        """Ratios must sum to 1000."""
        data = load_config().to_dict()
        data['mint_class']['ratios'] = [300, 600]
        with pytest.raises(ValueError):
            config_from_dict(data)

    def test_yield_count_must_match(self):
        """One yield per tranche."""
        data = load_config().to_dict()
        data['mint_class']['yields'] = [1.0]
        with pytest.raises(ValueError):
            config_from_dict(data)

    def test_window_order_enforced(self):
        """max window must exceed min window."""
        data = load_config().to_dict()
        data['engine']['max_maturity_window_sec'] = data['engine']['min_maturity_window_sec']
        with pytest.raises(ValueError):
            config_from_dict(data)


class TestScenarioRunner:
    """Smoke tests for the scenario runner."""

    def test_runs_to_horizon(self):
        """One metrics row per step, day 0 included."""
        result = ScenarioRunner(short_config(days=60)).run()
        assert isinstance(result, ScenarioResult)
        assert len(result.metrics_over_time) == 61
        assert result.final_metrics['day'] == 60
        assert result.final_metrics['bonds_issued'] == 3

    def test_supply_and_reserve_grow(self):
        """Users deposit, so supply and reserve value become positive."""
        result = ScenarioRunner(short_config()).run()
        assert result.final_metrics['perp_supply'] > 0
        assert result.final_metrics['reserve_value'] > 0

    def test_deterministic_with_seed(self):
        """Same seed, same trajectory."""
        r1 = ScenarioRunner(short_config()).run(random_seed=7)
        r2 = ScenarioRunner(short_config()).run(random_seed=7)
        assert r1.metrics_over_time == r2.metrics_over_time

    def test_stale_bonds_leave_queue(self):
        """A long horizon dequeues early bonds."""
        result = ScenarioRunner(short_config(days=120)).run()
        # bonds issued on days 0, 28, 56, 84 and 112; the first two are stale by day 120
        assert result.final_metrics['queue_length'] == 3

    def test_to_dataframe(self):
        """Metrics convert to a day-indexed DataFrame."""
        df = ScenarioRunner(short_config(days=10)).run().to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert df.index.name == 'day'
        assert 'deviation_ratio' in df.columns
        assert len(df) == 11


class TestSanityChecks:
    """Smoke tests for validation."""

    def test_default_scenario_has_no_errors(self):
        """The default configuration runs clean."""
        config = short_config()
        runner = ScenarioRunner(config)
        result = runner.run()
        warnings = validate_engine_state(config, runner.engine, result.metrics_over_time)
        assert not [w for w in warnings if w.severity == "error"]

    def test_window_longer_than_bond(self):
        """A window swallowing the bond duration is flagged."""
        config = load_config()
        config.scenario.bond_duration_days = 5
        warnings = SanityChecker(config).check_config_inputs()
        assert any(w.severity == "error" and w.category == "input" for w in warnings)

    def test_unbacked_supply_flagged(self):
        """Supply with an empty reserve is an error."""
        config = load_config()
        ledger = InMemoryLedger()
        table = YieldTable()
        table.set_yields(config.mint_class.tranche_class(), config.mint_class.fixed_yields())
        engine = ReserveEngine(config.mint_class.tranche_class(), table, FeePolicy(), ledger=ledger)
        ledger.mint("PERP", "somebody", 100)
        warnings = SanityChecker(config).check_engine(engine)
        assert any(w.severity == "error" and w.category == "collateral" for w in warnings)


class TestExport:
    """Smoke tests for CSV/JSON export and the CLI."""

    def test_export_csv(self, tmp_path):
        """CSV has one row per step."""
        result = ScenarioRunner(short_config(days=10)).run()
        path = tmp_path / "metrics.csv"
        export_csv(result, str(path))
        df = pd.read_csv(path)
        assert len(df) == 11
        assert 'perp_supply' in df.columns

    def test_export_json(self, tmp_path):
        """JSON carries the config hash and final metrics."""
        result = ScenarioRunner(short_config(days=10)).run()
        path = tmp_path / "result.json"
        export_json(result, str(path))
        with open(path) as f:
            data = json.load(f)
        assert data['config_hash'] == result.config.compute_hash()
        assert data['final_metrics']['day'] == 10
        assert len(data['metrics_over_time']) == 11

    def test_cli(self, tmp_path):
        """The CLI runs a short scenario and writes both exports."""
        csv_path = tmp_path / "out.csv"
        json_path = tmp_path / "out.json"
        code = main([
            "--days", "10", "--seed", "1",
            "--csv", str(csv_path), "--json", str(json_path),
            "--log-level", "WARNING",
        ])
        assert code == 0
        assert csv_path.exists()
        assert json_path.exists()
