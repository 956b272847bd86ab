"""Command-line entry point: run a reserve scenario and export the results."""

import argparse
import logging
import sys
from typing import List, Optional

from .config.loader import load_config
from .reporting.export import export_csv, export_json
from .simulation.runner import ScenarioRunner
from .validation.sanity_checks import validate_engine_state

logger = logging.getLogger("perpreserve")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run a perpetual tranche reserve scenario")
    ap.add_argument("--config", help="YAML overrides layered over the bundled defaults.yaml")
    ap.add_argument("--days", type=int, help="Override the scenario horizon in days")
    ap.add_argument("--seed", type=int, help="Override the random seed")
    ap.add_argument("--csv", help="Write per-step metrics to this CSV file")
    ap.add_argument("--json", help="Write the full result to this JSON file")
    ap.add_argument("--log-level", default="INFO", help="Logging level (default INFO)")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    config = load_config(args.config)
    if args.days is not None:
        config.scenario.horizon_days = args.days

    runner = ScenarioRunner(config)
    result = runner.run(random_seed=args.seed)

    warnings = validate_engine_state(config, runner.engine, result.metrics_over_time)
    for w in warnings:
        log = logger.error if w.severity == "error" else logger.warning
        log("[%s] %s%s", w.category, w.message, f" ({w.details})" if w.details else "")

    if args.csv:
        export_csv(result, args.csv)
        logger.info("Wrote %s", args.csv)
    if args.json:
        export_json(result, args.json)
        logger.info("Wrote %s", args.json)

    final = result.final_metrics
    print(
        f"days={final.get('day')} supply={final.get('perp_supply', 0.0):,.2f} "
        f"reserve_value={final.get('reserve_value', 0.0):,.2f} "
        f"deviation_ratio={final.get('deviation_ratio', 0.0):.4f} "
        f"queue={final.get('queue_length')} icebox={final.get('icebox_size')}"
    )
    return 1 if any(w.severity == "error" for w in warnings) else 0


if __name__ == "__main__":
    sys.exit(main())
