"""Export functionality for CSV and JSON."""

import json

import pandas as pd

from ..simulation.runner import ScenarioResult


def export_csv(result: ScenarioResult, filepath: str):
    """Export per-step scenario metrics to CSV."""
    df = pd.DataFrame(result.metrics_over_time)
    df.to_csv(filepath, index=False)


def export_json(result: ScenarioResult, filepath: str):
    """Export scenario results, with the config and its hash, to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config.compute_hash(),
        'metrics_over_time': result.metrics_over_time,
        'final_metrics': result.final_metrics,
        'failed_ops': result.failed_ops,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
