"""Scenario simulation for the reserve engine."""

from .runner import ScenarioResult, ScenarioRunner

__all__ = [
    "ScenarioResult",
    "ScenarioRunner",
]
