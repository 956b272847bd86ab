"""Validation and sanity checks for the reserve engine."""

from .sanity_checks import SanityChecker, ValidationWarning, validate_engine_state

__all__ = [
    "SanityChecker",
    "ValidationWarning",
    "validate_engine_state"
]
