"""Perpetual tranche reserve engine."""

__version__ = "0.1.0"
