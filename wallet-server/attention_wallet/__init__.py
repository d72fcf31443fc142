"""Attention wallet token ledger and metered billing engine."""

__version__ = "1.0.0"
