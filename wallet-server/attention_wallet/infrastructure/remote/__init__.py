"""Remote ledger client implementations."""

from .memory import InMemoryLedgerClient

__all__ = ["InMemoryLedgerClient"]
