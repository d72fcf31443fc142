"""Ledger domain exports"""

from .committer import RemoteCommitter
from .exceptions import (
    CorruptionKind,
    InsufficientBalanceError,
    IntegrityError,
    LedgerError,
    PersistenceError,
    RemoteLedgerError,
    Severity,
    SyncError,
    ValidationError,
)
from .models import Profile, ProfileRole, QueuedTransaction, Transaction, TransactionType
from .remote import RemoteLedgerClient, Subscription

__all__ = [
    "CorruptionKind",
    "InsufficientBalanceError",
    "IntegrityError",
    "LedgerError",
    "PersistenceError",
    "Profile",
    "ProfileRole",
    "QueuedTransaction",
    "RemoteCommitter",
    "RemoteLedgerClient",
    "RemoteLedgerError",
    "Severity",
    "Subscription",
    "SyncError",
    "Transaction",
    "TransactionType",
    "ValidationError",
]
