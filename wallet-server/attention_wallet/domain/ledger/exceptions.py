"""Ledger domain specific exceptions."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class LedgerError(Exception):
    """Base class for token ledger errors."""


class ValidationError(LedgerError):
    """Raised when caller input is rejected before touching the ledger."""


class InsufficientBalanceError(LedgerError):
    """Raised when a spend would take the balance below zero."""

    def __init__(self, balance: int, required: int) -> None:
        super().__init__(f"余额不足: 当前余额 {balance}, 需要 {required}")
        self.balance = balance
        self.required = required


class PersistenceError(LedgerError):
    """Raised when a transaction could be neither committed nor queued."""


class SyncError(LedgerError):
    """Raised when a queued transaction fails to reach the remote store."""

    def __init__(self, local_id: str, message: str) -> None:
        super().__init__(f"离线交易 {local_id} 同步失败: {message}")
        self.local_id = local_id


class RemoteLedgerError(LedgerError):
    """Raised by remote ledger clients when the backend cannot be reached or refuses a call."""


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class CorruptionKind(str, Enum):
    PROFILE = "profile_corruption"
    TRANSACTION = "transaction_corruption"
    STORAGE = "storage_corruption"


class IntegrityError(LedgerError):
    """Describes one detected violation of the ledger invariants."""

    def __init__(
        self,
        kind: CorruptionKind,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.MEDIUM,
        recoverable: bool = True,
        subject_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.severity = severity
        self.recoverable = recoverable
        self.subject_id = subject_id

    def __repr__(self) -> str:
        return (
            f"IntegrityError(kind={self.kind.value!r}, code={self.code!r}, "
            f"severity={self.severity.value!r}, recoverable={self.recoverable!r})"
        )
