"""Domain models for integrity checks and backups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from attention_wallet.domain.ledger.exceptions import IntegrityError, Severity
from attention_wallet.domain.ledger.models import Profile, Transaction


@dataclass(slots=True)
class ValidationResult:
    errors: list[IntegrityError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def severity(self) -> Optional[Severity]:
        order = [Severity.HIGH, Severity.MEDIUM, Severity.LOW]
        for level in order:
            if any(error.severity is level for error in self.errors):
                return level
        return None


@dataclass(slots=True)
class IntegrityReport:
    is_valid: bool
    errors: list[IntegrityError]
    warnings: list[str]
    can_recover: bool
    backup_available: bool


@dataclass(slots=True)
class RecoveryResult:
    recovered: bool
    backup_restored: bool
    profile: Optional[Profile]
    transactions: list[Transaction]
    actions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BackupRecord:
    id: str
    profile_id: str
    reason: str
    version: str
    transaction_count: int
    created_at: datetime


@dataclass(slots=True)
class BackupInfo:
    has_backup: bool
    backup_count: int
    last_backup_at: Optional[datetime] = None
