"""Integrity checks, corruption recovery and local backups."""

from .models import BackupInfo, BackupRecord, IntegrityReport, RecoveryResult, ValidationResult
from .service import GuardianNotifier, IntegrityService, log_guardian_notification

__all__ = [
    "BackupInfo",
    "BackupRecord",
    "GuardianNotifier",
    "IntegrityReport",
    "IntegrityService",
    "RecoveryResult",
    "ValidationResult",
    "log_guardian_notification",
]
