"""SQLAlchemy-backed repository implementations."""

from .backup_repository import SqlBackupRepository
from .billing_session_repository import SqlBillingSessionRepository
from .queue_repository import SqlQueueRepository

__all__ = [
    "SqlBackupRepository",
    "SqlBillingSessionRepository",
    "SqlQueueRepository",
]
