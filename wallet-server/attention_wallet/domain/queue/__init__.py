"""Offline queue domain exports"""

from .models import DrainResult, QueueStatus
from .service import OfflineQueue, generate_offline_id

__all__ = [
    "DrainResult",
    "OfflineQueue",
    "QueueStatus",
    "generate_offline_id",
]
