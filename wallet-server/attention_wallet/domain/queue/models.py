"""Domain models for offline queue reporting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class DrainResult:
    success: int = 0
    failed: int = 0


@dataclass(slots=True)
class QueueStatus:
    queue_length: int
    unsynced_count: int
    is_online: bool
    is_syncing: bool
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    stalled: bool = False
