"""Domain models describing a wallet as seen by the device."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Confidence(str, Enum):
    CONFIRMED = "confirmed"
    OPTIMISTIC = "optimistic"


@dataclass(slots=True)
class WalletState:
    profile_id: str
    balance: int
    total_earned: int
    total_spent: int
    total_refunded: int
    confidence: Confidence
    pending_count: int
    is_online: bool
    updated_at: Optional[datetime] = None


@dataclass(slots=True)
class OfflineStatus:
    is_online: bool
    pending_count: int
    queue_length: int
    is_syncing: bool
    stalled: bool
    has_backup: bool
    backup_count: int
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_backup_at: Optional[datetime] = None
