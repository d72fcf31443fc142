"""Domain models for metered app usage."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BillingState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class AppUsageSession:
    profile_id: str
    app_name: str
    start_time: datetime
    is_active: bool = True
    tokens_spent: int = 0
    tokens_charged: int = 0
