"""Metered billing of foreground app usage."""

from .models import AppUsageSession, BillingState
from .timer import MeteredBillingTimer, StopCallback

__all__ = [
    "AppUsageSession",
    "BillingState",
    "MeteredBillingTimer",
    "StopCallback",
]
