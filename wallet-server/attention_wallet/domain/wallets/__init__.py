"""Wallet domain exports"""

from .models import Confidence, OfflineStatus, WalletState
from .service import WalletEngine

__all__ = [
    "Confidence",
    "OfflineStatus",
    "WalletEngine",
    "WalletState",
]
