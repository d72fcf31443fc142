"""Shared abstractions used across domain modules."""

from .clock import ensure_aware, utcnow
from .repository import AsyncRepository

__all__ = ["AsyncRepository", "ensure_aware", "utcnow"]
