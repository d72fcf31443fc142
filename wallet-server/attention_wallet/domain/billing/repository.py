"""Repository protocol for persisted billing sessions."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from attention_wallet.db.models import BillingSession as BillingSessionModel


class BillingSessionRepository(Protocol):
    async def get(self, profile_id: str) -> BillingSessionModel | None:
        ...

    async def save(
        self,
        *,
        profile_id: str,
        app_name: str,
        started_at: datetime,
        tokens_charged: int = 0,
    ) -> BillingSessionModel:
        ...

    async def update_charged(self, profile_id: str, tokens_charged: int) -> None:
        ...

    async def delete(self, profile_id: str) -> None:
        ...

    async def list_all(self) -> list[BillingSessionModel]:
        ...
