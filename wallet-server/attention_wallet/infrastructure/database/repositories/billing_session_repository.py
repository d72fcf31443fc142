"""SQLAlchemy implementation for persisted billing sessions"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select

from attention_wallet.db.models import BillingSession
from attention_wallet.domain.common.repository import AsyncRepository


class SqlBillingSessionRepository(AsyncRepository):
    async def get(self, profile_id: str) -> BillingSession | None:
        async with self.scope() as session:
            return await session.get(BillingSession, profile_id)

    async def save(self, *, profile_id: str, app_name: str, started_at: datetime, tokens_charged: int = 0) -> BillingSession:
        async with self.scope() as session:
            record = await session.get(BillingSession, profile_id)
            if record is None:
                record = BillingSession(profile_id=profile_id)
                session.add(record)
            record.app_name = app_name
            record.started_at = started_at
            record.tokens_charged = tokens_charged
            await session.flush()
            return record

    async def update_charged(self, profile_id: str, tokens_charged: int) -> None:
        async with self.scope() as session:
            record = await session.get(BillingSession, profile_id)
            if record is not None:
                record.tokens_charged = tokens_charged

    async def delete(self, profile_id: str) -> None:
        async with self.scope() as session:
            await session.execute(delete(BillingSession).where(BillingSession.profile_id == profile_id))

    async def list_all(self) -> list[BillingSession]:
        async with self.scope() as session:
            result = await session.execute(select(BillingSession))
            return list(result.scalars().all())
