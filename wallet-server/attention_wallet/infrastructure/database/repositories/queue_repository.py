"""SQLAlchemy implementation for the offline transaction queue"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, func, select, update

from attention_wallet.db.models import QueuedTransaction as QueuedTransactionModel
from attention_wallet.domain.common.repository import AsyncRepository


class SqlQueueRepository(AsyncRepository):
    async def append(
        self,
        *,
        local_id: str,
        profile_id: str,
        type: str,
        amount: int,
        description: str,
        proof_ref: str | None,
        app_name: str | None,
        occurred_at: datetime,
    ) -> QueuedTransactionModel:
        async with self.scope() as session:
            next_seq = await session.scalar(select(func.coalesce(func.max(QueuedTransactionModel.seq), 0) + 1))
            row = QueuedTransactionModel(
                local_id=local_id,
                seq=next_seq,
                profile_id=profile_id,
                type=type,
                amount=amount,
                description=description,
                proof_ref=proof_ref,
                app_name=app_name,
                occurred_at=occurred_at,
                synced=False,
                attempts=0,
            )
            session.add(row)
            await session.flush()
            return row

    async def list_entries(self, profile_id: str | None = None, *, unsynced_only: bool = False) -> Sequence[QueuedTransactionModel]:
        stmt = select(QueuedTransactionModel)
        if profile_id is not None:
            stmt = stmt.where(QueuedTransactionModel.profile_id == profile_id)
        if unsynced_only:
            stmt = stmt.where(QueuedTransactionModel.synced.is_(False))
        stmt = stmt.order_by(QueuedTransactionModel.seq)
        async with self.scope() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def count(self, profile_id: str | None = None, *, unsynced_only: bool = False) -> int:
        stmt = select(func.count()).select_from(QueuedTransactionModel)
        if profile_id is not None:
            stmt = stmt.where(QueuedTransactionModel.profile_id == profile_id)
        if unsynced_only:
            stmt = stmt.where(QueuedTransactionModel.synced.is_(False))
        async with self.scope() as session:
            return int(await session.scalar(stmt) or 0)

    async def mark_synced(self, local_id: str) -> None:
        async with self.scope() as session:
            await session.execute(
                update(QueuedTransactionModel)
                .where(QueuedTransactionModel.local_id == local_id)
                .values(synced=True, last_error=None)
            )

    async def remove(self, local_id: str) -> None:
        async with self.scope() as session:
            await session.execute(delete(QueuedTransactionModel).where(QueuedTransactionModel.local_id == local_id))

    async def record_failure(self, local_id: str, error: str) -> None:
        async with self.scope() as session:
            await session.execute(
                update(QueuedTransactionModel)
                .where(QueuedTransactionModel.local_id == local_id)
                .values(attempts=QueuedTransactionModel.attempts + 1, last_error=error[:1000])
            )

    async def purge_synced(self) -> int:
        async with self.scope() as session:
            result = await session.execute(delete(QueuedTransactionModel).where(QueuedTransactionModel.synced.is_(True)))
            return result.rowcount or 0
