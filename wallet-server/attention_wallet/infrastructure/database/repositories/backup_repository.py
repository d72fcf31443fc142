"""SQLAlchemy implementation for backup snapshots"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import delete, desc, select

from attention_wallet.db.models import BackupSnapshot
from attention_wallet.domain.common.repository import AsyncRepository


class SqlBackupRepository(AsyncRepository):
    async def add(
        self,
        *,
        profile_id: str,
        reason: str,
        version: str,
        transaction_count: int,
        payload: str,
        created_at: datetime,
    ) -> BackupSnapshot:
        snapshot = BackupSnapshot(
            profile_id=profile_id,
            reason=reason,
            version=version,
            transaction_count=transaction_count,
            payload=payload,
            created_at=created_at,
        )
        async with self.scope() as session:
            session.add(snapshot)
            await session.flush()
        return snapshot

    async def list_snapshots(self, profile_id: str) -> Sequence[BackupSnapshot]:
        stmt = (
            select(BackupSnapshot)
            .where(BackupSnapshot.profile_id == profile_id)
            .order_by(desc(BackupSnapshot.created_at))
        )
        async with self.scope() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def delete_many(self, snapshot_ids: Iterable[str]) -> int:
        ids = list(snapshot_ids)
        if not ids:
            return 0
        async with self.scope() as session:
            result = await session.execute(delete(BackupSnapshot).where(BackupSnapshot.id.in_(ids)))
            return result.rowcount or 0
