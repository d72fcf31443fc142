"""Repository protocol for backup snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol, Sequence

from attention_wallet.db.models import BackupSnapshot as BackupSnapshotModel


class BackupRepository(Protocol):
    async def add(
        self,
        *,
        profile_id: str,
        reason: str,
        version: str,
        transaction_count: int,
        payload: str,
        created_at: datetime,
    ) -> BackupSnapshotModel:
        ...

    async def list_snapshots(self, profile_id: str) -> Sequence[BackupSnapshotModel]:
        ...

    async def delete_many(self, snapshot_ids: Iterable[str]) -> int:
        ...
