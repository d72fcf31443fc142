"""Repository protocol for the offline transaction queue."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from attention_wallet.db.models import QueuedTransaction as QueuedTransactionModel


class QueueRepository(Protocol):
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
        ...

    async def list_entries(self, profile_id: str | None = None, *, unsynced_only: bool = False) -> Sequence[QueuedTransactionModel]:
        ...

    async def count(self, profile_id: str | None = None, *, unsynced_only: bool = False) -> int:
        ...

    async def mark_synced(self, local_id: str) -> None:
        ...

    async def remove(self, local_id: str) -> None:
        ...

    async def record_failure(self, local_id: str, error: str) -> None:
        ...

    async def purge_synced(self) -> int:
        ...
