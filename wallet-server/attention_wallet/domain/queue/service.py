"""Durable FIFO queue for transactions created while the backend is unreachable."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attention_wallet.db.models import QueuedTransaction as QueuedTransactionModel
from attention_wallet.domain.common.clock import ensure_aware, utcnow
from attention_wallet.domain.connectivity import ConnectivityMonitor
from attention_wallet.domain.ledger.exceptions import LedgerError, PersistenceError, SyncError
from attention_wallet.domain.ledger.models import QueuedTransaction, Transaction, TransactionType
from attention_wallet.infrastructure.database.repositories.queue_repository import SqlQueueRepository

from .models import DrainResult, QueueStatus
from .repository import QueueRepository

logger = logging.getLogger(__name__)

CommitCallback = Callable[[QueuedTransaction], Awaitable[None]]

# 远端提交时可能出现的可重试错误
RETRYABLE_ERRORS = (LedgerError, OSError, asyncio.TimeoutError)


def generate_offline_id() -> str:
    return f"offline_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class OfflineQueue:
    """Appends pending transactions to local storage and replays them in order.

    A failed entry blocks every later entry of the same profile, so a profile's
    transactions always reach the backend in the order they were created.
    """

    def __init__(
        self,
        repository: QueueRepository,
        connectivity: ConnectivityMonitor,
        *,
        stalled_after_cycles: int = 3,
    ) -> None:
        self._repository = repository
        self._connectivity = connectivity
        self._stalled_after_cycles = stalled_after_cycles
        self._lock = asyncio.Lock()
        self._last_sync_at: Optional[datetime] = None
        self._last_error: dict[str, str] = {}
        self._failed_cycles: dict[str, int] = {}

    @classmethod
    def with_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        connectivity: ConnectivityMonitor,
        **kwargs,
    ) -> "OfflineQueue":
        return cls(SqlQueueRepository(session_factory), connectivity, **kwargs)

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    async def enqueue(self, transaction: Transaction) -> str:
        local_id = generate_offline_id()
        try:
            await self._repository.append(
                local_id=local_id,
                profile_id=transaction.profile_id,
                type=transaction.type.value,
                amount=transaction.amount,
                description=transaction.description,
                proof_ref=transaction.proof_ref,
                app_name=transaction.app_name,
                occurred_at=transaction.timestamp,
            )
        except SQLAlchemyError as exc:
            logger.error("离线交易写入本地队列失败: %s", exc)
            raise PersistenceError("无法写入离线队列") from exc

        transaction.client_ref = local_id
        logger.info(
            "交易已加入离线队列: %s (%s %s)",
            local_id,
            transaction.type.value,
            transaction.amount,
        )
        return local_id

    async def pending(self, profile_id: str) -> list[QueuedTransaction]:
        rows = await self._repository.list_entries(profile_id, unsynced_only=True)
        return [self._to_domain(row) for row in rows]

    async def has_pending(self, profile_id: str) -> bool:
        return await self._repository.count(profile_id, unsynced_only=True) > 0

    async def drain(self, commit: CommitCallback, profile_id: str | None = None) -> DrainResult:
        """Push unsynced entries to the backend in insertion order.

        Returns without doing anything while offline or while another drain is
        already running.
        """
        if not self._connectivity.is_online:
            logger.debug("当前离线，跳过队列同步")
            return DrainResult()
        if self._lock.locked():
            logger.debug("队列同步进行中，忽略重复请求")
            return DrainResult()

        async with self._lock:
            return await self._drain(commit, profile_id)

    async def _drain(self, commit: CommitCallback, profile_id: str | None) -> DrainResult:
        result = DrainResult()
        purged = await self._repository.purge_synced()
        if purged:
            logger.debug("清理已同步的队列条目 %s 条", purged)

        rows = await self._repository.list_entries(profile_id, unsynced_only=True)
        if not rows:
            return result

        logger.info("开始同步离线交易 %s 条", len(rows))
        blocked: set[str] = set()
        for row in rows:
            if row.profile_id in blocked:
                continue
            entry = self._to_domain(row)
            try:
                await commit(entry)
            except RETRYABLE_ERRORS as exc:
                error = SyncError(entry.local_id, str(exc))
                logger.warning("%s", error)
                await self._repository.record_failure(entry.local_id, str(exc))
                self._last_error[row.profile_id] = str(exc)
                blocked.add(row.profile_id)
                result.failed += 1
                continue

            await self._repository.mark_synced(entry.local_id)
            await self._repository.remove(entry.local_id)
            result.success += 1

        for pid in {row.profile_id for row in rows}:
            if pid in blocked:
                cycles = self._failed_cycles.get(pid, 0) + 1
                self._failed_cycles[pid] = cycles
                if cycles >= self._stalled_after_cycles:
                    logger.error(
                        "档案 %s 的离线交易已连续 %s 轮同步失败: %s",
                        pid,
                        cycles,
                        self._last_error.get(pid),
                    )
            else:
                self._failed_cycles.pop(pid, None)
                self._last_error.pop(pid, None)

        self._last_sync_at = utcnow()
        logger.info("离线同步完成: 成功 %s, 失败 %s", result.success, result.failed)
        return result

    async def status(self, profile_id: str) -> QueueStatus:
        queue_length = await self._repository.count(profile_id)
        unsynced_count = await self._repository.count(profile_id, unsynced_only=True)
        return QueueStatus(
            queue_length=queue_length,
            unsynced_count=unsynced_count,
            is_online=self._connectivity.is_online,
            is_syncing=self.is_syncing,
            last_sync_at=self._last_sync_at,
            last_error=self._last_error.get(profile_id),
            stalled=self._failed_cycles.get(profile_id, 0) >= self._stalled_after_cycles,
        )

    @staticmethod
    def _to_domain(row: QueuedTransactionModel) -> QueuedTransaction:
        transaction = Transaction(
            profile_id=row.profile_id,
            type=TransactionType(row.type),
            amount=row.amount,
            description=row.description,
            timestamp=ensure_aware(row.occurred_at),
            proof_ref=row.proof_ref,
            app_name=row.app_name,
            client_ref=row.local_id,
        )
        return QueuedTransaction(
            local_id=row.local_id,
            seq=row.seq,
            transaction=transaction,
            synced=bool(row.synced),
            attempts=row.attempts or 0,
            last_error=row.last_error,
            created_at=row.created_at,
        )
