"""Wallet engine: the device-side view of one profile's token ledger."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from attention_wallet.domain.common.clock import ensure_aware
from attention_wallet.domain.connectivity import ConnectivityMonitor
from attention_wallet.domain.integrity import GuardianNotifier, IntegrityReport, IntegrityService
from attention_wallet.domain.ledger.committer import RemoteCommitter
from attention_wallet.domain.ledger.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    RemoteLedgerError,
    ValidationError,
)
from attention_wallet.domain.ledger.models import (
    Profile,
    ProfileRole,
    QueuedTransaction,
    Transaction,
    TransactionType,
)
from attention_wallet.domain.ledger.remote import RemoteLedgerClient, Subscription
from attention_wallet.domain.queue import DrainResult, OfflineQueue

from .models import Confidence, OfflineStatus, WalletState

logger = logging.getLogger(__name__)

# 远端提交失败时转入离线队列的错误
REMOTE_ERRORS = (RemoteLedgerError, OSError, asyncio.TimeoutError)


class WalletEngine:
    """Keeps a confirmed remote profile plus the transactions still waiting in the queue.

    Every mutation, drain and recovery runs under one ``asyncio.Lock`` so they
    never interleave. Realtime push handlers do not take the lock: a remote
    may deliver pushes while a commit made under the lock is still running.
    """

    def __init__(
        self,
        profile_id: str,
        *,
        remote: RemoteLedgerClient,
        queue: OfflineQueue,
        connectivity: ConnectivityMonitor,
        integrity: IntegrityService,
        notify_guardian: Optional[GuardianNotifier] = None,
        backup_threshold: int = 50,
        recent_limit: int = 100,
        retry_interval: float = 30.0,
        watch_interval: float = 5.0,
        cleanup_interval: float = 24 * 3600,
    ) -> None:
        self.profile_id = profile_id
        self._remote = remote
        self._committer = RemoteCommitter(remote)
        self._queue = queue
        self._connectivity = connectivity
        self._integrity = integrity
        self._notify_guardian = notify_guardian
        self._backup_threshold = backup_threshold
        self._recent_limit = recent_limit
        self._retry_interval = retry_interval
        self._watch_interval = watch_interval
        self._cleanup_interval = cleanup_interval

        self._lock = asyncio.Lock()
        self._confirmed: Optional[Profile] = None
        self._pending: list[Transaction] = []
        self._recent: list[Transaction] = []
        self._subscriptions: list[Subscription] = []
        self._remove_online_listener: Optional[Callable[[], None]] = None
        self._loops: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._awaiting_sync = False
        self._last_unsynced = 0
        self._started = False
        # 启动时远端不可达，当前档案来自本地备份或空档案
        self._needs_refresh = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def balance(self) -> int:
        profile = self._require_profile()
        return profile.balance + sum(tx.signed_amount for tx in self._pending)

    @property
    def state(self) -> WalletState:
        profile = self._require_profile()
        earned = profile.total_earned
        spent = profile.total_spent
        refunded = profile.total_refunded
        for tx in self._pending:
            if tx.type is TransactionType.EARN:
                earned += tx.amount
            elif tx.type is TransactionType.SPEND:
                spent += tx.amount
            else:
                refunded += tx.amount
        return WalletState(
            profile_id=self.profile_id,
            balance=self.balance,
            total_earned=earned,
            total_spent=spent,
            total_refunded=refunded,
            confidence=self._confidence(),
            pending_count=len(self._pending),
            is_online=self._connectivity.is_online,
            updated_at=profile.updated_at,
        )

    @property
    def needs_refresh(self) -> bool:
        return self._needs_refresh

    def _confidence(self) -> Confidence:
        if self._pending or self._needs_refresh:
            return Confidence.OPTIMISTIC
        return Confidence.CONFIRMED

    @property
    def recent_transactions(self) -> list[Transaction]:
        return list(self._recent)

    @property
    def pending_transactions(self) -> list[Transaction]:
        return list(self._pending)

    def _require_profile(self) -> Profile:
        if self._confirmed is None:
            raise ValidationError("钱包尚未加载")
        return self._confirmed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> WalletState:
        if self._started:
            return self.state

        async with self._lock:
            await self._load_locked()
            self._subscriptions = [
                self._remote.subscribe_to_profile(self.profile_id, self._on_profile_push),
                self._remote.subscribe_to_transactions(self.profile_id, self._on_transaction_push),
            ]
            self._remove_online_listener = self._connectivity.on_online(self._handle_online)
            await self._check_and_recover_locked()
            self._last_unsynced = len(self._pending)

        if await self._integrity.needs_routine_backup(self.profile_id):
            self._schedule_backup("routine")
        await self._integrity.cleanup_old_backups(self.profile_id)

        self._loops = [
            asyncio.create_task(self._periodic(self._retry_interval, self._retry_sync, "离线重试")),
            asyncio.create_task(self._periodic(self._watch_interval, self.check_sync_completion, "同步监视")),
            asyncio.create_task(self._periodic(self._cleanup_interval, self._maintain_backups, "备份维护")),
        ]
        self._started = True
        logger.info("钱包已启动: profile=%s balance=%s", self.profile_id, self.balance)
        return self.state

    async def stop(self) -> None:
        for task in self._loops:
            task.cancel()
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        if self._remove_online_listener is not None:
            self._remove_online_listener()
            self._remove_online_listener = None
        await self.wait_for_background()
        self._started = False
        logger.info("钱包已停止: profile=%s", self.profile_id)

    async def _load_locked(self) -> None:
        try:
            profile = await self._remote.get_profile(self.profile_id)
            recent = await self._remote.get_transactions(self.profile_id, self._recent_limit)
            self._needs_refresh = False
        except REMOTE_ERRORS as exc:
            self._needs_refresh = True
            logger.warning("加载远端档案失败，使用本地备份: %s", exc)
            restored = await self._integrity.restore_from_backup(self.profile_id)
            if restored is not None:
                profile, recent = restored
            else:
                profile = Profile(id=self.profile_id, role=ProfileRole.WARD.value)
                recent = []
        if profile is None:
            raise ValidationError(f"档案不存在: {self.profile_id}")

        self._confirmed = profile
        self._recent = list(recent)
        self._pending = [entry.transaction for entry in await self._queue.pending(self.profile_id)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def earn(self, amount: int, description: str, proof_ref: Optional[str] = None) -> Transaction:
        self._validate(amount, description)
        transaction = Transaction.new(
            self.profile_id, TransactionType.EARN, amount, description.strip(), proof_ref=proof_ref
        )
        return await self._submit(transaction)

    async def spend(self, amount: int, description: str, app_name: Optional[str] = None) -> Transaction:
        self._validate(amount, description)
        transaction = Transaction.new(
            self.profile_id, TransactionType.SPEND, amount, description.strip(), app_name=app_name
        )
        return await self._submit(transaction)

    async def refund(self, amount: int, description: str) -> Transaction:
        self._validate(amount, description)
        transaction = Transaction.new(self.profile_id, TransactionType.REFUND, amount, description.strip())
        return await self._submit(transaction)

    @staticmethod
    def _validate(amount: int, description: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(f"金额必须是正整数: {amount!r}")
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("交易描述不能为空")

    async def _submit(self, transaction: Transaction) -> Transaction:
        self._require_profile()
        async with self._lock:
            if transaction.type is TransactionType.SPEND and self.balance < transaction.amount:
                raise InsufficientBalanceError(self.balance, transaction.amount)
            result = await self._commit_or_enqueue(transaction)

        if transaction.amount >= self._backup_threshold:
            self._schedule_backup(f"large_{transaction.type.value}")
        return result

    async def _commit_or_enqueue(self, transaction: Transaction) -> Transaction:
        if self._connectivity.is_online:
            if await self._queue.has_pending(self.profile_id):
                await self._drain_locked()
            # 队列未清空时必须排在已有条目之后，保证先后顺序
            if not await self._queue.has_pending(self.profile_id):
                try:
                    created, profile = await self._committer.commit(transaction)
                except InsufficientBalanceError:
                    raise
                except REMOTE_ERRORS as exc:
                    logger.warning("远端提交失败，转入离线队列: %s", exc)
                else:
                    self._accept_profile(profile)
                    self._remember(created)
                    return created

        await self._queue.enqueue(transaction)
        self._pending.append(transaction)
        logger.info(
            "交易已乐观记账: %s %s, 待同步 %s 条",
            transaction.type.value,
            transaction.amount,
            len(self._pending),
        )
        return transaction

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------
    async def refresh_balance(self) -> WalletState:
        async with self._lock:
            await self._refresh_locked()
        return self.state

    async def _refresh_locked(self) -> None:
        profile = await self._remote.get_profile(self.profile_id)
        if profile is None:
            raise RemoteLedgerError(f"远端档案不存在: {self.profile_id}")
        recent = await self._remote.get_transactions(self.profile_id, self._recent_limit)
        # 以服务端数据为准
        self._confirmed = profile
        self._recent = list(recent)
        self._pending = [entry.transaction for entry in await self._queue.pending(self.profile_id)]
        self._needs_refresh = False
        logger.info("已刷新余额: profile=%s balance=%s", self.profile_id, profile.balance)

    async def sync_now(self) -> DrainResult:
        async with self._lock:
            return await self._drain_locked()

    async def _drain_locked(self) -> DrainResult:
        result = await self._queue.drain(self._commit_entry, self.profile_id)
        self._pending = [entry.transaction for entry in await self._queue.pending(self.profile_id)]
        return result

    async def _commit_entry(self, entry: QueuedTransaction) -> None:
        created, profile = await self._committer.commit(entry.transaction)
        self._pending = [tx for tx in self._pending if tx.client_ref != entry.local_id]
        self._accept_profile(profile)
        self._remember(created)

    async def offline_status(self) -> OfflineStatus:
        status = await self._queue.status(self.profile_id)
        backups = await self._integrity.backup_info(self.profile_id)
        return OfflineStatus(
            is_online=status.is_online,
            pending_count=status.unsynced_count,
            queue_length=status.queue_length,
            is_syncing=status.is_syncing,
            stalled=status.stalled,
            has_backup=backups.has_backup,
            backup_count=backups.backup_count,
            last_sync_at=status.last_sync_at,
            last_error=status.last_error,
            last_backup_at=backups.last_backup_at,
        )

    async def check_sync_completion(self) -> bool:
        """Refresh from the server once the queue empties after coming back online."""
        count = (await self._queue.status(self.profile_id)).unsynced_count
        previous = self._last_unsynced
        self._last_unsynced = count
        if count:
            return False
        if self._awaiting_sync and previous:
            self._awaiting_sync = False
            logger.info("离线交易已全部同步，刷新余额")
            try:
                await self.refresh_balance()
            except REMOTE_ERRORS as exc:
                logger.warning("同步完成后刷新余额失败: %s", exc)
                return False
            return True
        self._awaiting_sync = False
        return False

    async def _handle_online(self) -> None:
        self._awaiting_sync = True
        self._last_unsynced = (await self._queue.status(self.profile_id)).unsynced_count
        await self.sync_now()
        await self.check_sync_completion()
        if self._needs_refresh:
            try:
                await self.refresh_balance()
            except REMOTE_ERRORS as exc:
                logger.warning("恢复联网后加载远端档案失败: %s", exc)

    async def _retry_sync(self) -> None:
        if not self._connectivity.is_online:
            return
        if await self._queue.has_pending(self.profile_id):
            await self.sync_now()
        if self._needs_refresh:
            await self.refresh_balance()

    # ------------------------------------------------------------------
    # Realtime pushes
    # ------------------------------------------------------------------
    async def _on_profile_push(self, profile: Profile) -> None:
        self._accept_profile(profile)

    async def _on_transaction_push(self, transaction: Transaction) -> None:
        self._remember(transaction)

    def _accept_profile(self, profile: Profile) -> bool:
        current = self._confirmed
        if (
            current is not None
            and current.updated_at is not None
            and profile.updated_at is not None
            and ensure_aware(profile.updated_at) < ensure_aware(current.updated_at)
        ):
            logger.debug("忽略过期的档案推送: %s < %s", profile.updated_at, current.updated_at)
            return False
        self._confirmed = profile
        return True

    def _remember(self, transaction: Transaction) -> None:
        if transaction.id and any(tx.id == transaction.id for tx in self._recent):
            return
        self._recent.insert(0, transaction)
        del self._recent[self._recent_limit:]

    # ------------------------------------------------------------------
    # Integrity and backups
    # ------------------------------------------------------------------
    async def run_integrity_check(self) -> IntegrityReport:
        async with self._lock:
            return await self._check_and_recover_locked()

    async def _check_and_recover_locked(self) -> IntegrityReport:
        report = await self._integrity.perform_integrity_check(self._confirmed, self._recent)
        for warning in report.warnings:
            logger.warning("完整性检查警告: %s", warning)
        if report.is_valid:
            return report

        # 先保存损坏前的数据，便于事后排查
        await self._integrity.create_backup(self._confirmed, self._recent, "pre_recovery")
        result = await self._integrity.handle_corruption(
            self._confirmed, self._recent, report.errors, self._notify_guardian
        )
        if not result.recovered or result.profile is None:
            return report

        self._confirmed = result.profile
        self._recent = list(result.transactions)
        if self._connectivity.is_online:
            try:
                self._confirmed = await self._remote.update_profile(
                    self.profile_id, result.profile.ledger_fields()
                )
            except REMOTE_ERRORS as exc:
                logger.warning("修复后的账本推送到远端失败: %s", exc)
        return report

    def _schedule_backup(self, reason: str) -> None:
        # 未经远端确认的档案不能作为备份
        if self._confirmed is None or self._needs_refresh:
            return
        task = asyncio.create_task(
            self._integrity.create_backup(replace(self._confirmed), list(self._recent), reason)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _maintain_backups(self) -> None:
        if await self._integrity.needs_routine_backup(self.profile_id):
            self._schedule_backup("routine")
        await self._integrity.cleanup_old_backups(self.profile_id)

    async def _periodic(self, interval: float, action: Callable[[], Awaitable[object]], name: str) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    await action()
                except (LedgerError, SQLAlchemyError, OSError) as exc:
                    logger.warning("%s 执行失败: %s", name, exc)
        except asyncio.CancelledError:
            logger.debug("钱包 %s 的%s任务已取消", self.profile_id, name)
