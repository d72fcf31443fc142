"""Simple dependency container for wiring core services."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from attention_wallet.core.config import Settings, get_settings
from attention_wallet.domain.billing import MeteredBillingTimer, StopCallback
from attention_wallet.domain.connectivity import ConnectivityMonitor, tcp_probe
from attention_wallet.domain.integrity import GuardianNotifier, IntegrityService, log_guardian_notification
from attention_wallet.domain.ledger.exceptions import LedgerError
from attention_wallet.domain.ledger.remote import RemoteLedgerClient
from attention_wallet.domain.queue import OfflineQueue
from attention_wallet.domain.quests import QuestService, QuestVerifier
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.infrastructure.database.repositories import SqlBillingSessionRepository
from attention_wallet.infrastructure.database.session import get_engine, get_session_factory, init_db
from attention_wallet.infrastructure.remote import InMemoryLedgerClient

logger = logging.getLogger(__name__)


def build_remote(settings: Settings) -> RemoteLedgerClient:
    if settings.remote.backend == "memory":
        return InMemoryLedgerClient(auto_create=True)
    raise ValueError(f"不支持的远端账本类型: {settings.remote.backend}")


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    remote: RemoteLedgerClient
    connectivity: ConnectivityMonitor
    queue: OfflineQueue
    integrity: IntegrityService
    engine: Optional[AsyncEngine] = None
    notify_guardian: GuardianNotifier = log_guardian_notification
    on_billing_stop: Optional[StopCallback] = None
    quest_verifier: Optional[QuestVerifier] = None
    run_billing_loop: bool = True
    wallets: dict[str, WalletEngine] = field(default_factory=dict)
    timers: dict[str, MeteredBillingTimer] = field(default_factory=dict)
    quests: dict[str, QuestService] = field(default_factory=dict)
    probe_task: Optional[asyncio.Task] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        engine: Optional[AsyncEngine] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        remote: Optional[RemoteLedgerClient] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        **kwargs,
    ) -> "ApplicationContainer":
        if session_factory is None:
            engine = engine or get_engine()
            session_factory = get_session_factory()

        if connectivity is None:
            probe = None
            if settings.connectivity.probe_host:
                probe = tcp_probe(
                    settings.connectivity.probe_host,
                    settings.connectivity.probe_port,
                    settings.connectivity.timeout,
                )
            connectivity = ConnectivityMonitor(probe=probe, poll_interval=settings.connectivity.poll_interval)

        queue = OfflineQueue.with_session_factory(
            session_factory,
            connectivity,
            stalled_after_cycles=settings.sync.stalled_after_cycles,
        )
        integrity = IntegrityService.with_session_factory(
            session_factory,
            max_backups=settings.backup.max_backups,
            retention_days=settings.backup.retention_days,
            routine_interval_hours=settings.backup.routine_interval_hours,
            transactions_per_backup=settings.backup.transactions_per_backup,
            version=settings.backup.version,
        )
        return cls(
            settings=settings,
            session_factory=session_factory,
            remote=remote or build_remote(settings),
            connectivity=connectivity,
            queue=queue,
            integrity=integrity,
            engine=engine,
            **kwargs,
        )

    async def startup(self) -> None:
        """Create tables, start the connectivity probe and settle interrupted billing sessions."""
        if self.engine is not None:
            await init_db(self.engine)
        if self.settings.connectivity.probe_host:
            self.probe_task = asyncio.create_task(self.connectivity.run())

        sessions = SqlBillingSessionRepository(self.session_factory)
        for record in await sessions.list_all():
            await self.timer_for(record.profile_id)

    async def shutdown(self) -> None:
        for profile_id, timer in self.timers.items():
            try:
                await timer.stop()
            except LedgerError as exc:
                logger.error("关闭时结算计费会话失败: profile=%s %s", profile_id, exc)
            await timer.shutdown()
        for wallet in self.wallets.values():
            await wallet.stop()
        if self.probe_task is not None:
            self.probe_task.cancel()
            await asyncio.gather(self.probe_task, return_exceptions=True)
            self.probe_task = None
        self.timers.clear()
        self.quests.clear()
        self.wallets.clear()
        if self.engine is not None:
            await self.engine.dispose()

    async def wallet_for(self, profile_id: str) -> WalletEngine:
        wallet = self.wallets.get(profile_id)
        if wallet is not None:
            return wallet

        async with self.lock:
            if profile_id in self.wallets:
                return self.wallets[profile_id]
            wallet = await self._start_wallet(profile_id)
            self.wallets[profile_id] = wallet
        return wallet

    async def _start_wallet(self, profile_id: str) -> WalletEngine:
        wallet = WalletEngine(
            profile_id,
            remote=self.remote,
            queue=self.queue,
            connectivity=self.connectivity,
            integrity=self.integrity,
            notify_guardian=self.notify_guardian,
            backup_threshold=self.settings.ledger.backup_threshold,
            recent_limit=self.settings.ledger.recent_transactions_limit,
            retry_interval=self.settings.sync.retry_interval,
            watch_interval=self.settings.sync.watch_interval,
            cleanup_interval=self.settings.backup.cleanup_interval_hours * 3600,
        )
        await wallet.start()
        return wallet

    async def timer_for(self, profile_id: str) -> MeteredBillingTimer:
        timer = self.timers.get(profile_id)
        if timer is not None:
            return timer

        wallet = await self.wallet_for(profile_id)
        if profile_id in self.timers:
            return self.timers[profile_id]
        timer = MeteredBillingTimer.with_session_factory(
            wallet,
            self.session_factory,
            tokens_per_minute=self.settings.billing.tokens_per_minute,
            tick_interval=self.settings.billing.tick_interval,
            on_stop=self.on_billing_stop,
            run_loop=self.run_billing_loop,
        )
        self.timers[profile_id] = timer
        # 上次进程异常退出时遗留的计费会话只补扣一次
        await timer.replay_interrupted()
        return timer

    async def quests_for(self, profile_id: str) -> QuestService:
        service = self.quests.get(profile_id)
        if service is None:
            wallet = await self.wallet_for(profile_id)
            service = self.quests.setdefault(
                profile_id,
                QuestService(
                    wallet,
                    self.quest_verifier,
                    min_confidence=self.settings.quests.min_confidence,
                ),
            )
        return service


@lru_cache()
def get_container() -> ApplicationContainer:
    return ApplicationContainer.build(get_settings())


__all__ = ["ApplicationContainer", "build_remote", "get_container"]
