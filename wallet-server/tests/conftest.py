"""Shared pytest fixtures."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from attention_wallet.domain.connectivity import ConnectivityMonitor
from attention_wallet.domain.integrity import IntegrityService
from attention_wallet.domain.queue import OfflineQueue
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.infrastructure.database.session import build_engine, build_session_factory, init_db
from attention_wallet.infrastructure.remote import InMemoryLedgerClient

PROFILE_ID = "ward-1"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wallet_local.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def remote() -> InMemoryLedgerClient:
    return InMemoryLedgerClient()


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(initial=True)


@pytest.fixture
def queue(session_factory, connectivity) -> OfflineQueue:
    return OfflineQueue.with_session_factory(session_factory, connectivity)


@pytest.fixture
def integrity(session_factory) -> IntegrityService:
    return IntegrityService.with_session_factory(session_factory)


@pytest.fixture
def notifications() -> list[str]:
    return []


@pytest.fixture
def notifier(notifications):
    async def notify(message: str) -> None:
        notifications.append(message)

    return notify


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest_asyncio.fixture
async def make_wallet(remote, queue, connectivity, integrity, notifier):
    created: list[WalletEngine] = []

    async def factory(profile_id: str = PROFILE_ID, **kwargs) -> WalletEngine:
        options = {
            "notify_guardian": notifier,
            "retry_interval": 3600,
            "watch_interval": 3600,
            "cleanup_interval": 3600,
        }
        options.update(kwargs)
        wallet = WalletEngine(
            profile_id,
            remote=remote,
            queue=queue,
            connectivity=connectivity,
            integrity=integrity,
            **options,
        )
        await wallet.start()
        created.append(wallet)
        return wallet

    yield factory

    for wallet in created:
        await wallet.stop()
