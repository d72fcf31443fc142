"""Per-second token metering for foreground app usage."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attention_wallet.domain.common.clock import ensure_aware, utcnow
from attention_wallet.domain.ledger.exceptions import InsufficientBalanceError, PersistenceError
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.infrastructure.database.repositories.billing_session_repository import (
    SqlBillingSessionRepository,
)

from .models import AppUsageSession, BillingState
from .repository import BillingSessionRepository

logger = logging.getLogger(__name__)

StopCallback = Callable[[AppUsageSession], Awaitable[None]]


class MeteredBillingTimer:
    """Charges ``tokens_per_minute`` while an app is in the foreground.

    The amount owed is always recomputed from the total elapsed time, so a late
    or skipped tick is caught up on the next one. ``tokens_charged`` is written
    to the session record after every successful spend, and a record left
    behind by a killed process is settled once by :meth:`replay_interrupted`.
    """

    def __init__(
        self,
        wallet: WalletEngine,
        sessions: BillingSessionRepository,
        *,
        tokens_per_minute: int = 5,
        tick_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow,
        on_stop: Optional[StopCallback] = None,
        run_loop: bool = True,
    ) -> None:
        if tokens_per_minute <= 0:
            raise ValueError("tokens_per_minute 必须大于 0")
        self._wallet = wallet
        self._sessions = sessions
        self._seconds_per_token = 60.0 / tokens_per_minute
        self._tick_interval = tick_interval
        self._clock = clock
        self._wall_clock = wall_clock
        self._on_stop = on_stop
        self._run_loop = run_loop

        self._lock = asyncio.Lock()
        self._state = BillingState.IDLE
        self._session: Optional[AppUsageSession] = None
        self._started_at: float = 0.0
        self._loop: Optional[asyncio.Task] = None
        # 已扣令牌数尚未写入会话记录
        self._charged_dirty = False

    @classmethod
    def with_session_factory(
        cls,
        wallet: WalletEngine,
        session_factory: async_sessionmaker[AsyncSession],
        **kwargs,
    ) -> "MeteredBillingTimer":
        return cls(wallet, SqlBillingSessionRepository(session_factory), **kwargs)

    @property
    def state(self) -> BillingState:
        return self._state

    @property
    def session(self) -> Optional[AppUsageSession]:
        return self._session

    @property
    def seconds_per_token(self) -> float:
        return self._seconds_per_token

    def elapsed(self) -> float:
        if self._state is not BillingState.RUNNING:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def _expected(self, elapsed: float) -> int:
        return int(elapsed // self._seconds_per_token)

    async def start(self, app_name: str) -> AppUsageSession:
        if self._state is BillingState.RUNNING:
            await self.stop()

        balance = self._wallet.balance
        if balance < 1:
            raise InsufficientBalanceError(balance, 1)

        async with self._lock:
            session = AppUsageSession(
                profile_id=self._wallet.profile_id,
                app_name=app_name,
                start_time=self._wall_clock(),
            )
            try:
                await self._sessions.save(
                    profile_id=session.profile_id,
                    app_name=app_name,
                    started_at=session.start_time,
                    tokens_charged=0,
                )
            except SQLAlchemyError as exc:
                logger.error("保存计费会话失败: %s", exc)
                raise PersistenceError("无法保存计费会话") from exc

            self._session = session
            self._started_at = self._clock()
            self._state = BillingState.RUNNING
            self._charged_dirty = False

        if self._run_loop:
            self._loop = asyncio.create_task(self.run())
        logger.info("开始计费: profile=%s app=%s", session.profile_id, app_name)
        return session

    async def tick(self) -> int:
        """Charge whatever has become due; returns the tokens charged by this call."""
        if self._state is not BillingState.RUNNING:
            return 0

        exhausted: Optional[AppUsageSession] = None
        async with self._lock:
            if self._state is not BillingState.RUNNING or self._session is None:
                return 0
            session = self._session
            # 会话记录落后于已扣数量时先补写，补写成功前不再扣款
            if self._charged_dirty and not await self._persist_charged(session):
                return 0
            elapsed = self._clock() - self._started_at
            due = self._expected(elapsed) - session.tokens_charged
            if due <= 0:
                return 0

            if self._wallet.balance < due:
                exhausted = await self._exhaust_locked()
            else:
                try:
                    await self._wallet.spend(
                        due,
                        f"{session.app_name} usage ({int(elapsed)}s)",
                        app_name=session.app_name,
                    )
                except InsufficientBalanceError:
                    exhausted = await self._exhaust_locked()
                except (PersistenceError, SQLAlchemyError) as exc:
                    # 下一次 tick 会按总时长补扣
                    logger.warning("计费扣款失败，稍后重试: %s", exc)
                    return 0
                else:
                    session.tokens_charged += due
                    session.tokens_spent += due
                    await self._persist_charged(session)
                    return due

        if exhausted is not None:
            await self._notify_stop(exhausted)
        return 0

    async def _exhaust_locked(self) -> AppUsageSession:
        session = self._session
        session.is_active = False
        self._state = BillingState.EXHAUSTED
        await self._discard_record(session.profile_id)
        logger.warning(
            "余额不足，停止计费: profile=%s app=%s 已扣 %s",
            session.profile_id,
            session.app_name,
            session.tokens_charged,
        )
        return session

    async def stop(self) -> int:
        """End the session, charging the uncharged remainder up to the current balance."""
        if self._state is not BillingState.RUNNING:
            return 0

        async with self._lock:
            if self._state is not BillingState.RUNNING or self._session is None:
                return 0
            session = self._session
            elapsed = self._clock() - self._started_at
            due = self._expected(elapsed) - session.tokens_charged
            amount = min(due, self._wallet.balance)
            if amount > 0:
                await self._wallet.spend(
                    amount,
                    f"{session.app_name} usage ({int(elapsed)}s)",
                    app_name=session.app_name,
                )
                session.tokens_charged += amount
                session.tokens_spent += amount
            session.is_active = False
            self._state = BillingState.STOPPED
            await self._discard_record(session.profile_id)

        self._cancel_loop()
        logger.info(
            "停止计费: profile=%s app=%s 用时 %ss 共扣 %s",
            session.profile_id,
            session.app_name,
            int(elapsed),
            session.tokens_spent,
        )
        return max(amount, 0)

    async def replay_interrupted(self) -> int:
        """Settle a session record left behind by a process that did not stop cleanly."""
        if self._state is BillingState.RUNNING:
            return 0
        record = await self._sessions.get(self._wallet.profile_id)
        if record is None:
            return 0

        elapsed = max(0.0, (self._wall_clock() - ensure_aware(record.started_at)).total_seconds())
        due = self._expected(elapsed) - (record.tokens_charged or 0)
        amount = min(due, self._wallet.balance)
        if amount > 0:
            await self._wallet.spend(
                amount,
                f"{record.app_name} usage ({int(elapsed)}s)",
                app_name=record.app_name,
            )
        await self._sessions.delete(record.profile_id)
        logger.info(
            "已补扣中断的计费会话: profile=%s app=%s 用时 %ss 补扣 %s",
            record.profile_id,
            record.app_name,
            int(elapsed),
            max(amount, 0),
        )
        return max(amount, 0)

    async def run(self) -> None:
        try:
            while self._state is BillingState.RUNNING:
                await asyncio.sleep(self._tick_interval)
                await self.tick()
        except asyncio.CancelledError:
            logger.debug("计费循环已取消: profile=%s", self._wallet.profile_id)

    async def shutdown(self) -> None:
        self._cancel_loop()
        if self._loop is not None:
            await asyncio.gather(self._loop, return_exceptions=True)
            self._loop = None

    def _cancel_loop(self) -> None:
        task = self._loop
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _persist_charged(self, session: AppUsageSession) -> bool:
        try:
            await self._sessions.update_charged(session.profile_id, session.tokens_charged)
        except SQLAlchemyError as exc:
            logger.error("保存已扣令牌数失败: %s", exc)
            self._charged_dirty = True
            return False
        self._charged_dirty = False
        return True

    async def _discard_record(self, profile_id: str) -> None:
        try:
            await self._sessions.delete(profile_id)
        except SQLAlchemyError as exc:
            logger.error("删除计费会话失败: %s", exc)

    async def _notify_stop(self, session: AppUsageSession) -> None:
        if self._on_stop is None:
            return
        try:
            await self._on_stop(session)
        except Exception:  # pylint: disable=broad-except
            logger.exception("计费停止回调执行失败")
