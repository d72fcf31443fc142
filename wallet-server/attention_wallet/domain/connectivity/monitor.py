"""Online/offline state tracking with edge-triggered listeners."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[], Awaitable[None]]
ChangeListener = Callable[[bool], Awaitable[None]]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Single source of truth for reachability.

    The platform signal is fed through :meth:`report`; an optional ``probe``
    is polled by :meth:`run`. Listeners fire only on transitions.
    """

    def __init__(
        self,
        *,
        initial: bool = True,
        probe: Optional[Probe] = None,
        poll_interval: float = 10.0,
    ) -> None:
        self._online = initial
        self._probe = probe
        self._poll_interval = poll_interval
        self._online_listeners: list[Listener] = []
        self._change_listeners: list[ChangeListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def on_online(self, listener: Listener) -> Callable[[], None]:
        self._online_listeners.append(listener)
        return lambda: self._discard(self._online_listeners, listener)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._change_listeners.append(listener)
        return lambda: self._discard(self._change_listeners, listener)

    async def report(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("网络状态变化: %s", "在线" if online else "离线")

        for change_listener in list(self._change_listeners):
            await self._invoke(change_listener(online))
        if online:
            for listener in list(self._online_listeners):
                await self._invoke(listener())

    async def poll_once(self) -> bool:
        if self._probe is None:
            return self._online
        try:
            online = await self._probe()
        except (OSError, asyncio.TimeoutError):
            online = False
        await self.report(online)
        return online

    async def run(self) -> None:
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            logger.debug("网络探测任务已取消")

    @staticmethod
    async def _invoke(awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:  # pylint: disable=broad-except
            logger.exception("网络状态监听回调执行失败")

    @staticmethod
    def _discard(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)


def tcp_probe(host: str, port: int, timeout: float = 5.0) -> Probe:
    """Build a probe that reports online when a TCP connection to ``host`` succeeds."""

    async def probe() -> bool:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    return probe
