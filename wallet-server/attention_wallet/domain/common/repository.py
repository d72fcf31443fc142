"""Repository abstractions for domain services."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attention_wallet.infrastructure.database.session import session_scope


class AsyncRepository:
    """Base repository opening one committed session per unit of work."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    def scope(self) -> AbstractAsyncContextManager[AsyncSession]:
        return session_scope(self._session_factory)
