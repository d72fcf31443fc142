"""Protocol for the hosted ledger store the engine talks to."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, Sequence

from .models import Profile, Transaction

ProfileListener = Callable[[Profile], Awaitable[None]]
TransactionListener = Callable[[Transaction], Awaitable[None]]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class RemoteLedgerClient(Protocol):
    """Authenticated, access-controlled view of one backend.

    Implementations raise ``RemoteLedgerError`` when the backend is unreachable
    or rejects a call.
    """

    async def get_profile(self, profile_id: str) -> Profile | None:
        ...

    async def update_profile(self, profile_id: str, fields: dict[str, Any]) -> Profile:
        ...

    async def get_transactions(self, profile_id: str, limit: int) -> Sequence[Transaction]:
        ...

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        ...

    def subscribe_to_profile(self, profile_id: str, on_change: ProfileListener) -> Subscription:
        ...

    def subscribe_to_transactions(self, profile_id: str, on_insert: TransactionListener) -> Subscription:
        ...
