"""In-process remote ledger used for development and tests."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Sequence

from attention_wallet.db.models import generate_uuid
from attention_wallet.domain.common.clock import utcnow
from attention_wallet.domain.ledger.exceptions import RemoteLedgerError
from attention_wallet.domain.ledger.models import LEDGER_FIELDS, Profile, ProfileRole, Transaction
from attention_wallet.domain.ledger.remote import ProfileListener, TransactionListener

logger = logging.getLogger(__name__)


class _Subscription:
    def __init__(self, registry: dict[str, list], profile_id: str, listener) -> None:
        self._registry = registry
        self._profile_id = profile_id
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        listeners = self._registry.get(self._profile_id, [])
        if self._listener in listeners:
            listeners.remove(self._listener)
        self.active = False


class InMemoryLedgerClient:
    """Keeps profiles and transactions in dictionaries and pushes changes to subscribers.

    ``available`` toggles simulated reachability; while it is False every call
    raises ``RemoteLedgerError``. ``fail_next`` makes the next N calls fail.
    """

    def __init__(self, *, auto_create: bool = False) -> None:
        self.profiles: dict[str, Profile] = {}
        self.transactions: dict[str, list[Transaction]] = {}
        self.available = True
        self.fail_next = 0
        self.auto_create = auto_create
        self._profile_listeners: dict[str, list[ProfileListener]] = {}
        self._transaction_listeners: dict[str, list[TransactionListener]] = {}

    def seed_profile(
        self,
        profile_id: str,
        *,
        role: str = ProfileRole.WARD.value,
        balance: int = 0,
        total_earned: int | None = None,
        total_spent: int = 0,
        total_refunded: int = 0,
    ) -> Profile:
        profile = Profile(
            id=profile_id,
            role=role,
            balance=balance,
            total_earned=balance + total_spent - total_refunded if total_earned is None else total_earned,
            total_spent=total_spent,
            total_refunded=total_refunded,
            updated_at=utcnow(),
        )
        self.profiles[profile_id] = profile
        self.transactions.setdefault(profile_id, [])
        return profile

    def _check(self) -> None:
        if not self.available:
            raise RemoteLedgerError("远端账本不可达")
        if self.fail_next > 0:
            self.fail_next -= 1
            raise RemoteLedgerError("远端账本请求失败")

    async def get_profile(self, profile_id: str) -> Profile | None:
        self._check()
        profile = self.profiles.get(profile_id)
        if profile is None and self.auto_create:
            profile = self.seed_profile(profile_id)
        return replace(profile) if profile else None

    async def update_profile(self, profile_id: str, fields: dict[str, Any]) -> Profile:
        self._check()
        current = self.profiles.get(profile_id)
        if current is None:
            raise RemoteLedgerError(f"远端档案不存在: {profile_id}")
        changes = {key: value for key, value in fields.items() if key in LEDGER_FIELDS}
        if changes.get("balance", current.balance) < 0:
            raise RemoteLedgerError("余额不能为负数")
        updated = replace(current, updated_at=utcnow(), **changes)
        self.profiles[profile_id] = updated
        await self._emit(self._profile_listeners, profile_id, replace(updated))
        return replace(updated)

    async def get_transactions(self, profile_id: str, limit: int) -> Sequence[Transaction]:
        self._check()
        rows = sorted(
            self.transactions.get(profile_id, []),
            key=lambda tx: tx.timestamp,
            reverse=True,
        )
        return [replace(tx) for tx in rows[:limit]]

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self._check()
        if transaction.profile_id not in self.profiles:
            raise RemoteLedgerError(f"远端档案不存在: {transaction.profile_id}")
        created = replace(transaction, id=generate_uuid())
        self.transactions.setdefault(transaction.profile_id, []).append(created)
        await self._emit(self._transaction_listeners, transaction.profile_id, replace(created))
        return replace(created)

    def subscribe_to_profile(self, profile_id: str, on_change: ProfileListener) -> _Subscription:
        self._profile_listeners.setdefault(profile_id, []).append(on_change)
        return _Subscription(self._profile_listeners, profile_id, on_change)

    def subscribe_to_transactions(self, profile_id: str, on_insert: TransactionListener) -> _Subscription:
        self._transaction_listeners.setdefault(profile_id, []).append(on_insert)
        return _Subscription(self._transaction_listeners, profile_id, on_insert)

    async def _emit(self, registry: dict[str, list], profile_id: str, payload) -> None:
        for listener in list(registry.get(profile_id, [])):
            try:
                await listener(payload)
            except Exception:  # pylint: disable=broad-except
                logger.exception("实时推送回调执行失败: profile=%s", profile_id)


__all__ = ["InMemoryLedgerClient"]
