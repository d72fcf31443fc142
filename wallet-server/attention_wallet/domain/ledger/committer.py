"""Remote commit of a single ledger transaction."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .exceptions import RemoteLedgerError
from .models import Profile, Transaction
from .remote import RemoteLedgerClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RemoteCommitter:
    """Inserts a transaction and moves the server-side profile totals with it.

    The profile is re-read before every commit so the new totals are computed
    from the server's current values rather than a possibly stale local copy.
    """

    remote: RemoteLedgerClient

    async def commit(self, transaction: Transaction) -> tuple[Transaction, Profile]:
        current = await self.remote.get_profile(transaction.profile_id)
        if current is None:
            raise RemoteLedgerError(f"远端档案不存在: {transaction.profile_id}")

        # 先校验余额，再写入交易，避免留下无法落账的流水
        updated = current.apply(transaction)
        created = await self.remote.create_transaction(transaction)
        profile = await self.remote.update_profile(transaction.profile_id, updated.ledger_fields())
        logger.info(
            "交易已提交: profile=%s type=%s amount=%s 余额 %s -> %s",
            transaction.profile_id,
            transaction.type.value,
            transaction.amount,
            current.balance,
            profile.balance,
        )
        return created, profile
