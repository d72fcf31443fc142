"""Ledger validation, corruption recovery and local backups."""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attention_wallet.db.models import BackupSnapshot as BackupSnapshotModel
from attention_wallet.domain.common.clock import ensure_aware, utcnow
from attention_wallet.domain.ledger.exceptions import (
    CorruptionKind,
    IntegrityError,
    Severity,
)
from attention_wallet.domain.ledger.models import Profile, Transaction, TransactionType
from attention_wallet.infrastructure.database.repositories.backup_repository import SqlBackupRepository

from .models import BackupInfo, BackupRecord, IntegrityReport, RecoveryResult, ValidationResult
from .repository import BackupRepository

logger = logging.getLogger(__name__)

GuardianNotifier = Callable[[str], Awaitable[None]]

TOTAL_FIELDS = ("total_earned", "total_spent", "total_refunded")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


async def log_guardian_notification(message: str) -> None:
    logger.warning("监护人通知: %s", message)


class IntegrityService:
    """Validates ledger data and repairs it when it does not add up.

    Recovery prefers exact corrections. A lossy clamp is only applied when no
    stored backup passes validation.
    """

    def __init__(
        self,
        repository: BackupRepository,
        *,
        max_backups: int = 5,
        retention_days: int = 7,
        routine_interval_hours: int = 24,
        transactions_per_backup: int = 100,
        version: str = "1.0.0",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._max_backups = max_backups
        self._retention = timedelta(days=retention_days)
        self._routine_interval = timedelta(hours=routine_interval_hours)
        self._transactions_per_backup = transactions_per_backup
        self._version = version
        self._clock = clock

    @classmethod
    def with_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        **kwargs,
    ) -> "IntegrityService":
        return cls(SqlBackupRepository(session_factory), **kwargs)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate_profile(self, profile: Optional[Profile]) -> ValidationResult:
        result = ValidationResult()
        if profile is None or not getattr(profile, "id", None):
            result.errors.append(
                IntegrityError(
                    CorruptionKind.PROFILE,
                    "missing_profile",
                    "档案缺失或没有标识",
                    severity=Severity.HIGH,
                    recoverable=False,
                )
            )
            return result

        balance = profile.balance
        if not _is_number(balance):
            result.errors.append(
                IntegrityError(
                    CorruptionKind.PROFILE,
                    "invalid_balance",
                    f"余额不是数字: {balance!r}",
                    subject_id=profile.id,
                )
            )
        elif balance < 0:
            result.errors.append(
                IntegrityError(
                    CorruptionKind.PROFILE,
                    "negative_balance",
                    f"余额为负数: {balance}",
                    subject_id=profile.id,
                )
            )

        for name in TOTAL_FIELDS:
            value = getattr(profile, name)
            if not _is_number(value) or value < 0:
                result.errors.append(
                    IntegrityError(
                        CorruptionKind.PROFILE,
                        f"invalid_{name}",
                        f"{name} 无效: {value!r}",
                        severity=Severity.LOW,
                        subject_id=profile.id,
                    )
                )

        values = [balance, *(getattr(profile, name) for name in TOTAL_FIELDS)]
        if all(_is_number(value) for value in values):
            if balance + profile.total_spent > profile.total_earned + profile.total_refunded:
                result.errors.append(
                    IntegrityError(
                        CorruptionKind.PROFILE,
                        "arithmetic_mismatch",
                        (
                            f"余额与累计值不一致: balance={balance}, earned={profile.total_earned}, "
                            f"spent={profile.total_spent}, refunded={profile.total_refunded}"
                        ),
                        subject_id=profile.id,
                    )
                )
        return result

    def validate_transaction(self, transaction: Optional[Transaction]) -> ValidationResult:
        result = ValidationResult()
        if transaction is None or not transaction.id or not transaction.profile_id:
            result.errors.append(
                IntegrityError(
                    CorruptionKind.TRANSACTION,
                    "missing_identity",
                    "交易缺少标识或所属档案",
                    severity=Severity.HIGH,
                    recoverable=False,
                    subject_id=getattr(transaction, "id", None),
                )
            )
            return result

        if not _is_number(transaction.amount) or transaction.amount <= 0:
            result.errors.append(
                IntegrityError(
                    CorruptionKind.TRANSACTION,
                    "invalid_amount",
                    f"交易金额无效: {transaction.amount!r}",
                    subject_id=transaction.id,
                )
            )
        if not isinstance(transaction.type, TransactionType):
            result.errors.append(
                IntegrityError(
                    CorruptionKind.TRANSACTION,
                    "unknown_type",
                    f"未知交易类型: {transaction.type!r}",
                    subject_id=transaction.id,
                )
            )
        return result

    async def perform_integrity_check(
        self,
        profile: Optional[Profile],
        transactions: Sequence[Transaction],
    ) -> IntegrityReport:
        errors: list[IntegrityError] = []
        warnings: list[str] = []
        try:
            errors.extend(self.validate_profile(profile).errors)
            for transaction in transactions:
                errors.extend(self.validate_transaction(transaction).errors)
            warnings.extend(self._duplicate_warnings(transactions))
            warnings.extend(self._unaccounted_warnings(profile))
        except (TypeError, ValueError, AttributeError) as exc:
            logger.exception("完整性检查执行失败")
            errors.append(
                IntegrityError(
                    CorruptionKind.STORAGE,
                    "check_failed",
                    f"完整性检查执行失败: {exc}",
                    severity=Severity.HIGH,
                    recoverable=False,
                )
            )

        profile_id = getattr(profile, "id", None)
        backup_available = bool(profile_id) and await self._latest_valid(profile_id) is not None
        can_recover = not errors or backup_available or all(error.recoverable for error in errors)

        if errors:
            logger.warning("完整性检查发现 %s 个问题: %s", len(errors), [error.code for error in errors])
        return IntegrityReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            can_recover=can_recover,
            backup_available=backup_available,
        )

    @staticmethod
    def _duplicate_warnings(transactions: Iterable[Transaction]) -> list[str]:
        keys = Counter(
            (tx.profile_id, tx.type, tx.amount, tx.description, tx.timestamp)
            for tx in transactions
            if tx is not None
        )
        return [
            f"疑似重复交易 {count} 条: {key[1]} {key[2]} '{key[3]}'"
            for key, count in keys.items()
            if count > 1
        ]

    @staticmethod
    def _unaccounted_warnings(profile: Optional[Profile]) -> list[str]:
        if profile is None:
            return []
        values = [profile.balance, *(getattr(profile, name) for name in TOTAL_FIELDS)]
        if not all(_is_number(value) for value in values):
            return []
        available = profile.total_earned + profile.total_refunded - profile.total_spent
        if profile.balance < available:
            return [f"余额低于累计值允许的数额: {profile.balance} < {available}"]
        return []

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    async def handle_corruption(
        self,
        profile: Optional[Profile],
        transactions: Sequence[Transaction],
        errors: Sequence[IntegrityError],
        notify_guardian: Optional[GuardianNotifier] = None,
    ) -> RecoveryResult:
        working_profile = replace(profile) if profile is not None else None
        working_transactions = list(transactions)
        if not errors:
            return RecoveryResult(True, False, working_profile, working_transactions)

        actions: list[str] = []
        needs_restore = any(
            error.severity is Severity.HIGH or not error.recoverable for error in errors
        )
        if not needs_restore:
            working_profile, working_transactions, exact = self._correct(
                working_profile, working_transactions, actions
            )
            needs_restore = not exact or not self._is_consistent(working_profile, working_transactions)

        backup_restored = False
        profile_id = getattr(profile, "id", None)
        if needs_restore and profile_id:
            restored = await self.restore_from_backup(profile_id)
            if restored is not None:
                working_profile, working_transactions = restored
                backup_restored = True
                actions.append(f"restored the last valid backup (balance {working_profile.balance})")

        if not backup_restored and not self._is_consistent(working_profile, working_transactions):
            working_profile, working_transactions = self._clamp(
                working_profile, working_transactions, actions
            )

        recovered = self._is_consistent(working_profile, working_transactions)
        if recovered:
            logger.info("档案 %s 数据已恢复: %s", profile_id, "; ".join(actions))
        else:
            logger.error("档案 %s 数据无法恢复", profile_id)

        await self._notify(
            notify_guardian,
            self._summary(profile_id, errors, actions, recovered),
        )
        return RecoveryResult(
            recovered=recovered,
            backup_restored=backup_restored,
            profile=working_profile,
            transactions=working_transactions,
            actions=actions,
        )

    def _correct(
        self,
        profile: Optional[Profile],
        transactions: list[Transaction],
        actions: list[str],
    ) -> tuple[Optional[Profile], list[Transaction], bool]:
        kept = [tx for tx in transactions if self.validate_transaction(tx).is_valid]
        dropped = len(transactions) - len(kept)
        if dropped:
            actions.append(f"discarded {dropped} invalid transaction(s)")

        if profile is None or self.validate_profile(profile).is_valid:
            return profile, kept, True

        balance = profile.balance
        if not _is_number(balance) or balance < 0:
            return profile, kept, False

        totals = {name: 0 for name in TOTAL_FIELDS}
        for tx in kept:
            if tx.profile_id != profile.id:
                continue
            if tx.type is TransactionType.EARN:
                totals["total_earned"] += tx.amount
            elif tx.type is TransactionType.SPEND:
                totals["total_spent"] += tx.amount
            else:
                totals["total_refunded"] += tx.amount

        # 仅当交易历史能完整解释当前余额时才按历史重算累计值
        if totals["total_earned"] + totals["total_refunded"] - totals["total_spent"] != balance:
            return profile, kept, False

        actions.append("recomputed totals from transaction history")
        return replace(profile, **totals), kept, True

    def _clamp(
        self,
        profile: Optional[Profile],
        transactions: list[Transaction],
        actions: list[str],
    ) -> tuple[Optional[Profile], list[Transaction]]:
        kept = [tx for tx in transactions if self.validate_transaction(tx).is_valid]
        if len(kept) != len(transactions):
            actions.append(f"discarded {len(transactions) - len(kept)} invalid transaction(s)")
        if profile is None or not profile.id:
            return profile, kept

        def floor(value: Any) -> int:
            return max(0, int(value)) if _is_number(value) else 0

        earned = floor(profile.total_earned)
        spent = floor(profile.total_spent)
        refunded = floor(profile.total_refunded)
        balance = max(0, min(floor(profile.balance), earned + refunded - spent))
        if balance + spent > earned + refunded:
            spent = earned + refunded - balance

        clamped = replace(
            profile,
            balance=balance,
            total_earned=earned,
            total_spent=spent,
            total_refunded=refunded,
        )
        actions.append(f"clamped balance from {profile.balance!r} to {balance}")
        return clamped, kept

    def _is_consistent(self, profile: Optional[Profile], transactions: Sequence[Transaction]) -> bool:
        if not self.validate_profile(profile).is_valid:
            return False
        return all(self.validate_transaction(tx).is_valid for tx in transactions)

    @staticmethod
    def _summary(
        profile_id: Optional[str],
        errors: Sequence[IntegrityError],
        actions: Sequence[str],
        recovered: bool,
    ) -> str:
        issues = ", ".join(sorted({error.code for error in errors}))
        taken = "; ".join(actions) if actions else "none"
        outcome = "The wallet was repaired." if recovered else "The wallet could not be repaired automatically."
        return (
            f"Wallet data problem detected for profile {profile_id}: {issues}. "
            f"Actions taken: {taken}. {outcome}"
        )

    @staticmethod
    async def _notify(notify_guardian: Optional[GuardianNotifier], message: str) -> None:
        notifier = notify_guardian or log_guardian_notification
        try:
            await notifier(message)
        except Exception:  # pylint: disable=broad-except
            logger.exception("发送监护人通知失败")

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------
    async def create_backup(
        self,
        profile: Optional[Profile],
        transactions: Sequence[Transaction],
        reason: str,
    ) -> Optional[BackupRecord]:
        if profile is None or not profile.id:
            logger.warning("档案缺失，跳过备份: %s", reason)
            return None

        recent = list(transactions)[: self._transactions_per_backup]
        now = self._clock()
        payload = {
            "profile": profile.to_payload(),
            "transactions": [tx.to_payload() for tx in recent],
            "metadata": {
                "reason": reason,
                "version": self._version,
                "created_at": now.isoformat(),
                "transaction_count": len(recent),
            },
        }
        try:
            row = await self._repository.add(
                profile_id=profile.id,
                reason=reason,
                version=self._version,
                transaction_count=len(recent),
                payload=json.dumps(payload, ensure_ascii=False),
                created_at=now,
            )
        except SQLAlchemyError:
            logger.exception("创建备份失败: %s", reason)
            return None

        logger.info("已创建备份 %s (%s, %s 条交易)", row.id, reason, len(recent))
        return self._to_record(row)

    async def needs_routine_backup(self, profile_id: str) -> bool:
        # 只看最近一个有效备份，pre_recovery 快照不算
        latest = await self._latest_valid(profile_id)
        if latest is None:
            return True
        row, _, _ = latest
        return self._clock() - ensure_aware(row.created_at) >= self._routine_interval

    async def backup_info(self, profile_id: str) -> BackupInfo:
        rows = await self._repository.list_snapshots(profile_id)
        if not rows:
            return BackupInfo(has_backup=False, backup_count=0)
        return BackupInfo(
            has_backup=True,
            backup_count=len(rows),
            last_backup_at=ensure_aware(rows[0].created_at),
        )

    async def restore_from_backup(
        self, profile_id: str
    ) -> Optional[tuple[Profile, list[Transaction]]]:
        restored = await self._latest_valid(profile_id)
        if restored is None:
            logger.warning("档案 %s 没有可用的有效备份", profile_id)
            return None
        row, profile, transactions = restored
        logger.info("档案 %s 已从备份 %s 恢复", profile_id, row.id)
        return profile, transactions

    async def _latest_valid(
        self, profile_id: str
    ) -> Optional[tuple[BackupSnapshotModel, Profile, list[Transaction]]]:
        return self._newest_valid(profile_id, await self._repository.list_snapshots(profile_id))

    def _newest_valid(
        self, profile_id: str, rows: Sequence[BackupSnapshotModel]
    ) -> Optional[tuple[BackupSnapshotModel, Profile, list[Transaction]]]:
        for row in rows:
            decoded = self._decode(row)
            if decoded is None:
                continue
            profile, transactions = decoded
            if profile.id != profile_id or not self._is_consistent(profile, transactions):
                logger.debug("备份 %s 未通过校验，跳过", row.id)
                continue
            return row, profile, transactions
        return None

    @staticmethod
    def _decode(row: BackupSnapshotModel) -> Optional[tuple[Profile, list[Transaction]]]:
        try:
            data = json.loads(row.payload)
            profile = Profile.from_payload(data["profile"])
            transactions = [Transaction.from_payload(item) for item in data.get("transactions", [])]
        except (TypeError, ValueError, KeyError, AttributeError) as exc:
            logger.warning("备份 %s 无法解析: %s", row.id, exc)
            return None
        return profile, transactions

    async def cleanup_old_backups(self, profile_id: str) -> int:
        """Drop snapshots beyond the retention count or age.

        The newest snapshot and the newest one that passes validation always stay.
        """
        rows = list(await self._repository.list_snapshots(profile_id))
        if len(rows) <= 1:
            return 0

        keep = {rows[0].id}
        newest_valid = self._newest_valid(profile_id, rows)
        if newest_valid is not None:
            keep.add(newest_valid[0].id)

        cutoff = self._clock() - self._retention
        stale = [
            row.id
            for index, row in enumerate(rows)
            if row.id not in keep
            and (index >= self._max_backups or ensure_aware(row.created_at) < cutoff)
        ]
        removed = await self._repository.delete_many(stale)
        if removed:
            logger.info("已清理档案 %s 的旧备份 %s 个", profile_id, removed)
        return removed

    @staticmethod
    def _to_record(row: BackupSnapshotModel) -> BackupRecord:
        return BackupRecord(
            id=row.id,
            profile_id=row.profile_id,
            reason=row.reason,
            version=row.version,
            transaction_count=row.transaction_count,
            created_at=ensure_aware(row.created_at),
        )
