"""Tests for ledger validation, recovery and backups."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from attention_wallet.domain.integrity import IntegrityService
from attention_wallet.domain.ledger.exceptions import Severity
from attention_wallet.domain.ledger.models import Profile, Transaction, TransactionType
from attention_wallet.infrastructure.database.repositories import SqlBackupRepository

from .conftest import PROFILE_ID

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _profile(balance=40, earned=40, spent=0, refunded=0) -> Profile:
    return Profile(
        id=PROFILE_ID,
        role="ward",
        balance=balance,
        total_earned=earned,
        total_spent=spent,
        total_refunded=refunded,
        updated_at=NOW,
    )


def _tx(tx_id: str, amount, tx_type=TransactionType.EARN, description: str = "quest") -> Transaction:
    return Transaction(
        id=tx_id,
        profile_id=PROFILE_ID,
        type=tx_type,
        amount=amount,
        description=description,
        timestamp=NOW,
    )


@pytest.fixture
def service(session_factory, wall_clock) -> IntegrityService:
    return IntegrityService(SqlBackupRepository(session_factory), clock=wall_clock)


def test_valid_profile_passes(service):
    assert service.validate_profile(_profile()).is_valid


def test_missing_profile_is_high_and_unrecoverable(service):
    result = service.validate_profile(None)

    assert not result.is_valid
    assert result.severity is Severity.HIGH
    assert result.errors[0].recoverable is False


def test_negative_balance_is_medium(service):
    result = service.validate_profile(_profile(balance=-5))

    assert [error.code for error in result.errors] == ["negative_balance"]
    assert result.severity is Severity.MEDIUM


def test_non_numeric_total_is_low(service):
    result = service.validate_profile(_profile(earned="lots"))

    assert [error.code for error in result.errors] == ["invalid_total_earned"]
    assert result.severity is Severity.LOW


def test_balance_above_totals_is_arithmetic_mismatch(service):
    result = service.validate_profile(_profile(balance=50, earned=40))

    assert [error.code for error in result.errors] == ["arithmetic_mismatch"]


def test_refunds_count_towards_available_balance(service):
    assert service.validate_profile(_profile(balance=45, earned=40, refunded=5)).is_valid


def test_transaction_checks(service):
    assert service.validate_transaction(_tx("tx-1", 5)).is_valid

    missing_id = service.validate_transaction(_tx("", 5))
    assert missing_id.severity is Severity.HIGH
    assert missing_id.errors[0].recoverable is False

    zero = service.validate_transaction(_tx("tx-2", 0))
    assert [error.code for error in zero.errors] == ["invalid_amount"]

    unknown = service.validate_transaction(_tx("tx-3", 5, tx_type="bonus"))
    assert [error.code for error in unknown.errors] == ["unknown_type"]


async def test_integrity_check_reports_warnings(service):
    duplicate_a = _tx("tx-1", 5)
    duplicate_b = _tx("tx-2", 5)

    report = await service.perform_integrity_check(_profile(balance=30), [duplicate_a, duplicate_b])

    assert report.is_valid is True
    assert report.can_recover is True
    assert report.backup_available is False
    assert len(report.warnings) == 2


async def test_integrity_check_sees_available_backup(service):
    await service.create_backup(_profile(), [_tx("tx-1", 40)], "routine")

    report = await service.perform_integrity_check(_profile(balance=-5), [])

    assert report.is_valid is False
    assert report.backup_available is True
    assert report.can_recover is True


async def test_invalid_transactions_are_discarded(service, notifications, notifier):
    transactions = [_tx("tx-1", 40), _tx("tx-2", -3)]
    report = await service.perform_integrity_check(_profile(), transactions)

    result = await service.handle_corruption(_profile(), transactions, report.errors, notifier)

    assert result.recovered is True
    assert result.backup_restored is False
    assert [tx.id for tx in result.transactions] == ["tx-1"]
    assert len(notifications) == 1


async def test_totals_are_recomputed_when_history_explains_balance(service, notifier):
    profile = _profile(balance=10, earned=10, spent=5)
    transactions = [_tx("tx-1", 10)]
    report = await service.perform_integrity_check(profile, transactions)

    result = await service.handle_corruption(profile, transactions, report.errors, notifier)

    assert result.recovered is True
    assert result.backup_restored is False
    assert (result.profile.balance, result.profile.total_earned, result.profile.total_spent) == (10, 10, 0)


async def test_negative_balance_restores_last_valid_backup(service, wall_clock, notifications, notifier):
    await service.create_backup(_profile(balance=40, earned=40), [_tx("tx-1", 40)], "routine")
    wall_clock.advance(60)
    corrupted = _profile(balance=-5, earned=40)
    await service.create_backup(corrupted, [], "pre_recovery")
    report = await service.perform_integrity_check(corrupted, [])

    result = await service.handle_corruption(corrupted, [], report.errors, notifier)

    assert result.recovered is True
    assert result.backup_restored is True
    assert result.profile.balance == 40
    assert [tx.id for tx in result.transactions] == ["tx-1"]
    assert "negative_balance" in notifications[0]


async def test_negative_balance_without_backup_is_clamped(service, notifications, notifier):
    corrupted = _profile(balance=-5, earned=0)
    report = await service.perform_integrity_check(corrupted, [])

    result = await service.handle_corruption(corrupted, [], report.errors, notifier)

    assert result.recovered is True
    assert result.backup_restored is False
    assert result.profile.balance == 0
    assert service.validate_profile(result.profile).is_valid
    assert len(notifications) == 1


async def test_missing_profile_cannot_be_recovered(service, notifications, notifier):
    report = await service.perform_integrity_check(None, [])

    result = await service.handle_corruption(None, [], report.errors, notifier)

    assert result.recovered is False
    assert "could not be repaired" in notifications[0]


async def test_backup_payload_contains_profile_and_transactions(service, session_factory):
    record = await service.create_backup(_profile(), [_tx("tx-1", 40)], "large_earn")

    rows = await SqlBackupRepository(session_factory).list_snapshots(PROFILE_ID)
    payload = json.loads(rows[0].payload)

    assert record.reason == "large_earn"
    assert record.transaction_count == 1
    assert payload["profile"]["balance"] == 40
    assert payload["transactions"][0]["id"] == "tx-1"
    assert payload["metadata"]["version"] == "1.0.0"


async def test_routine_backup_due_after_interval(service, wall_clock):
    assert await service.needs_routine_backup(PROFILE_ID) is True

    await service.create_backup(_profile(), [], "routine")
    assert await service.needs_routine_backup(PROFILE_ID) is False

    wall_clock.advance(24 * 3600)
    assert await service.needs_routine_backup(PROFILE_ID) is True


async def test_cleanup_keeps_count_and_age_limits(service, wall_clock):
    for _ in range(7):
        await service.create_backup(_profile(), [], "routine")
        wall_clock.advance(3600)

    assert await service.cleanup_old_backups(PROFILE_ID) == 2
    assert (await service.backup_info(PROFILE_ID)).backup_count == 5

    wall_clock.advance(10 * 24 * 3600)
    assert await service.cleanup_old_backups(PROFILE_ID) == 4
    info = await service.backup_info(PROFILE_ID)
    assert info.backup_count == 1
    assert info.has_backup is True


async def test_invalid_snapshot_does_not_postpone_routine_backup(service, wall_clock):
    await service.create_backup(_profile(), [], "routine")
    wall_clock.advance(24 * 3600)
    await service.create_backup(_profile(balance=-5), [], "pre_recovery")

    assert await service.needs_routine_backup(PROFILE_ID) is True


async def test_cleanup_keeps_newest_valid_backup(service, wall_clock):
    await service.create_backup(_profile(), [], "routine")
    for _ in range(5):
        wall_clock.advance(3600)
        await service.create_backup(_profile(balance=-5), [], "pre_recovery")

    await service.cleanup_old_backups(PROFILE_ID)
    restored = await service.restore_from_backup(PROFILE_ID)
    assert restored is not None
    assert restored[0].balance == 40

    wall_clock.advance(10 * 24 * 3600)
    await service.cleanup_old_backups(PROFILE_ID)
    info = await service.backup_info(PROFILE_ID)
    assert info.backup_count == 2
    restored = await service.restore_from_backup(PROFILE_ID)
    assert restored is not None
    assert restored[0].balance == 40
