"""Tests for the wallet engine."""
from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from attention_wallet.domain.ledger.exceptions import (
    InsufficientBalanceError,
    PersistenceError,
    ValidationError,
)
from attention_wallet.domain.ledger.models import TransactionType
from attention_wallet.domain.wallets import Confidence

from .conftest import PROFILE_ID


async def test_online_earn_commits_remotely(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()

    transaction = await wallet.earn(10, "Quest completed: Tidy room", proof_ref="proof://1")

    assert transaction.id is not None
    assert wallet.balance == 10
    assert wallet.state.confidence is Confidence.CONFIRMED
    server = remote.profiles[PROFILE_ID]
    assert (server.balance, server.total_earned) == (10, 10)
    assert remote.transactions[PROFILE_ID][0].proof_ref == "proof://1"
    assert [tx.id for tx in wallet.recent_transactions] == [transaction.id]


async def test_refund_increases_balance_but_not_total_earned(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=20)
    wallet = await make_wallet()

    await wallet.spend(5, "Game usage (60s)", app_name="Game")
    await wallet.refund(3, "Unused time")

    server = remote.profiles[PROFILE_ID]
    assert server.balance == 18
    assert server.total_earned == 20
    assert server.total_spent == 5
    assert server.total_refunded == 3
    assert server.balance == server.total_earned + server.total_refunded - server.total_spent


@pytest.mark.parametrize("amount", [0, -1, 2.5, True])
async def test_invalid_amount_is_rejected(make_wallet, remote, amount):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()

    with pytest.raises(ValidationError):
        await wallet.earn(amount, "bad")
    assert wallet.balance == 10


async def test_blank_description_is_rejected(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()

    with pytest.raises(ValidationError):
        await wallet.spend(1, "   ")


async def test_spend_beyond_balance_is_rejected(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=4)
    wallet = await make_wallet()

    with pytest.raises(InsufficientBalanceError):
        await wallet.spend(5, "Game usage")
    assert wallet.balance == 4
    assert remote.transactions[PROFILE_ID] == []


async def test_offline_earn_and_spend_then_reconnect(make_wallet, remote, connectivity, queue):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    await connectivity.report(False)

    await wallet.earn(10, "Quest completed: Homework")
    await wallet.spend(5, "Game usage (60s)", app_name="Game")

    state = wallet.state
    assert state.balance == 5
    assert state.confidence is Confidence.OPTIMISTIC
    assert state.pending_count == 2
    assert remote.profiles[PROFILE_ID].balance == 0
    status = await wallet.offline_status()
    assert status.pending_count == 2
    assert status.is_online is False

    await connectivity.report(True)

    state = wallet.state
    assert state.balance == 5
    assert state.confidence is Confidence.CONFIRMED
    assert state.pending_count == 0
    server = remote.profiles[PROFILE_ID]
    assert (server.balance, server.total_earned, server.total_spent) == (5, 10, 5)
    assert [tx.type for tx in remote.transactions[PROFILE_ID]] == [TransactionType.EARN, TransactionType.SPEND]
    assert await queue.has_pending(PROFILE_ID) is False


async def test_offline_spend_checks_optimistic_balance(make_wallet, remote, connectivity):
    remote.seed_profile(PROFILE_ID, balance=3)
    wallet = await make_wallet()
    await connectivity.report(False)

    await wallet.earn(2, "Bonus")
    await wallet.spend(5, "Game usage")

    with pytest.raises(InsufficientBalanceError):
        await wallet.spend(1, "Game usage")


async def test_remote_failure_falls_back_to_queue(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    remote.available = False

    transaction = await wallet.earn(7, "Chores")

    assert transaction.id is None
    assert transaction.client_ref.startswith("offline_")
    assert wallet.balance == 7
    assert wallet.state.confidence is Confidence.OPTIMISTIC

    remote.available = True
    result = await wallet.sync_now()

    assert (result.success, result.failed) == (1, 0)
    assert wallet.state.confidence is Confidence.CONFIRMED
    assert remote.profiles[PROFILE_ID].balance == 7


async def test_online_mutation_queues_behind_pending_entries(make_wallet, remote, queue):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    remote.available = False
    await wallet.earn(4, "first")
    remote.available = True
    remote.fail_next = 1

    await wallet.earn(6, "second")

    descriptions = [entry.transaction.description for entry in await queue.pending(PROFILE_ID)]
    assert descriptions == ["first", "second"]
    assert wallet.balance == 10

    await wallet.sync_now()
    committed = sorted(remote.transactions[PROFILE_ID], key=lambda tx: tx.timestamp)
    assert [tx.description for tx in committed] == ["first", "second"]
    assert remote.profiles[PROFILE_ID].balance == 10


async def test_online_mutation_drains_queue_first(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    remote.available = False
    await wallet.earn(4, "queued")
    remote.available = True

    await wallet.earn(6, "direct")

    committed = sorted(remote.transactions[PROFILE_ID], key=lambda tx: tx.timestamp)
    assert [tx.description for tx in committed] == ["queued", "direct"]
    assert wallet.state.pending_count == 0
    assert wallet.balance == 10


async def test_enqueue_failure_raises_persistence_error(make_wallet, remote, connectivity, queue, monkeypatch):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    await connectivity.report(False)

    async def broken_enqueue(transaction):
        raise PersistenceError("disk full")

    monkeypatch.setattr(queue, "enqueue", broken_enqueue)

    with pytest.raises(PersistenceError):
        await wallet.earn(3, "Chores")
    assert wallet.balance == 0


async def test_refresh_balance_takes_server_values(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()
    current = remote.profiles[PROFILE_ID]
    remote.profiles[PROFILE_ID] = replace(current, balance=25, total_earned=25)

    state = await wallet.refresh_balance()

    assert state.balance == 25
    assert state.total_earned == 25


async def test_stale_profile_push_is_ignored(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()
    await wallet.earn(5, "Chores")
    fresh = remote.profiles[PROFILE_ID]
    stale = replace(fresh, balance=1, total_earned=1, updated_at=fresh.updated_at - timedelta(minutes=5))

    for listener in list(remote._profile_listeners[PROFILE_ID]):
        await listener(stale)

    assert wallet.balance == 15


async def test_profile_push_updates_confirmed_balance(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()

    await remote.update_profile(PROFILE_ID, {"balance": 30, "total_earned": 30})

    assert wallet.balance == 30


async def test_large_mutation_schedules_backup(make_wallet, remote, integrity):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet(backup_threshold=50)
    await wallet.wait_for_background()
    before = (await integrity.backup_info(PROFILE_ID)).backup_count

    await wallet.earn(60, "Big quest")
    await wallet.wait_for_background()

    assert (await integrity.backup_info(PROFILE_ID)).backup_count == before + 1


async def test_start_creates_routine_backup(make_wallet, remote, integrity):
    remote.seed_profile(PROFILE_ID, balance=12)
    wallet = await make_wallet()
    await wallet.wait_for_background()

    info = await integrity.backup_info(PROFILE_ID)
    assert info.has_backup is True


async def test_start_loads_pending_entries_from_queue(make_wallet, remote, queue, connectivity):
    remote.seed_profile(PROFILE_ID, balance=0)
    first = await make_wallet()
    await connectivity.report(False)
    await first.earn(8, "Chores")
    await first.stop()

    second = await make_wallet()

    assert second.balance == 8
    assert second.state.pending_count == 1


async def test_startup_check_recovers_negative_balance_from_backup(
    make_wallet, remote, integrity, notifications
):
    remote.seed_profile(PROFILE_ID, balance=40)
    wallet = await make_wallet()
    await wallet.wait_for_background()
    await wallet.stop()
    current = remote.profiles[PROFILE_ID]
    remote.profiles[PROFILE_ID] = replace(current, balance=-5)

    recovered = await make_wallet()

    assert recovered.balance == 40
    assert remote.profiles[PROFILE_ID].balance == 40
    assert len(notifications) == 1


async def test_run_integrity_check_on_healthy_wallet(make_wallet, remote, notifications):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()

    report = await wallet.run_integrity_check()

    assert report.is_valid is True
    assert notifications == []


async def test_check_sync_completion_refreshes_after_queue_empties(make_wallet, remote, connectivity):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    await connectivity.report(False)
    await wallet.earn(3, "Chores")
    remote.available = False
    await connectivity.report(True)

    assert wallet.state.pending_count == 1
    remote.available = True
    await wallet.sync_now()

    assert await wallet.check_sync_completion() is True
    assert wallet.state.confidence is Confidence.CONFIRMED
    assert await wallet.check_sync_completion() is False


async def test_stop_unsubscribes_from_pushes(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=10)
    wallet = await make_wallet()
    await wallet.stop()

    assert remote._profile_listeners[PROFILE_ID] == []
    assert remote._transaction_listeners[PROFILE_ID] == []


async def test_offline_start_picks_up_server_balance_on_reconnect(make_wallet, remote, connectivity):
    remote.seed_profile(PROFILE_ID, balance=50)
    remote.available = False
    await connectivity.report(False)

    wallet = await make_wallet()

    assert wallet.balance == 0
    assert wallet.needs_refresh is True
    assert wallet.state.confidence is Confidence.OPTIMISTIC

    remote.available = True
    await connectivity.report(True)

    assert wallet.needs_refresh is False
    assert wallet.balance == 50
    assert wallet.state.confidence is Confidence.CONFIRMED

    await wallet.spend(10, "Game usage (120s)", app_name="Game")
    assert wallet.balance == 40
    assert remote.profiles[PROFILE_ID].balance == 40


async def test_retry_loop_refreshes_profile_loaded_from_backup(make_wallet, remote, integrity):
    remote.seed_profile(PROFILE_ID, balance=30)
    first = await make_wallet()
    await first.wait_for_background()
    await first.stop()
    count = (await integrity.backup_info(PROFILE_ID)).backup_count
    remote.seed_profile(PROFILE_ID, balance=45)
    remote.available = False

    wallet = await make_wallet()
    await wallet.wait_for_background()

    assert wallet.balance == 30
    assert wallet.state.confidence is Confidence.OPTIMISTIC
    assert (await integrity.backup_info(PROFILE_ID)).backup_count == count

    remote.available = True
    await wallet._retry_sync()

    assert wallet.balance == 45
    assert wallet.state.confidence is Confidence.CONFIRMED
