"""Tests for quest awards."""
from __future__ import annotations

import pytest

from attention_wallet.core.config import Settings
from attention_wallet.core.container import ApplicationContainer
from attention_wallet.domain.ledger.exceptions import ValidationError
from attention_wallet.domain.quests import Quest, QuestService, VerificationResult

from .conftest import PROFILE_ID


class StubVerifier:
    def __init__(self, result: VerificationResult) -> None:
        self.result = result
        self.calls: list[tuple[bytes, str, str]] = []

    async def verify(self, image: bytes, description: str, prompt: str) -> VerificationResult:
        self.calls.append((image, description, prompt))
        return self.result


def _quest(**overrides) -> Quest:
    values = {
        "id": "quest-1",
        "name": "Tidy room",
        "description": "Put all toys away",
        "token_reward": 10,
        "verification_prompt": "Is the floor clear of toys?",
    }
    values.update(overrides)
    return Quest(**values)


async def test_verified_quest_awards_tokens(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    verifier = StubVerifier(VerificationResult(is_valid=True, confidence=85, reasoning="clean"))
    service = QuestService(wallet, verifier)

    outcome = await service.submit(_quest(), b"jpeg", proof_ref="proof://photo-1")

    assert outcome.approved is True
    assert outcome.transaction.description == "Quest completed: Tidy room"
    assert outcome.transaction.proof_ref == "proof://photo-1"
    assert wallet.balance == 10
    assert verifier.calls == [(b"jpeg", "Put all toys away", "Is the floor clear of toys?")]


@pytest.mark.parametrize(
    "result",
    [
        VerificationResult(is_valid=True, confidence=69),
        VerificationResult(is_valid=False, confidence=95),
    ],
)
async def test_rejected_verification_awards_nothing(make_wallet, remote, result):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    service = QuestService(wallet, StubVerifier(result))

    outcome = await service.submit(_quest(), b"jpeg")

    assert outcome.approved is False
    assert outcome.transaction is None
    assert wallet.balance == 0


async def test_confidence_threshold_is_inclusive(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    service = QuestService(wallet, StubVerifier(VerificationResult(is_valid=True, confidence=70)))

    outcome = await service.submit(_quest(), b"jpeg")

    assert outcome.approved is True


async def test_manual_approval_skips_verification(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    verifier = StubVerifier(VerificationResult(is_valid=False, confidence=0))
    service = QuestService(wallet, verifier)

    outcome = await service.approve_manually(_quest(token_reward=15))

    assert outcome.approved is True
    assert verifier.calls == []
    assert wallet.balance == 15


async def test_inactive_quest_is_rejected(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    service = QuestService(wallet, StubVerifier(VerificationResult(is_valid=True, confidence=99)))

    with pytest.raises(ValidationError):
        await service.submit(_quest(is_active=False), b"jpeg")
    with pytest.raises(ValidationError):
        await service.approve_manually(_quest(is_active=False))


async def test_container_applies_configured_confidence_threshold(session_factory, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    container = ApplicationContainer.build(
        Settings(environment="test", quests={"min_confidence": 90}),
        session_factory=session_factory,
        remote=remote,
        quest_verifier=StubVerifier(VerificationResult(is_valid=True, confidence=85)),
    )
    try:
        service = await container.quests_for(PROFILE_ID)
        outcome = await service.submit(_quest(), b"jpeg")

        assert outcome.approved is False
        assert await container.quests_for(PROFILE_ID) is service
    finally:
        await container.shutdown()


async def test_submission_without_verifier_is_rejected(make_wallet, remote):
    remote.seed_profile(PROFILE_ID, balance=0)
    wallet = await make_wallet()
    service = QuestService(wallet)

    with pytest.raises(ValidationError):
        await service.submit(_quest(), b"jpeg")

    outcome = await service.approve_manually(_quest())
    assert outcome.approved is True
    assert wallet.balance == 10
