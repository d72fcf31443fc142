"""Turns approved quest submissions into ledger earnings."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from attention_wallet.domain.ledger.exceptions import ValidationError
from attention_wallet.domain.wallets import WalletEngine

from .models import Quest, QuestOutcome, VerificationResult

logger = logging.getLogger(__name__)


class QuestVerifier(Protocol):
    async def verify(self, image: bytes, description: str, prompt: str) -> VerificationResult:
        ...


class QuestService:
    def __init__(
        self,
        wallet: WalletEngine,
        verifier: Optional[QuestVerifier] = None,
        *,
        min_confidence: int = 70,
    ) -> None:
        self._wallet = wallet
        self._verifier = verifier
        self._min_confidence = min_confidence

    async def submit(self, quest: Quest, image: bytes, proof_ref: Optional[str] = None) -> QuestOutcome:
        self._ensure_active(quest)
        if self._verifier is None:
            raise ValidationError("未配置任务验证服务，只能由监护人手动批准")
        verification = await self._verifier.verify(image, quest.description, quest.verification_prompt)
        if not verification.is_valid or verification.confidence < self._min_confidence:
            logger.info(
                "任务未通过验证: quest=%s valid=%s confidence=%s",
                quest.id,
                verification.is_valid,
                verification.confidence,
            )
            return QuestOutcome(approved=False, verification=verification)

        transaction = await self._award(quest, proof_ref)
        return QuestOutcome(approved=True, verification=verification, transaction=transaction)

    async def approve_manually(self, quest: Quest, proof_ref: Optional[str] = None) -> QuestOutcome:
        self._ensure_active(quest)
        transaction = await self._award(quest, proof_ref)
        logger.info("监护人手动批准任务: quest=%s", quest.id)
        return QuestOutcome(approved=True, transaction=transaction)

    async def _award(self, quest: Quest, proof_ref: Optional[str]):
        transaction = await self._wallet.earn(
            quest.token_reward,
            f"Quest completed: {quest.name}",
            proof_ref=proof_ref,
        )
        logger.info("任务奖励已发放: quest=%s tokens=%s", quest.id, quest.token_reward)
        return transaction

    @staticmethod
    def _ensure_active(quest: Quest) -> None:
        if not quest.is_active:
            raise ValidationError(f"任务已停用: {quest.name}")
