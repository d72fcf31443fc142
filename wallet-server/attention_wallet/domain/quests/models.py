"""Domain models for photo-verified quests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from attention_wallet.domain.ledger.models import Transaction


@dataclass(slots=True)
class Quest:
    id: str
    name: str
    description: str
    token_reward: int
    verification_prompt: str
    is_active: bool = True


@dataclass(slots=True)
class VerificationResult:
    is_valid: bool
    confidence: int
    reasoning: str = ""


@dataclass(slots=True)
class QuestOutcome:
    approved: bool
    verification: Optional[VerificationResult] = None
    transaction: Optional[Transaction] = None
