"""Quest award exports"""

from .models import Quest, QuestOutcome, VerificationResult
from .service import QuestService, QuestVerifier

__all__ = [
    "Quest",
    "QuestOutcome",
    "QuestService",
    "QuestVerifier",
    "VerificationResult",
]
