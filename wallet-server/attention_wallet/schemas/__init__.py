"""Pydantic schemas used across the project."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from attention_wallet.domain.wallets.models import Confidence


class TokenData(BaseModel):
    profile_id: str
    role: Optional[str] = None


class WalletStateResponse(BaseModel):
    profile_id: str
    balance: int
    total_earned: int
    total_spent: int
    total_refunded: int
    confidence: Confidence
    pending_count: int
    is_online: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    id: Optional[str] = None
    profile_id: str
    type: str
    amount: int
    description: str
    timestamp: datetime
    proof_ref: Optional[str] = None
    app_name: Optional[str] = None
    client_ref: Optional[str] = None
    pending: bool = False


class TransactionListResponse(BaseModel):
    pending: list[TransactionResponse] = Field(default_factory=list)
    transactions: list[TransactionResponse] = Field(default_factory=list)


class EarnRequest(BaseModel):
    amount: int = Field(..., description="获得的令牌数，必须为正整数")
    description: str
    proof_ref: Optional[str] = None


class SpendRequest(BaseModel):
    amount: int = Field(..., description="消耗的令牌数，必须为正整数")
    description: str
    app_name: Optional[str] = None


class RefundRequest(BaseModel):
    amount: int = Field(..., description="退还的令牌数，必须为正整数")
    description: str


class TransactionResultResponse(BaseModel):
    transaction: TransactionResponse
    wallet: WalletStateResponse


class SyncResultResponse(BaseModel):
    success: int
    failed: int
    wallet: WalletStateResponse


class OfflineStatusResponse(BaseModel):
    is_online: bool
    pending_count: int
    queue_length: int
    is_syncing: bool
    stalled: bool
    has_backup: bool
    backup_count: int
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_backup_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class IntegrityIssueResponse(BaseModel):
    kind: str
    code: str
    message: str
    severity: str
    recoverable: bool
    subject_id: Optional[str] = None


class IntegrityReportResponse(BaseModel):
    is_valid: bool
    errors: list[IntegrityIssueResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    can_recover: bool
    backup_available: bool
    wallet: WalletStateResponse


class BillingStartRequest(BaseModel):
    app_name: str = Field(..., min_length=1, max_length=100)


class BillingSessionResponse(BaseModel):
    profile_id: str
    app_name: str
    start_time: datetime
    is_active: bool
    tokens_spent: int
    tokens_charged: int
    state: str
    elapsed_seconds: int = 0


class BillingStopResponse(BaseModel):
    tokens_charged: int
    session: Optional[BillingSessionResponse] = None
    wallet: WalletStateResponse


class QuestPayload(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    description: str
    token_reward: int = Field(..., gt=0)
    verification_prompt: str = ""
    is_active: bool = True


class QuestSubmitRequest(BaseModel):
    quest: QuestPayload
    image_base64: str = Field(..., description="任务照片，Base64 编码")
    proof_ref: Optional[str] = None


class QuestApprovalRequest(BaseModel):
    profile_id: str = Field(..., description="获得奖励的孩子档案 ID")
    quest: QuestPayload
    proof_ref: Optional[str] = None


class QuestOutcomeResponse(BaseModel):
    approved: bool
    confidence: Optional[int] = None
    reasoning: Optional[str] = None
    transaction: Optional[TransactionResponse] = None
    wallet: WalletStateResponse
