"""Quest submission and guardian approval endpoints."""
from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Depends, HTTPException, status

from attention_wallet.api.routers.wallet import state_response, transaction_response
from attention_wallet.core.container import ApplicationContainer
from attention_wallet.core.security import require_guardian
from attention_wallet.domain.ledger.exceptions import LedgerError
from attention_wallet.domain.quests import Quest, QuestOutcome, QuestService
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.interfaces.http.deps import (
    get_app_container,
    get_quest_service,
    get_wallet,
    to_http_exception,
)
from attention_wallet.schemas import (
    QuestApprovalRequest,
    QuestOutcomeResponse,
    QuestPayload,
    QuestSubmitRequest,
)

router = APIRouter()


def _to_quest(payload: QuestPayload) -> Quest:
    return Quest(**payload.model_dump())


def _outcome_response(outcome: QuestOutcome, wallet: WalletEngine) -> QuestOutcomeResponse:
    verification = outcome.verification
    transaction = outcome.transaction
    return QuestOutcomeResponse(
        approved=outcome.approved,
        confidence=verification.confidence if verification else None,
        reasoning=verification.reasoning if verification else None,
        transaction=transaction_response(transaction, pending=transaction.id is None) if transaction else None,
        wallet=state_response(wallet),
    )


@router.post("/submit", response_model=QuestOutcomeResponse, summary="提交任务照片")
async def submit_quest(
    payload: QuestSubmitRequest,
    service: QuestService = Depends(get_quest_service),
    wallet: WalletEngine = Depends(get_wallet),
) -> QuestOutcomeResponse:
    try:
        image = base64.b64decode(payload.image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="图片编码无效") from exc

    try:
        outcome = await service.submit(_to_quest(payload.quest), image, proof_ref=payload.proof_ref)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _outcome_response(outcome, wallet)


@router.post(
    "/approve",
    response_model=QuestOutcomeResponse,
    summary="监护人手动批准任务",
    dependencies=[Depends(require_guardian)],
)
async def approve_quest(
    payload: QuestApprovalRequest,
    container: ApplicationContainer = Depends(get_app_container),
) -> QuestOutcomeResponse:
    try:
        service = await container.quests_for(payload.profile_id)
        outcome = await service.approve_manually(_to_quest(payload.quest), proof_ref=payload.proof_ref)
        wallet = await container.wallet_for(payload.profile_id)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _outcome_response(outcome, wallet)
