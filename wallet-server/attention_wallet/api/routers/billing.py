"""Metered billing endpoints for foreground app sessions."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from attention_wallet.domain.billing import MeteredBillingTimer
from attention_wallet.domain.ledger.exceptions import LedgerError
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.interfaces.http.deps import get_billing_timer, get_wallet, to_http_exception
from attention_wallet.schemas import (
    BillingSessionResponse,
    BillingStartRequest,
    BillingStopResponse,
    WalletStateResponse,
)

router = APIRouter()


def _session_response(timer: MeteredBillingTimer) -> BillingSessionResponse | None:
    session = timer.session
    if session is None:
        return None
    return BillingSessionResponse(
        profile_id=session.profile_id,
        app_name=session.app_name,
        start_time=session.start_time,
        is_active=session.is_active,
        tokens_spent=session.tokens_spent,
        tokens_charged=session.tokens_charged,
        state=timer.state.value,
        elapsed_seconds=int(timer.elapsed()),
    )


@router.post(
    "/sessions",
    response_model=BillingSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="开始应用计费",
)
async def start_session(
    payload: BillingStartRequest,
    timer: MeteredBillingTimer = Depends(get_billing_timer),
) -> BillingSessionResponse:
    try:
        await timer.start(payload.app_name)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _session_response(timer)


@router.get("/sessions/current", response_model=BillingSessionResponse, summary="获取当前计费会话")
async def current_session(timer: MeteredBillingTimer = Depends(get_billing_timer)) -> BillingSessionResponse:
    try:
        await timer.tick()
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    response = _session_response(timer)
    if response is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="当前没有计费会话")
    return response


@router.delete("/sessions/current", response_model=BillingStopResponse, summary="结束当前计费会话")
async def stop_session(
    timer: MeteredBillingTimer = Depends(get_billing_timer),
    wallet: WalletEngine = Depends(get_wallet),
) -> BillingStopResponse:
    try:
        charged = await timer.stop()
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return BillingStopResponse(
        tokens_charged=charged,
        session=_session_response(timer),
        wallet=WalletStateResponse.model_validate(wallet.state),
    )
