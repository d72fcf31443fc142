"""Reusable FastAPI dependencies."""

from fastapi import Depends, HTTPException, Request, status

from attention_wallet.core.container import ApplicationContainer
from attention_wallet.core.security import get_current_profile_id
from attention_wallet.domain.billing import MeteredBillingTimer
from attention_wallet.domain.ledger.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    PersistenceError,
    RemoteLedgerError,
    ValidationError,
)
from attention_wallet.domain.quests import QuestService
from attention_wallet.domain.wallets import WalletEngine


def to_http_exception(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, InsufficientBalanceError):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(exc))
    if isinstance(exc, (PersistenceError, RemoteLedgerError)):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_app_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


async def get_wallet(
    profile_id: str = Depends(get_current_profile_id),
    container: ApplicationContainer = Depends(get_app_container),
) -> WalletEngine:
    try:
        return await container.wallet_for(profile_id)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


async def get_billing_timer(
    profile_id: str = Depends(get_current_profile_id),
    container: ApplicationContainer = Depends(get_app_container),
) -> MeteredBillingTimer:
    try:
        return await container.timer_for(profile_id)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


async def get_quest_service(
    profile_id: str = Depends(get_current_profile_id),
    container: ApplicationContainer = Depends(get_app_container),
) -> QuestService:
    try:
        return await container.quests_for(profile_id)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


__all__ = [
    "get_app_container",
    "get_billing_timer",
    "get_quest_service",
    "get_wallet",
    "to_http_exception",
]
