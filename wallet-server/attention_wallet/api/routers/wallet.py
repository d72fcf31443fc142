"""Wallet endpoints for the profile identified by the bearer token."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from attention_wallet.domain.ledger.exceptions import LedgerError
from attention_wallet.domain.ledger.models import Transaction
from attention_wallet.domain.wallets import WalletEngine
from attention_wallet.interfaces.http.deps import get_wallet, to_http_exception
from attention_wallet.schemas import (
    EarnRequest,
    IntegrityIssueResponse,
    IntegrityReportResponse,
    OfflineStatusResponse,
    RefundRequest,
    SpendRequest,
    SyncResultResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionResultResponse,
    WalletStateResponse,
)

router = APIRouter()


def transaction_response(transaction: Transaction, pending: bool = False) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        profile_id=transaction.profile_id,
        type=transaction.type.value,
        amount=transaction.amount,
        description=transaction.description,
        timestamp=transaction.timestamp,
        proof_ref=transaction.proof_ref,
        app_name=transaction.app_name,
        client_ref=transaction.client_ref,
        pending=pending,
    )


def state_response(wallet: WalletEngine) -> WalletStateResponse:
    return WalletStateResponse.model_validate(wallet.state)


def _result(wallet: WalletEngine, transaction: Transaction) -> TransactionResultResponse:
    return TransactionResultResponse(
        transaction=transaction_response(transaction, pending=transaction.id is None),
        wallet=state_response(wallet),
    )


@router.get("", response_model=WalletStateResponse, summary="获取钱包余额")
async def wallet_state(wallet: WalletEngine = Depends(get_wallet)) -> WalletStateResponse:
    return state_response(wallet)


@router.get("/transactions", response_model=TransactionListResponse, summary="获取交易记录")
async def wallet_transactions(
    limit: int = Query(20, ge=1, le=100),
    wallet: WalletEngine = Depends(get_wallet),
) -> TransactionListResponse:
    pending = list(reversed(wallet.pending_transactions))
    return TransactionListResponse(
        pending=[transaction_response(tx, pending=True) for tx in pending],
        transactions=[transaction_response(tx) for tx in wallet.recent_transactions[:limit]],
    )


@router.post("/earn", response_model=TransactionResultResponse, summary="获得令牌")
async def wallet_earn(payload: EarnRequest, wallet: WalletEngine = Depends(get_wallet)) -> TransactionResultResponse:
    try:
        transaction = await wallet.earn(payload.amount, payload.description, proof_ref=payload.proof_ref)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _result(wallet, transaction)


@router.post("/spend", response_model=TransactionResultResponse, summary="消耗令牌")
async def wallet_spend(payload: SpendRequest, wallet: WalletEngine = Depends(get_wallet)) -> TransactionResultResponse:
    try:
        transaction = await wallet.spend(payload.amount, payload.description, app_name=payload.app_name)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _result(wallet, transaction)


@router.post("/refund", response_model=TransactionResultResponse, summary="退还令牌")
async def wallet_refund(payload: RefundRequest, wallet: WalletEngine = Depends(get_wallet)) -> TransactionResultResponse:
    try:
        transaction = await wallet.refund(payload.amount, payload.description)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _result(wallet, transaction)


@router.post("/refresh", response_model=WalletStateResponse, summary="从服务端刷新余额")
async def wallet_refresh(wallet: WalletEngine = Depends(get_wallet)) -> WalletStateResponse:
    try:
        await wallet.refresh_balance()
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return state_response(wallet)


@router.get("/offline-status", response_model=OfflineStatusResponse, summary="获取离线同步状态")
async def wallet_offline_status(wallet: WalletEngine = Depends(get_wallet)) -> OfflineStatusResponse:
    status = await wallet.offline_status()
    return OfflineStatusResponse.model_validate(status)


@router.post("/sync", response_model=SyncResultResponse, summary="立即同步离线交易")
async def wallet_sync(wallet: WalletEngine = Depends(get_wallet)) -> SyncResultResponse:
    result = await wallet.sync_now()
    return SyncResultResponse(success=result.success, failed=result.failed, wallet=state_response(wallet))


@router.post("/integrity-check", response_model=IntegrityReportResponse, summary="执行完整性检查")
async def wallet_integrity_check(wallet: WalletEngine = Depends(get_wallet)) -> IntegrityReportResponse:
    report = await wallet.run_integrity_check()
    return IntegrityReportResponse(
        is_valid=report.is_valid,
        errors=[
            IntegrityIssueResponse(
                kind=error.kind.value,
                code=error.code,
                message=error.message,
                severity=error.severity.value,
                recoverable=error.recoverable,
                subject_id=error.subject_id,
            )
            for error in report.errors
        ],
        warnings=report.warnings,
        can_recover=report.can_recover,
        backup_available=report.backup_available,
        wallet=state_response(wallet),
    )
