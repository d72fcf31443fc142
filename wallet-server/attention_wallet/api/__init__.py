from fastapi import APIRouter

from attention_wallet.api.routers import billing, quests, wallet


def create_api_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix)
    router.include_router(wallet.router, prefix="/wallet", tags=["钱包"])
    router.include_router(billing.router, prefix="/billing", tags=["计费"])
    router.include_router(quests.router, prefix="/quests", tags=["任务"])
    return router


__all__ = [
    "create_api_router",
]
