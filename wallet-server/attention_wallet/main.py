import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attention_wallet import __version__
from attention_wallet.api import create_api_router
from attention_wallet.core.config import get_settings
from attention_wallet.core.container import ApplicationContainer, get_container

settings = get_settings()
logger = logging.getLogger(__name__)


def create_app(container: Optional[ApplicationContainer] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_container = container or get_container()
        app.state.container = app_container
        await app_container.startup()
        logger.info("令牌钱包服务已启动")
        try:
            yield
        finally:
            await app_container.shutdown()
            logger.info("令牌钱包服务已停止")

    app = FastAPI(
        title=settings.project_name,
        description="注意力令牌账本与计费服务",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_api_router(settings.api_prefix))

    @app.get("/health", summary="健康检查")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("attention_wallet.main:app", host=settings.host, port=settings.port, reload=settings.server.reload)
