"""
API: верификация входа через Telegram (Login Widget, Mini App, OIDC).
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tgauth.core.logging import setup_logging
from tgauth.core.settings import settings
from tgauth.routes.health import router as health_router
from tgauth.routes.telegram import router as telegram_router


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Telegram Auth API")

    # Mini App и виджет ходят в API с фронтенда на другом домене
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(telegram_router)
    return app


app = create_app()
