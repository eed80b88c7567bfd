"""
HTTP-слой над ядром верификации: Login Widget, Mini App initData, Telegram OIDC.
Роуты только переводят bool/claims ядра в HTTP-статусы; аккаунты и сессии — забота приложения.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from tgauth.core.constants import ERROR_CODES
from tgauth.core.jwks import JWKSCache, fetch_jwks
from tgauth.core.login_widget import login_widget_user, validate_login_widget_shape, verify_login_widget
from tgauth.core.mini_app import (
    mini_app_user,
    parse_mini_app_init_data,
    validate_mini_app_shape,
    verify_mini_app_init_data,
)
from tgauth.core.oidc import OIDCOptions, OIDCStage, TelegramOIDCProvider
from tgauth.core.settings import Settings, settings as app_settings


router = APIRouter(prefix="/telegram", tags=["telegram"])
logger = logging.getLogger("tgauth")

_jwks_cache: Optional[JWKSCache] = None
_jwks_cache_params: Optional[tuple[int, float]] = None
_jwks_cache_lock = threading.Lock()


class MiniAppIn(BaseModel):
    init_data: Any = None


class IdTokenIn(BaseModel):
    id_token: Optional[str] = None


def get_settings() -> Settings:
    return app_settings


def require_bot_token(cfg: Settings = Depends(get_settings)) -> str:
    if not cfg.bot_token:
        raise HTTPException(status_code=503, detail=ERROR_CODES["BOT_TOKEN_REQUIRED"])
    return cfg.bot_token


def _shared_jwks_cache(ttl_seconds: int, timeout: float) -> JWKSCache:
    """Один кэш на процесс; пересоздаётся, если поменялись TTL или таймаут."""
    global _jwks_cache, _jwks_cache_params
    with _jwks_cache_lock:
        if _jwks_cache is None or _jwks_cache_params != (ttl_seconds, timeout):
            _jwks_cache = JWKSCache(ttl_seconds=ttl_seconds, fetcher=lambda: fetch_jwks(timeout=timeout))
            _jwks_cache_params = (ttl_seconds, timeout)
        return _jwks_cache


def get_oidc_provider(cfg: Settings = Depends(get_settings), bot_token: str = Depends(require_bot_token)) -> TelegramOIDCProvider:
    if not cfg.oidc_enabled:
        raise HTTPException(status_code=404, detail=ERROR_CODES["OIDC_DISABLED"])

    fetcher = None
    if cfg.jwks_cache_ttl_seconds > 0:
        fetcher = _shared_jwks_cache(cfg.jwks_cache_ttl_seconds, cfg.jwks_timeout_seconds)

    options = OIDCOptions(
        scopes=cfg.oidc_scopes,
        request_phone=cfg.oidc_request_phone,
        request_bot_access=cfg.oidc_request_bot_access,
        clock_skew_seconds=cfg.oidc_clock_skew_seconds,
    )
    return TelegramOIDCProvider(bot_token, options, jwks_fetcher=fetcher, timeout=cfg.jwks_timeout_seconds)


def _require_init_data(payload: MiniAppIn) -> str:
    if not payload.init_data or not isinstance(payload.init_data, str):
        raise HTTPException(status_code=400, detail=ERROR_CODES["INIT_DATA_REQUIRED"])
    return payload.init_data


@router.get("/config")
def telegram_config(cfg: Settings = Depends(get_settings)):
    return {
        "bot_username": cfg.bot_username,
        "mini_app_enabled": cfg.mini_app_enabled,
        "oidc_enabled": cfg.oidc_enabled,
    }


@router.post("/verify")
def verify_widget(
    body: Any = Body(None),
    cfg: Settings = Depends(get_settings),
    bot_token: str = Depends(require_bot_token),
):
    """Проверка callback'а Login Widget. 400 — неверная форма, 401 — подпись/срок."""
    if not validate_login_widget_shape(body):
        raise HTTPException(status_code=400, detail=ERROR_CODES["INVALID_AUTH_DATA"])

    if not verify_login_widget(body, bot_token, cfg.max_auth_age):
        logger.warning("Auth failed: login widget", extra={"event": "auth_failed", "method": "login_widget"})
        raise HTTPException(status_code=401, detail=ERROR_CODES["INVALID_AUTHENTICATION"])

    user = login_widget_user(body)
    logger.info(
        "Auth success",
        extra={"event": "auth_success", "method": "login_widget", "telegram_user_id": user["telegram_id"]},
    )
    return {"ok": True, "telegram_id": user["telegram_id"], "user": user}


@router.post("/miniapp/validate")
def validate_mini_app(
    payload: MiniAppIn,
    cfg: Settings = Depends(get_settings),
    bot_token: str = Depends(require_bot_token),
):
    if not cfg.mini_app_enabled:
        raise HTTPException(status_code=404, detail=ERROR_CODES["MINI_APP_DISABLED"])
    init_data = _require_init_data(payload)

    if not verify_mini_app_init_data(init_data, bot_token, cfg.max_auth_age):
        return {"valid": False, "data": None}
    return {"valid": True, "data": parse_mini_app_init_data(init_data)}


@router.post("/miniapp/verify")
def verify_mini_app(
    payload: MiniAppIn,
    cfg: Settings = Depends(get_settings),
    bot_token: str = Depends(require_bot_token),
):
    """Вход из Mini App: подпись (если включена проверка) → разбор → структура → пользователь."""
    if not cfg.mini_app_enabled:
        raise HTTPException(status_code=404, detail=ERROR_CODES["MINI_APP_DISABLED"])
    init_data = _require_init_data(payload)

    if cfg.mini_app_validate_init_data and not verify_mini_app_init_data(init_data, bot_token, cfg.max_auth_age):
        logger.warning("Auth failed: mini app initData", extra={"event": "auth_failed", "method": "mini_app"})
        raise HTTPException(status_code=401, detail=ERROR_CODES["INVALID_MINI_APP_INIT_DATA"])

    data = parse_mini_app_init_data(init_data)
    if not validate_mini_app_shape(data):
        raise HTTPException(status_code=400, detail=ERROR_CODES["INVALID_MINI_APP_DATA_STRUCTURE"])
    if "user" not in data:
        raise HTTPException(status_code=400, detail=ERROR_CODES["NO_USER_IN_INIT_DATA"])

    user = mini_app_user(data["user"])
    logger.info(
        "Auth success",
        extra={"event": "auth_success", "method": "mini_app", "telegram_user_id": user["telegram_id"]},
    )
    return {"ok": True, "telegram_id": user["telegram_id"], "user": user, "start_param": data.get("start_param")}


@router.get("/oidc/authorize")
def oidc_authorize(
    state: str,
    redirect_uri: str,
    code_challenge: Optional[str] = None,
    provider: TelegramOIDCProvider = Depends(get_oidc_provider),
):
    return {"url": provider.create_authorization_url(state, redirect_uri, code_challenge=code_challenge)}


@router.post("/oidc/verify")
def oidc_verify(payload: IdTokenIn, provider: TelegramOIDCProvider = Depends(get_oidc_provider)):
    """ID-токен, полученный внешним слоем обмена кода. Любой сбой проверки — 401 без подробностей."""
    result = provider.authenticate({"id_token": payload.id_token})
    if not result.ok:
        status = 400 if result.failed_at == OIDCStage.TOKEN_EXCHANGED else 401
        raise HTTPException(status_code=status, detail=ERROR_CODES["INVALID_ID_TOKEN"])

    info = result.user_info
    logger.info(
        "Auth success",
        extra={"event": "auth_success", "method": "oidc", "telegram_user_id": info["user"]["id"]},
    )
    return {"ok": True, **info}
