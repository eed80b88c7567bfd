from __future__ import annotations

from typing import Optional

from pydantic import BaseModel
from dotenv import load_dotenv
import os


load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Optional[list[str]]:
    raw = os.getenv(name)
    if raw is None:
        return None  # не задано — scopes по умолчанию (openid + profile)
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseModel):
    bot_token: str = os.getenv("BOT_TOKEN", "")
    bot_username: str = os.getenv("BOT_USERNAME", "")
    max_auth_age: int = int(os.getenv("MAX_AUTH_AGE", "86400"))  # 24 часа — окно против replay

    mini_app_enabled: bool = _env_bool("MINI_APP_ENABLED", False)
    mini_app_validate_init_data: bool = _env_bool("MINI_APP_VALIDATE_INIT_DATA", True)

    oidc_enabled: bool = _env_bool("OIDC_ENABLED", False)
    oidc_scopes: Optional[list[str]] = _env_list("OIDC_SCOPES")
    oidc_request_phone: bool = _env_bool("OIDC_REQUEST_PHONE", False)
    oidc_request_bot_access: bool = _env_bool("OIDC_REQUEST_BOT_ACCESS", False)
    oidc_clock_skew_seconds: int = int(os.getenv("OIDC_CLOCK_SKEW_SECONDS", "0"))
    jwks_timeout_seconds: float = float(os.getenv("JWKS_TIMEOUT_SECONDS", "5"))
    jwks_cache_ttl_seconds: int = int(os.getenv("JWKS_CACHE_TTL_SECONDS", "0"))  # 0 — без кэша

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
