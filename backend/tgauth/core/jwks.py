"""
JWKS Telegram OIDC: загрузка набора ключей и опциональный TTL-кэш поверх неё.
Кэш живёт снаружи verify_id_token — верификатору передаётся любой callable, возвращающий JWKS.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import jwt
import requests

from tgauth.core.constants import TELEGRAM_OIDC_ISSUER, TELEGRAM_OIDC_JWKS_URI
from tgauth.core.errors import JWKSFetchError, JWKSKeyNotFoundError


logger = logging.getLogger("tgauth")

DEFAULT_JWKS_TIMEOUT_SECONDS = 5.0

JWKSFetcher = Callable[[], dict]


def fetch_jwks(timeout: float = DEFAULT_JWKS_TIMEOUT_SECONDS) -> dict:
    """GET JWKS_URI. Любая проблема (сеть, таймаут, статус, тело без keys) — JWKSFetchError."""
    try:
        resp = requests.get(TELEGRAM_OIDC_JWKS_URI, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise JWKSFetchError(f"Failed to fetch Telegram JWKS: {e}") from e
    except ValueError as e:
        raise JWKSFetchError("Telegram JWKS is not valid JSON") from e

    if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
        raise JWKSFetchError("Failed to fetch Telegram JWKS: no keys")
    return data


def get_public_key(kid: str, jwks: dict) -> Any:
    """Public key object for kid; JWKSKeyNotFoundError if the set has no such key."""
    keys = jwks.get("keys") if isinstance(jwks, dict) else None
    if not isinstance(keys, list):
        raise JWKSFetchError("Failed to fetch Telegram JWKS: no keys")
    for jwk in keys:
        if isinstance(jwk, dict) and jwk.get("kid") == kid:
            return jwt.PyJWK(jwk).key
    raise JWKSKeyNotFoundError(kid)


class JWKSCache:
    """
    TTL-кэш JWKS по issuer. Вызов экземпляра возвращает набор ключей.
    refresh_on_miss() сбрасывает набор, если kid не найден (не чаще раза в ttl_seconds / 10),
    поэтому отозванный/сменившийся ключ не держится дольше ttl_seconds.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        fetcher: JWKSFetcher | None = None,
        issuer: str = TELEGRAM_OIDC_ISSUER,
    ):
        self.ttl_seconds = ttl_seconds
        self.issuer = issuer
        self._fetcher = fetcher or fetch_jwks
        self._entries: dict[str, tuple[float, dict]] = {}
        self._lock = threading.Lock()
        self._last_forced_refresh: float | None = None

    def __call__(self) -> dict:
        with self._lock:
            entry = self._entries.get(self.issuer)
            now = time.monotonic()
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return entry[1]
            jwks = self._fetcher()
            self._entries[self.issuer] = (now, jwks)
            logger.debug("JWKS refreshed", extra={"event": "jwks_refreshed", "issuer": self.issuer})
            return jwks

    def invalidate(self) -> None:
        with self._lock:
            self._entries.pop(self.issuer, None)

    def refresh_on_miss(self) -> bool:
        """Сбросить набор из-за неизвестного kid, но не чаще раза в ttl_seconds / 10."""
        with self._lock:
            now = time.monotonic()
            last = self._last_forced_refresh
            if last is not None and now - last < self.ttl_seconds / 10:
                return False
            self._last_forced_refresh = now
            self._entries.pop(self.issuer, None)
            return True
