"""
Telegram Mini App initData: проверка подписи, разбор и структурная проверка.
https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import parse_qsl

from tgauth.core.constants import DEFAULT_MAX_AUTH_AGE, WEB_APP_DATA_KEY
from tgauth.core.crypto import hex_equals, hmac_sha256, to_hex
from tgauth.core.schemas import MiniAppInitData, UserMapper


logger = logging.getLogger("tgauth")

JSON_FIELDS = ("user", "receiver", "chat")
INT_FIELDS = ("auth_date", "can_send_after")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def verify_mini_app_init_data(
    init_data: str,
    bot_token: str,
    max_age_seconds: int = DEFAULT_MAX_AUTH_AGE,
    *,
    now: int | None = None,
) -> bool:
    """
    Verifies Telegram WebApp initData signature and freshness.
    Returns False on any failure; never raises on bad input.
    """
    if not isinstance(init_data, str) or not init_data:
        return False

    pairs = parse_qsl(init_data, keep_blank_values=True)
    received_hash = next((v for (k, v) in pairs if k == "hash"), None)
    if not received_hash:
        return False

    check_pairs = [(k, v) for (k, v) in pairs if k != "hash"]
    auth_date_raw = next((v for (k, v) in check_pairs if k == "auth_date"), None)
    if not auth_date_raw:
        return False
    try:
        auth_date = int(auth_date_raw)
    except ValueError:
        return False

    current_time = int(time.time()) if now is None else now
    if current_time - auth_date > max_age_seconds:
        logger.info("initData expired", extra={"event": "mini_app_rejected", "reason": "expired"})
        return False

    # JSON в user/chat/receiver подписывается как есть, без повторной сериализации
    check_pairs.sort(key=lambda kv: kv[0])
    data_check_string = "\n".join([f"{k}={v}" for (k, v) in check_pairs])

    # secret_key = HMAC_SHA256(key="WebAppData", message=bot_token)
    secret_key = hmac_sha256(WEB_APP_DATA_KEY, bot_token)
    calculated_hash = to_hex(hmac_sha256(secret_key, data_check_string))

    if not hex_equals(calculated_hash, received_hash):
        logger.info("initData hash mismatch", extra={"event": "mini_app_rejected", "reason": "hash_mismatch"})
        return False
    return True


def parse_mini_app_init_data(init_data: str) -> MiniAppInitData:
    """
    Разбор initData в словарь. user/receiver/chat — JSON, auth_date/can_send_after — int.
    Поле, которое не удалось разобрать, просто пропускается: подлинность строки уже проверена HMAC.
    """
    data: dict[str, Any] = {}
    for key, value in parse_qsl(init_data or "", keep_blank_values=True):
        if key in JSON_FIELDS:
            try:
                parsed = json.loads(value)
            except ValueError:
                continue
            if isinstance(parsed, dict):
                data[key] = parsed
        elif key in INT_FIELDS:
            try:
                data[key] = int(value)
            except ValueError:
                continue
        else:
            data[key] = value
    return data


def validate_mini_app_shape(value: Any) -> bool:
    """Type guard: auth_date — int, hash — str, user (если есть) — с int id и str first_name."""
    if not isinstance(value, dict):
        return False
    if not _is_int(value.get("auth_date")) or not isinstance(value.get("hash"), str):
        return False
    if "user" not in value:
        return True
    user = value["user"]
    return (
        isinstance(user, dict)
        and _is_int(user.get("id"))
        and isinstance(user.get("first_name"), str)
    )


def mini_app_user(user: dict[str, Any], mapper: UserMapper | None = None) -> dict[str, Any]:
    if mapper is not None:
        result = dict(mapper(user) or {})
    else:
        first_name = user.get("first_name", "")
        last_name = user.get("last_name")
        result = {
            "name": f"{first_name} {last_name}" if last_name else first_name,
            "image": user.get("photo_url"),
            "email": None,
        }
    result["telegram_id"] = str(user["id"])
    result["telegram_username"] = user.get("username")
    return result
