"""
Верификация данных от Telegram Login Widget.

Алгоритм (https://core.telegram.org/widgets/login#checking-authorization):
1. Исключить поле "hash" из данных.
2. Отсортировать оставшиеся поля: "key=value", соединить через \\n.
3. secret_key = SHA256(bot_token) — в виде байтов, НЕ hex.
4. HMAC-SHA256(secret_key, data_check_string) == hash → данные подлинные.
5. auth_date не старше max_age_seconds (значение ровно на границе принимается).
"""
from __future__ import annotations

import logging
import time
from typing import Any

from tgauth.core.constants import DEFAULT_MAX_AUTH_AGE
from tgauth.core.crypto import hex_equals, hmac_sha256, sha256, to_hex
from tgauth.core.schemas import LoginWidgetPayload, UserMapper


logger = logging.getLogger("tgauth")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_data_check_string(fields: dict[str, Any]) -> str:
    """Sorted newline-joined key=value string; None values are treated as absent."""
    return "\n".join(
        f"{k}={_render_value(v)}" for k, v in sorted(fields.items()) if v is not None
    )


def verify_login_widget(
    payload: Any,
    bot_token: str,
    max_age_seconds: int = DEFAULT_MAX_AUTH_AGE,
    *,
    now: int | None = None,
) -> bool:
    """
    Возвращает True, если данные Login Widget подлинные и свежие.
    Никогда не бросает исключение на плохих входных данных — только False.
    """
    if not isinstance(payload, dict):
        return False

    if not all(isinstance(k, str) for k in payload):
        return False

    fields = dict(payload)
    received_hash = fields.pop("hash", None)
    if not isinstance(received_hash, str) or not received_hash:
        return False

    auth_date = fields.get("auth_date")
    if not _is_int(auth_date):
        return False

    current_time = int(time.time()) if now is None else now
    if current_time - auth_date > max_age_seconds:
        logger.info("Login widget data expired", extra={"event": "login_widget_rejected", "reason": "expired"})
        return False

    data_check_string = build_data_check_string(fields)
    secret_key = sha256(bot_token)
    expected_hash = to_hex(hmac_sha256(secret_key, data_check_string))

    if not hex_equals(expected_hash, received_hash):
        logger.info("Login widget hash mismatch", extra={"event": "login_widget_rejected", "reason": "hash_mismatch"})
        return False
    return True


def validate_login_widget_shape(value: Any) -> bool:
    """Type guard: id/auth_date — int, first_name/hash — str."""
    return (
        isinstance(value, dict)
        and _is_int(value.get("id"))
        and isinstance(value.get("first_name"), str)
        and _is_int(value.get("auth_date"))
        and isinstance(value.get("hash"), str)
    )


def login_widget_user(payload: LoginWidgetPayload, mapper: UserMapper | None = None) -> dict[str, Any]:
    """Данные пользователя из проверенного payload (Telegram не отдаёт email)."""
    if mapper is not None:
        user = dict(mapper(payload) or {})
    else:
        first_name = payload.get("first_name", "")
        last_name = payload.get("last_name")
        user = {
            "name": f"{first_name} {last_name}" if last_name else first_name,
            "image": payload.get("photo_url"),
            "email": None,
        }
    user["telegram_id"] = str(payload["id"])
    user["telegram_username"] = payload.get("username")
    return user
