"""Формы данных Telegram (только для документации и type-checker'а — в рантайме это обычные dict)."""
from __future__ import annotations

from typing import Any, Callable, Dict, Literal, Optional, TypedDict


class _LoginWidgetOptional(TypedDict, total=False):
    last_name: str
    username: str
    photo_url: str


class LoginWidgetPayload(_LoginWidgetOptional):
    id: int
    first_name: str
    auth_date: int
    hash: str


class MiniAppUser(TypedDict, total=False):
    id: int
    first_name: str
    last_name: str
    username: str
    language_code: str
    is_bot: bool
    is_premium: bool
    allows_write_to_pm: bool
    photo_url: str


class MiniAppChat(TypedDict, total=False):
    id: int
    type: str
    title: str
    username: str
    photo_url: str


class MiniAppInitData(TypedDict, total=False):
    auth_date: int
    hash: str
    user: MiniAppUser
    receiver: MiniAppUser
    chat: MiniAppChat
    chat_type: Literal["sender", "private", "group", "supergroup", "channel"]
    chat_instance: str
    start_param: str
    query_id: str
    can_send_after: int


class _OIDCClaimsOptional(TypedDict, total=False):
    name: str
    picture: str
    preferred_username: str
    phone_number: str


class OIDCClaims(_OIDCClaimsOptional):
    sub: str
    iss: str
    aud: str
    iat: int
    exp: int


# name / email / image / любые дополнительные поля пользователя
UserMapper = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]
