"""
Фикстуры для тестов ядра верификации: токен бота, подписанные payload'ы, RSA-ключи для OIDC.
"""
from __future__ import annotations

import json
import os
import sys
import time
from urllib.parse import urlencode

# Настраиваем env до импорта tgauth (settings читаются при импорте)
os.environ.setdefault("BOT_TOKEN", "123456789:ABCdefGHIjklMNOpqrsTUVwxyz")
os.environ.setdefault("BOT_USERNAME", "test_auth_bot")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Добавляем backend в path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt
from jwt.algorithms import RSAAlgorithm
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from tgauth.core.constants import TELEGRAM_OIDC_ISSUER, WEB_APP_DATA_KEY
from tgauth.core.crypto import hmac_sha256, sha256, to_hex
from tgauth.core.login_widget import build_data_check_string


BOT_TOKEN = "123456789:ABCdefGHIjklMNOpqrsTUVwxyz"
BOT_ID = "123456789"
KID = "test-key-1"


def sign_login_widget(fields: dict, bot_token: str = BOT_TOKEN) -> dict:
    """Payload Login Widget с корректным hash."""
    secret = sha256(bot_token)
    signed = dict(fields)
    signed["hash"] = to_hex(hmac_sha256(secret, build_data_check_string(fields)))
    return signed


def mini_app_hash(params: dict, bot_token: str = BOT_TOKEN) -> str:
    data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(params.items()))
    secret = hmac_sha256(WEB_APP_DATA_KEY, bot_token)
    return to_hex(hmac_sha256(secret, data_check_string))


def make_init_data(
    user: dict | None = None,
    auth_date: int | None = None,
    extra_params: dict | None = None,
    bot_token: str = BOT_TOKEN,
    raw_user: str | None = None,
) -> str:
    """Корректно подписанная строка initData."""
    if auth_date is None:
        auth_date = int(time.time())
    params = {"auth_date": str(auth_date)}
    if raw_user is not None:
        params["user"] = raw_user
    else:
        params["user"] = json.dumps(user or {"id": 12345, "first_name": "Test", "username": "testuser"})
    if extra_params:
        params.update(extra_params)
    params["hash"] = mini_app_hash(params, bot_token)
    return urlencode(params)


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key():
    """Посторонний ключ: подписанный им токен не должен проходить проверку."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def jwks(rsa_private_key) -> dict:
    jwk = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    jwk.update({"kid": KID, "alg": "RS256", "use": "sig"})
    return {"keys": [jwk]}


@pytest.fixture
def make_id_token(rsa_private_key):
    def _make(claims: dict | None = None, *, key=None, headers: dict | None = None, drop: tuple = ()) -> str:
        now = int(time.time())
        payload = {
            "sub": "987654321",
            "iss": TELEGRAM_OIDC_ISSUER,
            "aud": BOT_ID,
            "iat": now,
            "exp": now + 3600,
            "name": "John Doe",
            "picture": "https://t.me/i/userpic/320/john.jpg",
            "preferred_username": "johndoe",
        }
        payload.update(claims or {})
        for name in drop:
            payload.pop(name, None)
        return jwt.encode(
            payload,
            key if key is not None else rsa_private_key,
            algorithm="RS256",
            headers={"kid": KID} if headers is None else headers,
        )

    return _make


@pytest.fixture
def test_settings():
    from tgauth.core.settings import Settings

    return Settings(
        bot_token=BOT_TOKEN,
        bot_username="test_auth_bot",
        max_auth_age=3600,
        mini_app_enabled=True,
        mini_app_validate_init_data=True,
        oidc_enabled=True,
    )


@pytest.fixture
def app(test_settings):
    from tgauth.main import create_app
    from tgauth.routes.telegram import get_settings

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    return app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app, base_url="http://testserver")
