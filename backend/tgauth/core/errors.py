from __future__ import annotations


class TelegramAuthError(Exception):
    """Базовая ошибка ядра верификации."""


class UnsupportedAlgorithmError(TelegramAuthError, ValueError):
    """Запрошен алгоритм хеширования, кроме SHA-256."""


class JWKSFetchError(TelegramAuthError):
    """JWKS недоступен или пришёл без массива keys — верификатор не может работать."""


class JWKSKeyNotFoundError(TelegramAuthError):
    """В наборе ключей нет kid из заголовка токена (ротация ключей или неверная конфигурация)."""

    def __init__(self, kid: str):
        super().__init__(f"JWK with kid {kid} not found")
        self.kid = kid
