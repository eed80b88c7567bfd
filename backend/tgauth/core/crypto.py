"""
SHA-256 / HMAC-SHA256 примитивы для проверки подписей Telegram.
Ничего не знают о Telegram; ошибки здесь — это ошибка окружения, поэтому они пробрасываются.
"""
from __future__ import annotations

import hashlib
import hmac

from tgauth.core.errors import UnsupportedAlgorithmError


def _to_bytes(data: str | bytes) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    raise TypeError(f"Expected str or bytes, got {type(data).__name__}")


def digest(algorithm: str, data: bytes) -> bytes:
    """Digest over raw bytes. Only SHA-256 is supported ("sha256", "SHA-256", ...)."""
    name = (algorithm or "").replace("-", "").replace("_", "").lower()
    if name != "sha256":
        raise UnsupportedAlgorithmError(f"Unsupported digest algorithm: {algorithm!r}")
    return hashlib.sha256(_to_bytes(data)).digest()


def sha256(data: str | bytes) -> bytes:
    return digest("sha256", _to_bytes(data))


def hmac_sha256(key: bytes, data: str | bytes) -> bytes:
    """HMAC-SHA256(key, data). Пустой ключ — ошибка конфигурации, а не входных данных."""
    if not key:
        raise ValueError("HMAC key must not be empty")
    return hmac.new(key=bytes(key), msg=_to_bytes(data), digestmod=hashlib.sha256).digest()


def to_hex(raw: bytes) -> str:
    return raw.hex()


def hex_equals(expected: str, received: str) -> bool:
    # compare_digest падает на не-ASCII str, поэтому сравниваем байты
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
