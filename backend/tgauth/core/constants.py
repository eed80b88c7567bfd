from __future__ import annotations


# Сообщения об ошибках для HTTP-слоя (в ответ уходит только текст, без причины отказа)
ERROR_CODES = {
    "BOT_TOKEN_REQUIRED": "Telegram auth: BOT_TOKEN is required",
    "INVALID_AUTH_DATA": "Invalid Telegram auth data",
    "INVALID_AUTHENTICATION": "Invalid Telegram authentication",
    "INIT_DATA_REQUIRED": "initData is required and must be a string",
    "INVALID_MINI_APP_INIT_DATA": "Invalid Mini App initData",
    "INVALID_MINI_APP_DATA_STRUCTURE": "Invalid Mini App data structure",
    "NO_USER_IN_INIT_DATA": "No user data in initData",
    "MINI_APP_DISABLED": "Telegram Mini App support is disabled",
    "OIDC_DISABLED": "Telegram OIDC support is disabled",
    "INVALID_ID_TOKEN": "Invalid Telegram ID token",
}

DEFAULT_MAX_AUTH_AGE = 86400  # 24 часа

# Вторая ступень ключа Mini App: secret_key = HMAC_SHA256(key="WebAppData", message=bot_token)
WEB_APP_DATA_KEY = b"WebAppData"

TELEGRAM_OIDC_PROVIDER_ID = "telegram-oidc"
TELEGRAM_OIDC_ISSUER = "https://oauth.telegram.org"
TELEGRAM_OIDC_AUTH_ENDPOINT = "https://oauth.telegram.org/auth"
TELEGRAM_OIDC_TOKEN_ENDPOINT = "https://oauth.telegram.org/token"
TELEGRAM_OIDC_JWKS_URI = "https://oauth.telegram.org/.well-known/jwks.json"
TELEGRAM_OIDC_ALGORITHMS = ["RS256"]

# Telegram не отдаёт email, а связке аккаунтов нужен непустой адрес
PLACEHOLDER_EMAIL_DOMAIN = "telegram.oidc"
