"""
Telegram OIDC (oauth.telegram.org): scopes, проверка ID-токена RS256 по JWKS, claims → пользователь.

Стадии одной попытки входа: NOT_STARTED → AUTHORIZATION_REQUESTED → CODE_RECEIVED →
TOKEN_EXCHANGED → ID_TOKEN_VERIFIED → USER_INFO_RESOLVED → SUCCESS (или FAILED на любом шаге).
Обмен code → token (PKCE, state) делает внешний слой; сюда приходит только его результат.
"""
from __future__ import annotations

import enum
import functools
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode, urlsplit

import jwt
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tgauth.core.constants import (
    PLACEHOLDER_EMAIL_DOMAIN,
    TELEGRAM_OIDC_ALGORITHMS,
    TELEGRAM_OIDC_AUTH_ENDPOINT,
    TELEGRAM_OIDC_ISSUER,
    TELEGRAM_OIDC_PROVIDER_ID,
    TELEGRAM_OIDC_TOKEN_ENDPOINT,
)
from tgauth.core.errors import JWKSFetchError, JWKSKeyNotFoundError
from tgauth.core.schemas import OIDCClaims, UserMapper
from tgauth.core.jwks import (
    DEFAULT_JWKS_TIMEOUT_SECONDS,
    JWKSCache,
    JWKSFetcher,
    fetch_jwks,
    get_public_key,
)


logger = logging.getLogger("tgauth")

REQUIRED_CLAIMS = ["sub", "iss", "aud", "iat", "exp"]


class OIDCStage(str, enum.Enum):
    NOT_STARTED = "not_started"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    ID_TOKEN_VERIFIED = "id_token_verified"
    USER_INFO_RESOLVED = "user_info_resolved"
    SUCCESS = "success"
    FAILED = "failed"


class OIDCOptions(BaseModel):
    scopes: Optional[list[str]] = None  # None → ["openid", "profile"]
    request_phone: bool = False
    request_bot_access: bool = False
    map_profile_to_user: Optional[Callable[[dict], Optional[dict]]] = None
    clock_skew_seconds: int = 0


class OAuth2Tokens(BaseModel):
    """Ответ token endpoint (от внешнего слоя обмена кода)."""

    model_config = ConfigDict(populate_by_name=True)

    id_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("id_token", "idToken"))
    access_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("access_token", "accessToken"))
    token_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("token_type", "tokenType"))
    raw: dict = Field(default_factory=dict)


class OIDCResult(BaseModel):
    stage: OIDCStage
    failed_at: Optional[OIDCStage] = None
    user_info: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.stage == OIDCStage.SUCCESS


def build_scopes(options: OIDCOptions | dict | None = None, extra_scopes: list[str] | None = None) -> list[str]:
    """openid всегда; profile — только если явный список scopes не задан; без дублей, порядок вставки."""
    if options is None:
        options = OIDCOptions()
    elif isinstance(options, dict):
        options = OIDCOptions(**options)

    scopes: dict[str, None] = {"openid": None}
    if options.scopes is not None:
        for scope in options.scopes:
            scopes[scope] = None
    else:
        scopes["profile"] = None
    if options.request_phone:
        scopes["phone"] = None
    if options.request_bot_access:
        scopes["telegram:bot_access"] = None
    for scope in extra_scopes or ():
        scopes[scope] = None
    return list(scopes)


def _reject(reason: str, level: int = logging.INFO, **extra: Any) -> bool:
    # Причина отказа уходит только в лог; вызывающему — всегда просто False
    logger.log(level, "OIDC id_token rejected", extra={"event": "oidc_verify_failed", "reason": reason, **extra})
    return False


def _resolve_key(kid: str, jwks_fetcher: JWKSFetcher) -> Any:
    try:
        return get_public_key(kid, jwks_fetcher())
    except JWKSKeyNotFoundError:
        if not isinstance(jwks_fetcher, JWKSCache) or not jwks_fetcher.refresh_on_miss():
            raise
        # Кэшированный набор мог устареть после ротации — перечитываем один раз
        return get_public_key(kid, jwks_fetcher())


def verify_id_token(
    token: str,
    client_id: str,
    *,
    jwks_fetcher: JWKSFetcher | None = None,
    leeway: int = 0,
    timeout: float = DEFAULT_JWKS_TIMEOUT_SECONDS,
) -> bool:
    """
    Проверка ID-токена Telegram: kid/alg в заголовке, подпись RS256 по JWKS, iss, aud, iat/exp.
    Возвращает bool и никогда не бросает исключение.
    """
    if jwks_fetcher is None:
        jwks_fetcher = functools.partial(fetch_jwks, timeout=timeout)

    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError:
        return _reject("malformed_header")
    kid = header.get("kid")
    alg = header.get("alg")
    if not (kid and alg):
        return _reject("missing_kid_or_alg")
    if alg not in TELEGRAM_OIDC_ALGORITHMS:
        return _reject("unsupported_alg", alg=str(alg))

    try:
        public_key = _resolve_key(kid, jwks_fetcher)
        jwt.decode(
            token,
            public_key,
            algorithms=TELEGRAM_OIDC_ALGORITHMS,
            audience=client_id,
            issuer=TELEGRAM_OIDC_ISSUER,
            leeway=leeway,
            options={"require": REQUIRED_CLAIMS, "strict_aud": True},
        )
    except JWKSFetchError as e:
        return _reject("jwks_fetch_failed", logging.ERROR, detail=str(e))
    except JWKSKeyNotFoundError:
        return _reject("kid_not_found", logging.ERROR, kid=str(kid))
    except jwt.ExpiredSignatureError:
        return _reject("expired")
    except jwt.InvalidIssuerError:
        return _reject("invalid_issuer")
    except jwt.InvalidAudienceError:
        return _reject("invalid_audience")
    except jwt.PyJWTError as e:
        return _reject("invalid_token", detail=type(e).__name__)
    except Exception:
        logger.exception("OIDC id_token verification crashed", extra={"event": "oidc_verify_failed", "reason": "unexpected"})
        return False
    return True


def _load_tokens(tokens: OAuth2Tokens | dict) -> OAuth2Tokens | None:
    if isinstance(tokens, OAuth2Tokens):
        return tokens
    try:
        return OAuth2Tokens.model_validate(tokens)
    except ValidationError as e:
        logger.warning(
            "OIDC token response is malformed",
            extra={"event": "oidc_user_info_missing", "reason": "invalid_token_response", "detail": str(e)},
        )
        return None


def decode_claims(id_token: str) -> OIDCClaims:
    """Claims без проверки подписи (подпись проверена раньше в verify_id_token)."""
    return jwt.decode(id_token, options={"verify_signature": False})


def get_user_info(
    tokens: OAuth2Tokens | dict,
    mapper: UserMapper | None = None,
) -> dict | None:
    """{"user": {...}, "data": claims} или None, если токена/sub нет или он не декодируется."""
    tokens = _load_tokens(tokens)
    if tokens is None:
        return None

    if not tokens.id_token:
        logger.warning(
            "OIDC getUserInfo: no id_token in token response",
            extra={"event": "oidc_user_info_missing", "reason": "no_id_token"},
        )
        return None

    try:
        claims = decode_claims(tokens.id_token)
    except jwt.PyJWTError as e:
        logger.warning(
            "OIDC getUserInfo: failed to decode id_token",
            extra={"event": "oidc_user_info_missing", "reason": "decode_failed", "detail": str(e)},
        )
        return None

    sub = claims.get("sub")
    if not sub:
        logger.warning(
            "OIDC getUserInfo: id_token has no sub claim",
            extra={"event": "oidc_user_info_missing", "reason": "no_sub", "claims": sorted(claims)},
        )
        return None

    user = {
        "id": str(sub),
        "name": claims.get("name"),
        "image": claims.get("picture"),
        "email": f"{sub}@{PLACEHOLDER_EMAIL_DOMAIN}",
        "email_verified": False,
    }
    if mapper is not None:
        for key, value in (mapper(claims) or {}).items():
            if value is not None:
                user[key] = value
    user["email_verified"] = False
    return {"user": user, "data": claims}


class TelegramOIDCProvider:
    """OIDC-провайдер Telegram: client_id = числовой id бота, client_secret = токен бота."""

    id = TELEGRAM_OIDC_PROVIDER_ID
    name = "Telegram"
    authorization_endpoint = TELEGRAM_OIDC_AUTH_ENDPOINT
    token_endpoint = TELEGRAM_OIDC_TOKEN_ENDPOINT  # для внешнего слоя обмена кода

    def __init__(
        self,
        bot_token: str,
        options: OIDCOptions | None = None,
        *,
        jwks_fetcher: JWKSFetcher | None = None,
        timeout: float = DEFAULT_JWKS_TIMEOUT_SECONDS,
    ):
        if not bot_token:
            raise ValueError("Telegram OIDC: bot token is required")
        self.options = options or OIDCOptions()
        self.client_id = bot_token.split(":")[0]
        self.client_secret = bot_token
        self.jwks_fetcher = jwks_fetcher
        self.timeout = timeout

    def create_authorization_url(
        self,
        state: str,
        redirect_uri: str,
        scopes: list[str] | None = None,
        code_challenge: str | None = None,
    ) -> str:
        # Telegram требует origin, совпадающий с redirect_uri, и bot_id помимо client_id
        parts = urlsplit(redirect_uri)
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(build_scopes(self.options, scopes)),
            "state": state,
        }
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        params["origin"] = f"{parts.scheme}://{parts.netloc}"
        params["bot_id"] = self.client_id
        return f"{TELEGRAM_OIDC_AUTH_ENDPOINT}?{urlencode(params)}"

    def verify_id_token(self, token: str) -> bool:
        return verify_id_token(
            token,
            self.client_id,
            jwks_fetcher=self.jwks_fetcher,
            leeway=self.options.clock_skew_seconds,
            timeout=self.timeout,
        )

    def get_user_info(self, tokens: OAuth2Tokens | dict) -> dict | None:
        return get_user_info(tokens, self.options.map_profile_to_user)

    def authenticate(self, tokens: OAuth2Tokens | dict) -> OIDCResult:
        """TOKEN_EXCHANGED → ID_TOKEN_VERIFIED → USER_INFO_RESOLVED → SUCCESS; иначе FAILED с шагом."""
        tokens = _load_tokens(tokens)
        if tokens is None or not tokens.id_token:
            return OIDCResult(stage=OIDCStage.FAILED, failed_at=OIDCStage.TOKEN_EXCHANGED)
        if not self.verify_id_token(tokens.id_token):
            return OIDCResult(stage=OIDCStage.FAILED, failed_at=OIDCStage.ID_TOKEN_VERIFIED)
        info = self.get_user_info(tokens)
        if info is None:
            return OIDCResult(stage=OIDCStage.FAILED, failed_at=OIDCStage.USER_INFO_RESOLVED)
        return OIDCResult(stage=OIDCStage.SUCCESS, user_info=info)
