"""
auth/tokens.py -- Bearer token extraction, issuance, and identity resolution.

Token shape:
  python-jose with HS256 (configurable). The "sub" claim is the user entity
  serialized as compact JSON -- not a username or id -- so a verified token is
  enough to rebuild the caller's identity without a store lookup:

      {"sub": "{\"id\":\"42\",\"name\":\"a\",...}", "aud": "<domain>",
       "jti": "<uuid4 hex>", "iat": ..., "exp": ...}

Failure split:
  TokenError       -- no token, bad signature, expired, wrong audience, no "sub".
                      The caller is not authenticated.
  ClaimShapeError  -- the token verified but "sub" is not JSON of the expected
                      user shape. The caller is authenticated but the identity
                      payload is malformed.

Extraction:
  TOKEN_LOOKUP lists the places a token may come from, tried in order, using
  the same "kind:name" syntax as echo's JWT middleware:
      header:Authorization      Authorization: Bearer <token>
      query:token               ?token=<token>
      cookie:access_token       Cookie: access_token=<token>

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, TypeVar

from jose import JWTError, jwt
from pydantic import TypeAdapter, ValidationError
from starlette.requests import Request

from auth.models import User
from core.config import get_settings
from core.errors import ClaimShapeError, ConfigurationError, TokenError

T = TypeVar("T")

TokenExtractor = Callable[[Request], str | None]


# ---------------------------------------------------------------------------
# Extraction strategies
# ---------------------------------------------------------------------------


def from_header(name: str, scheme: str = "") -> TokenExtractor:
    """Read the token from a header, stripping "<scheme> " when scheme is set.

    The scheme match is case-insensitive ("bearer" and "Bearer" both work). A
    header carrying a different scheme yields no token.
    """
    prefix = f"{scheme} " if scheme else ""

    def extract(request: Request) -> str | None:
        value = request.headers.get(name, "")
        if not prefix:
            return value or None
        if len(value) > len(prefix) and value[: len(prefix)].lower() == prefix.lower():
            return value[len(prefix) :]
        return None

    return extract


def from_query(name: str) -> TokenExtractor:
    def extract(request: Request) -> str | None:
        return request.query_params.get(name) or None

    return extract


def from_cookie(name: str) -> TokenExtractor:
    def extract(request: Request) -> str | None:
        return request.cookies.get(name) or None

    return extract


_SOURCES: dict[str, Callable[..., TokenExtractor]] = {
    "header": from_header,
    "query": from_query,
    "cookie": from_cookie,
}


def build_extractor(lookup: str, scheme: str = "Bearer") -> Callable[[Request], str]:
    """Compile a TOKEN_LOOKUP string into one extractor trying each source in order.

    The returned callable raises TokenError when no source yields a token.
    An unknown source kind is a ConfigurationError, raised here at build time.
    """
    extractors: list[TokenExtractor] = []
    for part in lookup.split(","):
        kind, sep, name = part.strip().partition(":")
        if not sep or not name or kind not in _SOURCES:
            raise ConfigurationError(f"Invalid token lookup source: {part.strip()!r}")
        if kind == "header":
            extractors.append(from_header(name, scheme))
        else:
            extractors.append(_SOURCES[kind](name))

    def extract(request: Request) -> str:
        for extractor in extractors:
            token = extractor(request)
            if token:
                return token
        raise TokenError("Missing or malformed bearer token.")

    return extract


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


@lru_cache
def _adapter(user_type: Any) -> TypeAdapter:
    return TypeAdapter(user_type)


def issue_token(domain: str, user: Any, expire: timedelta) -> tuple[str, str]:
    """Sign a token whose subject is the user's canonical JSON serialization.

    Args:
        domain: Audience the token is scoped to. Empty string omits "aud".
        user:   Any dataclass or pydantic model instance (typically User).
        expire: Lifetime. Zero or negative falls back to TOKEN_EXPIRE_SECONDS.

    Returns:
        (token, token_id) -- token_id is the "jti" claim, unique per issuance,
        for revocation or auditing by whoever stores it.
    """
    settings = get_settings()
    if expire <= timedelta(0):
        expire = timedelta(seconds=settings.token_expire_seconds)
    subject = _adapter(type(user)).dump_json(user).decode("utf-8")
    now = datetime.now(timezone.utc)
    token_id = uuid.uuid4().hex
    claims: dict[str, Any] = {
        "sub": subject,
        "jti": token_id,
        "iat": now,
        "exp": now + expire,
    }
    if domain:
        claims["aud"] = domain
    token = jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, token_id


def parse_token(token: str) -> dict:
    """Verify signature, expiry, and (when TOKEN_DOMAIN is set) audience.

    Returns the claims dict. Raises TokenError on any failure.
    """
    settings = get_settings()
    try:
        if settings.token_domain:
            claims = jwt.decode(
                token,
                settings.secret_key,
                algorithms=[settings.jwt_algorithm],
                audience=settings.token_domain,
                options={"require_aud": True},
            )
        else:
            claims = jwt.decode(
                token,
                settings.secret_key,
                algorithms=[settings.jwt_algorithm],
                options={"verify_aud": False},
            )
    except JWTError as exc:
        raise TokenError(f"Invalid token: {exc}") from exc
    if not isinstance(claims.get("sub"), str):
        raise TokenError("Token has no subject claim.")
    return claims


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------


def user_from_token(token: str, user_type: type[T] = User) -> T:
    """Parse token and deserialize its subject claim into user_type."""
    claims = parse_token(token)
    try:
        return _adapter(user_type).validate_json(claims["sub"])
    except ValidationError as exc:
        raise ClaimShapeError(f"Token subject is not a valid {getattr(user_type, '__name__', user_type)}") from exc


def user_from_request(
    request: Request,
    extractor: Callable[[Request], str] | None = None,
    user_type: type[T] = User,
) -> T:
    """Extract the bearer token from request and resolve it to a user.

    When extractor is None, one is built from TOKEN_LOOKUP / TOKEN_AUTH_SCHEME.
    """
    if extractor is None:
        settings = get_settings()
        extractor = build_extractor(settings.token_lookup, settings.token_auth_scheme)
    return user_from_token(extractor(request), user_type)
