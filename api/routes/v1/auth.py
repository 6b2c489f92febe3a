"""
api/routes/v1/auth.py -- Identity endpoints.

Routes:
  GET  /api/v1/auth/me          -- current user info (requires auth)
  GET  /api/v1/auth/me.js       -- same, as JSONP (?callback=fn)
  POST /api/v1/auth/refresh     -- issue a fresh token for the current user

All bodies go through ResponseContext, so they are encrypted whenever
AES_ENABLED is on and the path is not in AES_EXCLUDE_PREFIXES. JSONP is
never encrypted.

Security:
  POST /refresh is rate-limited per IP (REFRESH_RATE_LIMIT, default 10/minute).
  Cache-Control: no-store on token responses.
  The JSONP callback name is restricted to a JavaScript identifier path so the
  reflected prefix cannot carry script.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import Response

from api.limiter import limiter
from api.models import MeResponse, TokenResponse
from api.responses import ResponseContext, get_response_context
from auth.dependencies import get_current_user
from auth.models import User
from auth.tokens import issue_token
from core.config import get_settings

_CALLBACK_PATTERN = r"^[A-Za-z_$][A-Za-z0-9_$]*(\.[A-Za-z_$][A-Za-z0-9_$]*)*$"

router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
async def me(
    current_user: User = Depends(get_current_user),
    ctx: ResponseContext = Depends(get_response_context),
) -> Response:
    """Return identity information for the currently authenticated user."""
    return ctx.json(200, MeResponse.from_user(current_user))


@router.get("/auth/me.js", include_in_schema=False)
async def me_jsonp(
    callback: str = Query(pattern=_CALLBACK_PATTERN, max_length=64),
    current_user: User = Depends(get_current_user),
    ctx: ResponseContext = Depends(get_response_context),
) -> Response:
    """JSONP variant of /auth/me for legacy script-tag consumers."""
    return ctx.jsonp(200, callback, MeResponse.from_user(current_user))


@limiter.limit(lambda: get_settings().refresh_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    current_user: User = Depends(get_current_user),
    ctx: ResponseContext = Depends(get_response_context),
) -> Response:
    """Issue a new token carrying the caller's current identity.

    The old token stays valid until its own expiry; callers that need
    revocation record token_id and check it in their own store.
    """
    settings = get_settings()
    token, token_id = issue_token(
        settings.token_domain,
        current_user,
        timedelta(seconds=settings.token_expire_seconds),
    )
    ctx.headers["Cache-Control"] = "no-store"
    return ctx.json(
        200,
        TokenResponse(
            access_token=token,
            token_id=token_id,
            expires_in=settings.token_expire_seconds,
        ),
    )
