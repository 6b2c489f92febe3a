"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The token extractor is compiled once at startup from TOKEN_LOOKUP and stored on
app.state.token_extractor (see api/main.py lifespan). Both helpers read it from
there so every route agrees on where tokens come from.

get_current_user() lets TokenError / ClaimShapeError propagate; the exception
handlers in api/main.py turn them into 401 responses with distinct codes.
try_get_current_user() is the soft variant for routes that serve both
anonymous and authenticated callers.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import User
from auth.tokens import user_from_request
from core.errors import TokenError


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    extractor = getattr(request.app.state, "token_extractor", None)
    return user_from_request(request, extractor)


def try_get_current_user(request: Request) -> User | None:
    """Return the caller, or None when no valid token was presented.

    A verified token with a malformed subject still raises ClaimShapeError --
    that caller did authenticate, and silently treating them as anonymous
    would hide a broken issuer.
    """
    try:
        return get_current_user(request)
    except TokenError:
        return None
