"""
api/main.py -- FastAPI application entry point for CipherWire.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan builds the shared response cipher and the token extractor once and
parks them on app.state. The cipher is warmed at startup so a bad AES_KEY
stops the process immediately instead of failing every encrypted response.

Error mapping: everything raised by core/ and auth/ is a CipherWireError.
The handlers below turn those into the ErrorResponse envelope. This is the
only place errors from those layers are logged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.responses import Response

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.responses import ResponseContext, get_response_context
from api.routes.v1.auth import router as auth_router
from auth.tokens import build_extractor
from core.cipher import ResponseCipher
from core.config import get_settings
from core.errors import (
    CipherError,
    CipherWireError,
    ClaimShapeError,
    ConfigurationError,
    EncodingError,
    TokenError,
)

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cipherwire.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build process-wide collaborators before the first request arrives.

    Startup order:
      1. Token extractor -- a malformed TOKEN_LOOKUP raises here.
      2. Cipher -- only when AES_ENABLED; warm() decodes the key and builds the
         AES handle so concurrent first requests find it ready.
    """
    settings = get_settings()
    logger.info("CipherWire API starting up")
    app.state.token_extractor = build_extractor(settings.token_lookup, settings.token_auth_scheme)
    if settings.aes_enabled:
        cipher = ResponseCipher(settings.aes_key)
        cipher.warm()
        app.state.cipher = cipher
        logger.info(
            "Response encryption enabled (%d excluded prefixes)",
            len(settings.aes_exclude_prefixes),
        )
    else:
        app.state.cipher = None
        logger.info("Response encryption disabled")

    yield

    logger.info("CipherWire API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CipherWire API",
    description="JSON responses with optional AES-256-CBC envelope encryption and token-carried identity.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly. Error bodies are never encrypted: a client that cannot
# decrypt must still be able to read why the request failed.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


@app.exception_handler(TokenError)
async def token_error_handler(request: Request, exc: TokenError) -> JSONResponse:
    """401 -- the caller is not authenticated."""
    response = _error(401, exc.code, "Authentication required.")
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(ClaimShapeError)
async def claim_shape_error_handler(request: Request, exc: ClaimShapeError) -> JSONResponse:
    """401 with a distinct code -- the token verified but its identity payload is malformed."""
    logger.warning("Malformed identity payload on %s %s: %s", request.method, request.url.path, exc)
    return _error(401, exc.code, "Token identity payload is malformed.")


@app.exception_handler(ConfigurationError)
@app.exception_handler(EncodingError)
@app.exception_handler(CipherError)
async def server_fault_handler(request: Request, exc: CipherWireError) -> JSONResponse:
    """500 -- the response could not be produced. Details stay in the server log."""
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return _error(500, exc.code, "The response could not be produced.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. Goes through the dispatcher like any other route -- add
# "/api/v1/health" to AES_EXCLUDE_PREFIXES for load balancers that need to
# read it in the clear.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
async def health(ctx: ResponseContext = Depends(get_response_context)) -> Response:
    """Return API liveness, version, and whether responses are encrypted."""
    return ctx.json(200, HealthResponse(version=__version__, encryption=get_settings().aes_enabled))
