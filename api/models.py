"""
API request and response models for CipherWire REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are kept separate from the dataclass in auth/models.py, which
owns the identity shape carried inside tokens. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str = Field(description="Machine-readable error code, e.g. 'unauthorized'.")
    message: str = Field(description="Human-readable summary.")
    detail: Optional[str] = Field(default=None, description="Optional extra context.")


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    encryption: bool = Field(description="Whether response encryption is enabled.")


class MeResponse(BaseModel):
    id: str
    name: str
    nickname: Optional[str] = None
    email: Optional[str] = None
    role: str

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(id=user.id, name=user.name, nickname=user.nickname, email=user.email, role=user.role)


class TokenResponse(BaseModel):
    """A freshly issued token. token_id is the jti claim, for revocation/audit."""

    access_token: str
    token_id: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Lifetime in seconds.")
