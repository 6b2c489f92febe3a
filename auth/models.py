"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Token code serializes
and validates these through pydantic TypeAdapter, so any dataclass or pydantic
model can stand in for User when a service needs a richer identity shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """The identity carried in a token's subject claim.

    Serialized as compact JSON into "sub" at issue time and validated back into
    this shape on every authenticated request. id and name are required; a
    subject missing either is a malformed identity, not an anonymous caller.
    """

    id: str
    name: str
    nickname: str | None = None
    email: str | None = None
    role: str = "user"  # "admin", "user"
