"""
core/errors.py -- Exception taxonomy for CipherWire.

Every error raised by core/ and auth/ derives from CipherWireError. Nothing in
those packages logs or swallows these -- they propagate to the immediate caller
(the response dispatcher or the handler resolving identity). The API layer maps
them to HTTP responses in api/main.py.

Two families:
  Server-side faults (ConfigurationError, EncodingError, CipherError) -- the
      response cannot be produced. Mapped to 500 and logged at the API edge.
  Caller-side faults (TokenError, ClaimShapeError) -- the caller could not be
      identified. Mapped to 401 with distinct error codes.

ClaimShapeError does NOT inherit from TokenError: a token that
verifies but carries a malformed identity payload is a different condition from
"not authenticated", and callers must be able to tell the two apart.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""


class CipherWireError(Exception):
    """Base class for all errors raised by this package."""

    code = "internal_error"


class ConfigurationError(CipherWireError):
    """Bad key material or cipher construction failure. Fatal, never retried."""

    code = "configuration_error"


class EncodingError(CipherWireError):
    """Payload could not be serialized to JSON."""

    code = "encoding_error"


class CipherError(CipherWireError):
    """The block cipher operation itself failed."""

    code = "cipher_error"


class TokenError(CipherWireError):
    """Token missing, malformed, expired, or failing signature verification."""

    code = "unauthorized"


class ClaimShapeError(CipherWireError):
    """Token verified, but its subject is not valid JSON of the expected user shape."""

    code = "malformed_identity"
