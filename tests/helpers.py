"""
tests/helpers.py -- Plain helpers shared by test modules.

  - make_request(): a bare Starlette Request for unit-testing the dispatcher
    and token extractors without running the ASGI stack
  - decrypt_envelope(): the decrypting side of the wire format, used to check
    round-trips (the package itself only encrypts)
"""

from __future__ import annotations

import binascii
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from starlette.requests import Request

TEST_AES_KEY = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"


def make_request(
    path: str = "/",
    query: str = "",
    headers: dict[str, str] | None = None,
    app: Any = None,
) -> Request:
    """Build a minimal HTTP Request scope for code that only reads path/query/headers."""
    scope: dict[str, Any] = {}
    if app is not None:
        scope["app"] = app
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "root_path": "",
            "query_string": query.encode("latin-1"),
            "headers": raw_headers,
            **scope,
        }
    )


def decrypt_envelope(envelope: bytes, key_hex: str = TEST_AES_KEY) -> bytes:
    """Split hex(IV || ciphertext), AES-256-CBC decrypt, strip PKCS#7."""
    raw = binascii.unhexlify(envelope)
    iv, ciphertext = raw[:16], raw[16:]
    decryptor = Cipher(algorithms.AES(binascii.unhexlify(key_hex)), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return unpadder.update(padded) + unpadder.finalize()
