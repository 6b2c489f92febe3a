"""
core/cipher.py -- AES-256-CBC envelope encryption for outbound JSON bodies.

Envelope format (what clients receive):
  hex( IV[16] || AES-256-CBC( PKCS7(plaintext) ) )

The IV is not secret; it travels in front of the ciphertext so the decrypting
side (a separate collaborator holding the same key) can split it off as the
first 32 hex characters. Decryption is not part of this module.

Security design decisions:
  Key: configured as 64 hex characters, decoded to exactly 32 bytes. AES also
       accepts 16- and 24-byte keys, but anything other than AES-256 is
       rejected as a ConfigurationError.

  IV:  os.urandom(16) on every call. Never cached, never derived from the
       plaintext. os.urandom is safe to call from many threads at once.

  Lazy handle: the AES algorithm object is built on first use and cached for
       the process lifetime (keys are not rotated without a restart). The build
       runs under a lock with a double-checked fast path, and the handle is
       published only once fully constructed, so concurrent first callers never
       observe a half-built handle. A failed build is cached too -- every
       later call re-raises the same ConfigurationError instead of silently
       re-attempting.

Library: cryptography (hazmat Cipher/algorithms/modes/padding).

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import binascii
import os
import threading

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.errors import CipherError, ConfigurationError

AES_KEY_BYTES = 32
AES_BLOCK_BYTES = algorithms.AES.block_size // 8


def pkcs7_pad(data: bytes, block_size: int) -> bytes:
    """Return data padded with PKCS#7 to a multiple of block_size bytes.

    Always appends between 1 and block_size bytes, each equal to the pad
    length -- a full block of padding when data is already aligned.
    """
    padder = padding.PKCS7(block_size * 8).padder()
    return padder.update(data) + padder.finalize()


def decode_key(key_hex: str) -> bytes:
    """Decode a hex key string into 32 raw bytes, or raise ConfigurationError."""
    try:
        key = binascii.unhexlify(key_hex)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise ConfigurationError(f"AES key is not valid hex: {exc}") from exc
    if len(key) != AES_KEY_BYTES:
        raise ConfigurationError(f"AES key must decode to {AES_KEY_BYTES} bytes, got {len(key)}")
    return key


class ResponseCipher:
    """Lazily-initialised AES-256-CBC encryptor shared by all requests.

    Usage:
        cipher = ResponseCipher(settings.aes_key)
        envelope = cipher.encrypt(b'{"ok":true}')   # b"9f1c...": hex bytes
    """

    def __init__(self, key_hex: str) -> None:
        self._key_hex = key_hex
        self._lock = threading.Lock()
        self._algorithm: algorithms.AES | None = None
        self._failure: ConfigurationError | None = None

    @property
    def block_size(self) -> int:
        return AES_BLOCK_BYTES

    def warm(self) -> None:
        """Build the handle now. Raises ConfigurationError if the key is unusable."""
        self._handle()

    def _handle(self) -> algorithms.AES:
        algorithm = self._algorithm
        if algorithm is not None:
            return algorithm
        with self._lock:
            if self._algorithm is not None:
                return self._algorithm
            if self._failure is not None:
                raise self._failure.with_traceback(None)
            try:
                built = algorithms.AES(decode_key(self._key_hex))
            except ConfigurationError as exc:
                self._failure = exc
                raise
            except ValueError as exc:
                self._failure = ConfigurationError(f"AES cipher construction failed: {exc}")
                raise self._failure from exc
            self._algorithm = built
            return built

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext and return the hex-encoded IV || ciphertext envelope."""
        algorithm = self._handle()
        padded = pkcs7_pad(plaintext, AES_BLOCK_BYTES)
        iv = os.urandom(AES_BLOCK_BYTES)
        try:
            encryptor = Cipher(algorithm, modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except ValueError as exc:
            raise CipherError(f"AES-CBC encryption failed: {exc}") from exc
        return binascii.hexlify(iv + ciphertext)
