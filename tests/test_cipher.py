"""Unit tests for core/cipher.py.

Covers:
- PKCS#7 padding length and byte values
- Envelope shape (hex, IV prefix, block-aligned ciphertext)
- Round-trip through an independent decryptor
- Fresh IV on every call
- Key validation (bad hex, wrong length) and cached construction failure
- Concurrent first use builds exactly one handle
"""

from __future__ import annotations

import binascii
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

import core.cipher as cipher_module
from core.cipher import AES_BLOCK_BYTES, ResponseCipher, decode_key, pkcs7_pad
from core.errors import ConfigurationError
from tests.helpers import TEST_AES_KEY, decrypt_envelope

# ---------------------------------------------------------------------------
# Padding
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 31, 32, 100])
def test_padding_is_block_aligned_and_self_describing(length: int) -> None:
    data = b"x" * length
    padded = pkcs7_pad(data, 16)
    pad_len = len(padded) - length
    assert len(padded) % 16 == 0
    assert 1 <= pad_len <= 16
    assert padded[-1] == pad_len
    assert padded[length:] == bytes([pad_len]) * pad_len


def test_aligned_input_gets_full_block_of_padding() -> None:
    padded = pkcs7_pad(b"y" * 16, 16)
    assert padded == b"y" * 16 + b"\x10" * 16


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class TestEncrypt:
    def test_round_trip(self) -> None:
        cipher = ResponseCipher(TEST_AES_KEY)
        for plaintext in [b"", b"{}", b'{"id":"42","name":"a"}', "ünïcödé".encode("utf-8") * 40]:
            assert decrypt_envelope(cipher.encrypt(plaintext)) == plaintext

    def test_envelope_is_hex_iv_then_ciphertext(self) -> None:
        envelope = ResponseCipher(TEST_AES_KEY).encrypt(b'{"ok":true}')
        raw = binascii.unhexlify(envelope)
        assert envelope == envelope.lower()
        assert len(binascii.unhexlify(envelope[:32])) == AES_BLOCK_BYTES
        # 11 bytes of JSON pad to one block, plus the IV block
        assert len(raw) == 2 * AES_BLOCK_BYTES

    def test_iv_is_fresh_per_call(self) -> None:
        cipher = ResponseCipher(TEST_AES_KEY)
        envelopes = [cipher.encrypt(b"same plaintext") for _ in range(200)]
        ivs = {e[:32] for e in envelopes}
        assert len(ivs) == len(envelopes)
        assert len(set(envelopes)) == len(envelopes)

    def test_block_size(self) -> None:
        assert ResponseCipher(TEST_AES_KEY).block_size == 16


# ---------------------------------------------------------------------------
# Key handling
# ---------------------------------------------------------------------------


class TestKeyValidation:
    def test_decode_key_accepts_64_hex_chars(self) -> None:
        assert len(decode_key(TEST_AES_KEY)) == 32

    def test_non_hex_key_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            ResponseCipher("zz" * 32).encrypt(b"x")

    def test_aes128_key_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="32 bytes"):
            ResponseCipher("00" * 16).encrypt(b"x")

    def test_odd_length_hex_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            ResponseCipher("abc").warm()

    def test_construction_failure_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = []
        real = cipher_module.decode_key

        def counting(key_hex: str) -> bytes:
            calls.append(key_hex)
            return real(key_hex)

        monkeypatch.setattr(cipher_module, "decode_key", counting)
        cipher = ResponseCipher("00" * 8)
        with pytest.raises(ConfigurationError) as first:
            cipher.encrypt(b"x")
        with pytest.raises(ConfigurationError) as second:
            cipher.encrypt(b"x")
        assert first.value is second.value
        assert len(calls) == 1

    def test_cached_failure_traceback_does_not_grow(self) -> None:
        cipher = ResponseCipher("00" * 16)
        depths = []
        for _ in range(3):
            with pytest.raises(ConfigurationError) as excinfo:
                cipher.encrypt(b"x")
            depth, tb = 0, excinfo.value.__traceback__
            while tb is not None:
                depth, tb = depth + 1, tb.tb_next
            depths.append(depth)
        assert depths[1] == depths[2]
        assert depths[2] <= depths[0]


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_concurrent_first_use_builds_one_handle(monkeypatch: pytest.MonkeyPatch) -> None:
    """100 threads racing on a cold cipher all succeed and share one AES handle."""
    monkeypatch.setattr(cipher_module.os, "urandom", lambda n: b"\x07" * n)
    cipher = ResponseCipher(TEST_AES_KEY)
    barrier = threading.Barrier(100)

    def first_call(_: int) -> tuple[object, bytes]:
        barrier.wait()
        envelope = cipher.encrypt(b'{"concurrent":true}')
        return cipher._handle(), envelope

    with ThreadPoolExecutor(max_workers=100) as pool:
        results = list(pool.map(first_call, range(100)))

    handles = {id(handle) for handle, _ in results}
    envelopes = {envelope for _, envelope in results}
    assert len(handles) == 1
    # Same key and same (patched) IV -> identical output from every thread
    assert len(envelopes) == 1
    assert decrypt_envelope(envelopes.pop()) == b'{"concurrent":true}'
