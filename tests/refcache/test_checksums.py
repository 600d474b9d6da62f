"""Checksum validation and MD5 verification."""

from __future__ import annotations

import hashlib
import io

import pytest

from HtsRef.RefCache.checksums import md5_hex, normalize_checksum, verify_digest
from HtsRef.RefCache.errors import IntegrityMismatchError, InvalidChecksumError, RefCacheError

PAYLOAD = b">chr1\nACGTACGTNNNN\n"
DIGEST = hashlib.md5(PAYLOAD).hexdigest()


def test_normalize_lowercases_and_strips() -> None:
    assert normalize_checksum(f"  {DIGEST.upper()}\n") == DIGEST


@pytest.mark.parametrize("value", ["", "abc", "g" * 32, DIGEST + "0", DIGEST[:-1] + "/"])
def test_normalize_rejects_malformed(value: str) -> None:
    with pytest.raises(InvalidChecksumError):
        normalize_checksum(value)


def test_invalid_checksum_is_value_error() -> None:
    with pytest.raises(ValueError):
        normalize_checksum(None)  # type: ignore[arg-type]


def test_md5_hex_buffers_and_streams_agree() -> None:
    assert md5_hex(PAYLOAD) == DIGEST
    assert md5_hex(bytearray(PAYLOAD)) == DIGEST
    assert md5_hex(io.BytesIO(PAYLOAD)) == DIGEST


def test_verify_digest_accepts_uppercase_expected() -> None:
    assert verify_digest(DIGEST.upper(), PAYLOAD) == DIGEST


def test_verify_digest_reports_mismatch() -> None:
    with pytest.raises(IntegrityMismatchError) as excinfo:
        verify_digest(DIGEST, PAYLOAD + b"X", source="http://refs/x")

    error = excinfo.value
    assert isinstance(error, RefCacheError)
    assert error.expected == DIGEST
    assert error.actual == hashlib.md5(PAYLOAD + b"X").hexdigest()
    assert error.source == "http://refs/x"
    assert "Mismatching md5sum" in str(error)
