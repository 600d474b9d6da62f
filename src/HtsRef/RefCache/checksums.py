"""Checksum normalisation and MD5 verification helpers.

Reference content is addressed by the MD5 digest of its bytes.  These helpers
validate lookup keys before any I/O happens and compute digests over byte
buffers or streams without materialising streams in memory.
"""

from __future__ import annotations

import hashlib
import re
from typing import BinaryIO, Optional, Union

from .errors import IntegrityMismatchError, InvalidChecksumError

__all__ = [
    "CHUNK_SIZE",
    "md5_hex",
    "normalize_checksum",
    "verify_digest",
]

CHUNK_SIZE = 1 << 20

_MD5_PATTERN = re.compile(r"[0-9a-f]{32}")

Content = Union[bytes, bytearray, memoryview, BinaryIO]


def normalize_checksum(value: str) -> str:
    """Return ``value`` as a lowercase 32 character hex digest.

    Raises:
        InvalidChecksumError: If ``value`` is not an MD5 hex digest.
    """

    if not isinstance(value, str):
        raise InvalidChecksumError("checksum must be a string")
    checksum = value.strip().lower()
    if not _MD5_PATTERN.fullmatch(checksum):
        raise InvalidChecksumError(f"checksum must be 32 hexadecimal characters: {value!r}")
    return checksum


def md5_hex(content: Content) -> str:
    """Compute the lowercase hex MD5 digest of a buffer or readable stream."""

    hasher = hashlib.md5()
    if isinstance(content, (bytes, bytearray, memoryview)):
        hasher.update(content)
    else:
        for chunk in iter(lambda: content.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_digest(checksum: str, content: Content, *, source: Optional[str] = None) -> str:
    """Ensure ``content`` hashes to ``checksum`` and return the computed digest.

    The requested checksum is compared case-insensitively; the computed digest
    is always lowercase.

    Raises:
        IntegrityMismatchError: If the digests differ.
    """

    actual = md5_hex(content)
    expected = checksum.strip().lower()
    if actual != expected:
        raise IntegrityMismatchError(expected, actual, source=source)
    return actual
