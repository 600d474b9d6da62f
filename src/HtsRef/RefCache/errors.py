"""Exception hierarchy shared across reference lookup, transport, and caching.

Resolving a checksum touches the local cache, the configured search path, and
remote lookup services.  This module groups the failure modes so that callers
can separate a legitimate "unknown checksum" outcome from corrupted content,
while the resolver itself can tell which failures it is allowed to absorb
(cache population, a single failing search-path entry) and which must abort
the lookup.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RefCacheError",
    "InvalidChecksumError",
    "ConfigurationError",
    "NotFoundError",
    "IntegrityMismatchError",
    "CacheWriteError",
    "TransportError",
]


class RefCacheError(RuntimeError):
    """Base exception for reference resolution and cache failures."""


class InvalidChecksumError(RefCacheError, ValueError):
    """Raised when a lookup key is not a 32 character hexadecimal MD5 digest."""


class ConfigurationError(RefCacheError):
    """Raised when settings or environment overrides are invalid."""


class NotFoundError(RefCacheError):
    """Raised when no cache entry, search-path entry, or remote service has the checksum."""

    def __init__(self, checksum: str, *, attempted: int = 0) -> None:
        super().__init__(f"No source provided reference content for md5 {checksum}")
        self.checksum = checksum
        self.attempted = attempted


class IntegrityMismatchError(RefCacheError):
    """Raised when fetched content does not hash to the requested checksum."""

    def __init__(self, expected: str, actual: str, *, source: Optional[str] = None) -> None:
        location = f" from {source}" if source else ""
        super().__init__(
            f"Mismatching md5sum for downloaded reference{location}: "
            f"expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.source = source


class CacheWriteError(RefCacheError):
    """Raised when the local cache could not be populated.

    The resolver downgrades this to a warning: the caller already holds
    verified content, only the persisted copy is missing.
    """

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class TransportError(RefCacheError):
    """Raised when a local or remote source cannot be opened or read."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
