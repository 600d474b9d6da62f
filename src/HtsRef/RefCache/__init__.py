"""Checksum-keyed reference sequence resolution with a local verified cache.

Typical use::

    from HtsRef.RefCache import ReferenceResolver

    resolver = ReferenceResolver.from_env()
    with resolver.resolve("a718acaa6135fdca8357d5bfe94211dd") as handle:
        data = handle.read()
"""

from __future__ import annotations

__version__ = "1.0.0"

from .cache import CacheEntry, CacheWriter
from .checksums import md5_hex, normalize_checksum, verify_digest
from .coordination import SingleFlight
from .errors import (
    CacheWriteError,
    ConfigurationError,
    IntegrityMismatchError,
    InvalidChecksumError,
    NotFoundError,
    RefCacheError,
    TransportError,
)
from .handles import CacheFileHandle, ContentHandle, InMemoryHandle, RemoteStreamHandle
from .locator import SourceLocator
from .net import DefaultTransport, Transport
from .resolver import (
    ReferenceResolver,
    Resolution,
    ResolutionState,
    resolve_reference,
)
from .search_path import (
    FtpUrl,
    HttpUrl,
    LocalDirectory,
    SearchPathEntry,
    split_search_path,
    tokenize_search_path,
)
from .settings import ResolverSettings, load_settings
from .templates import expand_path_template

__all__ = [
    "__version__",
    "CacheEntry",
    "CacheFileHandle",
    "CacheWriteError",
    "CacheWriter",
    "ConfigurationError",
    "ContentHandle",
    "DefaultTransport",
    "FtpUrl",
    "HttpUrl",
    "InMemoryHandle",
    "IntegrityMismatchError",
    "InvalidChecksumError",
    "LocalDirectory",
    "NotFoundError",
    "RefCacheError",
    "ReferenceResolver",
    "RemoteStreamHandle",
    "Resolution",
    "ResolutionState",
    "ResolverSettings",
    "SearchPathEntry",
    "SingleFlight",
    "SourceLocator",
    "Transport",
    "TransportError",
    "expand_path_template",
    "load_settings",
    "md5_hex",
    "normalize_checksum",
    "resolve_reference",
    "split_search_path",
    "tokenize_search_path",
    "verify_digest",
]
