# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.resolver",
#   "purpose": "Orchestrate cache lookup, search-path traversal, verification, and cache commit",
#   "sections": [
#     {"id": "models", "name": "Resolution models", "anchor": "MOD", "kind": "api"},
#     {"id": "resolver", "name": "ReferenceResolver", "anchor": "RES", "kind": "api"},
#     {"id": "helpers", "name": "Convenience helpers", "anchor": "HELP", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Checksum to content resolution.

The resolver walks a fixed sequence of states::

    INIT -> CACHE_CHECK -> SEARCH_LOCAL -> FETCH_REMOTE -> VERIFY -> COMMIT_CACHE -> RESOLVED

A populated cache entry is returned directly and trusted without
verification.  A plain file found through a local search-path directory is
returned as is.  Anything else is read in full, MD5-verified, written to the
cache when one is configured, and handed back from memory.  An integrity
mismatch always fails the resolution; a failed cache write only produces a
warning because the caller already holds verified bytes.

``resolve`` performs blocking I/O and does not coordinate concurrent calls for
the same checksum: each caller fetches and populates independently, which is
safe because cache population is atomic.  Pass ``single_flight=True`` in the
settings to share one remote fetch between concurrent callers.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .cache import CacheEntry, CacheWriter
from .checksums import normalize_checksum, verify_digest
from .coordination import SingleFlight
from .errors import (
    CacheWriteError,
    IntegrityMismatchError,
    NotFoundError,
    RefCacheError,
    TransportError,
)
from .handles import CacheFileHandle, ContentHandle, InMemoryHandle
from .locator import SourceLocator
from .net import DefaultTransport, Transport
from .settings import ResolverSettings, load_settings

__all__ = [
    "FetchedContent",
    "ReferenceResolver",
    "Resolution",
    "ResolutionState",
    "resolve_reference",
]


# --- Resolution models ---------------------------------------------------------


class ResolutionState(str, Enum):
    INIT = "init"
    CACHE_CHECK = "cache_check"
    SEARCH_LOCAL = "search_local"
    FETCH_REMOTE = "fetch_remote"
    VERIFY = "verify"
    COMMIT_CACHE = "commit_cache"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class FetchedContent:
    """Bytes read from one source, before or after verification."""

    data: bytes
    source: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class Resolution:
    """Outcome and trace of a single ``resolve`` call.

    Attributes:
        checksum: Normalised checksum that was resolved.
        handle: Caller-facing handle once resolved.
        states: States visited, in order.
        cache_path: Derived cache location, when caching is configured.
        cache_entry: Commit record when this call populated the cache.
        cache_error: Absorbed cache population failure, if any.
        shared: ``True`` when the remote fetch was performed by a concurrent
            caller through single-flight coordination.
    """

    checksum: str
    handle: Optional[ContentHandle] = None
    states: List[ResolutionState] = field(default_factory=lambda: [ResolutionState.INIT])
    cache_path: Optional[Path] = None
    cache_entry: Optional[CacheEntry] = None
    cache_error: Optional[CacheWriteError] = None
    shared: bool = False

    @property
    def state(self) -> ResolutionState:
        return self.states[-1]

    def enter(self, state: ResolutionState) -> None:
        self.states.append(state)


# --- ReferenceResolver ---------------------------------------------------------


class ReferenceResolver:
    """Resolve MD5 checksums to reference content.

    Attributes:
        settings: Effective resolver settings.
        transport: Collaborator opening HTTP/FTP URLs.
        locator: Search-path walker.
        cache_writer: Cache path derivation and population, or ``None`` when
            no cache template is configured.
        logger: Logger receiving resolution diagnostics.

    Examples:
        >>> resolver = ReferenceResolver(ResolverSettings(search_path="/refs/%s"))
        >>> [entry.raw for entry in resolver.entries]
        ['/refs/%s', './']
    """

    def __init__(
        self,
        settings: Optional[ResolverSettings] = None,
        *,
        transport: Optional[Transport] = None,
        logger: Optional[logging.Logger] = None,
        single_flight: Optional[bool] = None,
    ) -> None:
        self.settings = settings or ResolverSettings()
        self.logger = logger or logging.getLogger("HtsRef.RefCache")
        self.transport = transport or DefaultTransport(self.settings.http)
        self.locator = SourceLocator(
            self.transport,
            compressed_suffixes=self.settings.compressed_suffixes,
            logger=self.logger,
        )
        self.entries = self.settings.entries()
        self.cache_writer: Optional[CacheWriter] = None
        if self.settings.cache_template:
            self.cache_writer = CacheWriter(
                self.settings.cache_template,
                directory_mode=self.settings.directory_mode,
                cache_root=self.settings.cache_root,
                logger=self.logger,
            )
            if self.settings.cache_root:
                self.logger.info(
                    "populating local cache: %s",
                    self.settings.cache_template,
                    extra={"stage": "cache", "template": self.settings.cache_template},
                )
        coordinate = self.settings.single_flight if single_flight is None else single_flight
        self._single_flight: Optional[SingleFlight[FetchedContent]] = (
            SingleFlight() if coordinate else None
        )

    @classmethod
    def from_env(
        cls,
        *,
        transport: Optional[Transport] = None,
        logger: Optional[logging.Logger] = None,
        **overrides: object,
    ) -> "ReferenceResolver":
        """Build a resolver from the process environment (``REF_PATH``, ``REF_CACHE``...)."""

        return cls(load_settings(**overrides), transport=transport, logger=logger)

    def cache_path(self, checksum: str) -> Optional[Path]:
        if self.cache_writer is None:
            return None
        return self.cache_writer.cache_path(normalize_checksum(checksum))

    def _check_cache(self, checksum: str, trace: Resolution) -> Optional[ContentHandle]:
        trace.enter(ResolutionState.CACHE_CHECK)
        if self.cache_writer is None:
            return None
        path = self.cache_writer.cache_path(checksum)
        trace.cache_path = path
        if not path.is_file():
            return None
        try:
            handle = CacheFileHandle(path, provenance="cache")
        except OSError as exc:
            raise TransportError(f"Unable to open cache file {path}: {exc}") from exc
        self.logger.debug(
            "cache hit",
            extra={"stage": "cache", "checksum": checksum, "path": str(path)},
        )
        return handle

    def _search_local(self, checksum: str, trace: Resolution) -> Optional[ContentHandle]:
        trace.enter(ResolutionState.SEARCH_LOCAL)
        handle = self.locator.locate(checksum, self.entries, local_only=True)
        if handle is not None:
            self.logger.debug(
                "found in local search path",
                extra={"stage": "locate", "checksum": checksum, "path": handle.name},
            )
        return handle

    def _fetch_remote(self, checksum: str, trace: Resolution) -> FetchedContent:
        trace.enter(ResolutionState.FETCH_REMOTE)
        attempted = 0
        with contextlib.closing(self.locator.iter_sources(checksum, self.entries)) as sources:
            for handle in sources:
                attempted += 1
                with handle:
                    try:
                        data = handle.read()
                    except (TransportError, OSError) as exc:
                        self.logger.debug(
                            "source failed while reading",
                            extra={"stage": "fetch", "source": handle.name, "error": str(exc)},
                        )
                        continue
                self.logger.debug(
                    "fetched reference",
                    extra={"stage": "fetch", "source": handle.name, "size": len(data)},
                )
                return FetchedContent(data=data, source=handle.name)
        raise NotFoundError(checksum, attempted=attempted)

    def _verify(self, checksum: str, fetched: FetchedContent, trace: Resolution) -> None:
        trace.enter(ResolutionState.VERIFY)
        try:
            verify_digest(checksum, fetched.data, source=fetched.source)
        except IntegrityMismatchError as exc:
            self.logger.error(
                "mismatching md5sum for downloaded reference",
                extra={
                    "stage": "verify",
                    "checksum": checksum,
                    "actual": exc.actual,
                    "source": fetched.source,
                },
            )
            raise

    def _commit(self, checksum: str, fetched: FetchedContent, trace: Resolution) -> None:
        if self.cache_writer is None:
            return
        trace.enter(ResolutionState.COMMIT_CACHE)
        try:
            trace.cache_entry = self.cache_writer.populate(checksum, fetched.data)
        except CacheWriteError as exc:
            trace.cache_error = exc
            self.logger.warning(
                "reference cache not populated: %s",
                exc,
                extra={"stage": "cache", "checksum": checksum, "path": exc.path},
            )

    def _fetch_verify_commit(self, checksum: str, trace: Resolution) -> FetchedContent:
        fetched = self._fetch_remote(checksum, trace)
        self._verify(checksum, fetched, trace)
        self._commit(checksum, fetched, trace)
        return fetched

    def _acquire(self, checksum: str, trace: Resolution) -> FetchedContent:
        if self._single_flight is None:
            return self._fetch_verify_commit(checksum, trace)
        fetched, shared = self._single_flight.do(
            checksum, lambda: self._fetch_verify_commit(checksum, trace)
        )
        if shared:
            trace.shared = True
            trace.enter(ResolutionState.FETCH_REMOTE)
        return fetched

    def resolve_with_trace(self, checksum: str) -> Resolution:
        """Resolve ``checksum`` and return the handle together with its state trace.

        Raises:
            InvalidChecksumError: If ``checksum`` is not an MD5 hex digest.
            NotFoundError: If no source provides the content.
            IntegrityMismatchError: If fetched content has a different digest.
        """

        checksum = normalize_checksum(checksum)
        trace = Resolution(checksum=checksum)
        try:
            handle = self._check_cache(checksum, trace)
            if handle is None:
                handle = self._search_local(checksum, trace)
            if handle is None:
                fetched = self._acquire(checksum, trace)
                handle = InMemoryHandle(fetched.data, name=fetched.source, provenance="remote")
        except RefCacheError:
            trace.enter(ResolutionState.FAILED)
            self.logger.debug(
                "reference resolution failed",
                extra={
                    "stage": "resolve",
                    "checksum": checksum,
                    "states": [state.value for state in trace.states],
                },
            )
            raise
        trace.handle = handle
        trace.enter(ResolutionState.RESOLVED)
        return trace

    def resolve(self, checksum: str) -> ContentHandle:
        """Return a content handle for ``checksum``.

        Precondition: concurrent calls for the same checksum are not
        de-duplicated unless single-flight coordination is enabled.
        """

        return self.resolve_with_trace(checksum).handle  # type: ignore[return-value]


# --- Convenience helpers -------------------------------------------------------


def resolve_reference(
    checksum: str,
    *,
    settings: Optional[ResolverSettings] = None,
    transport: Optional[Transport] = None,
    logger: Optional[logging.Logger] = None,
) -> ContentHandle:
    """Resolve ``checksum`` with settings loaded from the environment when omitted."""

    resolver = ReferenceResolver(
        settings or load_settings(), transport=transport, logger=logger
    )
    return resolver.resolve(checksum)
