"""Walk search-path entries and open the first source that has the checksum."""

from __future__ import annotations

import gzip
import itertools
import logging
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Mapping, Optional, Sequence

from .checksums import CHUNK_SIZE
from .errors import TransportError
from .handles import CacheFileHandle, ContentHandle, RemoteStreamHandle
from .net import Transport
from .search_path import LocalDirectory, SearchPathEntry
from .templates import expand_path_template

__all__ = ["DEFAULT_COMPRESSED_OPENERS", "SourceLocator"]

Opener = Callable[[Path], BinaryIO]

DEFAULT_COMPRESSED_OPENERS: Mapping[str, Opener] = {".gz": gzip.open}


class SourceLocator:
    """Resolve a checksum against an ordered list of search-path entries.

    Attributes:
        transport: Collaborator used to open HTTP/FTP URLs.
        compressed_suffixes: Suffixes probed next to a missing local file,
            unless the entry disabled it with a leading ``|``.
        compressed_openers: Map from suffix to a callable returning a
            readable stream of the decoded content.
        logger: Logger receiving per-entry diagnostics.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        compressed_suffixes: Sequence[str] = (".gz",),
        compressed_openers: Optional[Mapping[str, Opener]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.transport = transport
        self.compressed_suffixes = tuple(compressed_suffixes)
        self.compressed_openers = dict(
            DEFAULT_COMPRESSED_OPENERS if compressed_openers is None else compressed_openers
        )
        self.logger = logger or logging.getLogger("HtsRef.RefCache")

    def find_local_path(
        self, checksum: str, entries: Sequence[SearchPathEntry]
    ) -> Optional[Path]:
        """Return the first plain local file for ``checksum`` without opening it."""

        for entry in entries:
            if not isinstance(entry, LocalDirectory):
                continue
            candidate = Path(expand_path_template(entry.path, checksum))
            if candidate.is_file():
                return candidate
        return None

    def _open_compressed(self, candidate: Path) -> Optional[ContentHandle]:
        for suffix in self.compressed_suffixes:
            opener = self.compressed_openers.get(suffix)
            variant = candidate.with_name(candidate.name + suffix)
            if opener is None or not variant.is_file():
                continue
            try:
                stream = opener(variant)
            except OSError as exc:
                self.logger.debug(
                    "compressed variant could not be opened",
                    extra={"stage": "locate", "path": str(variant), "error": str(exc)},
                )
                continue
            # Decoders are lazy; a bad header only shows up on the first read.
            try:
                head = stream.read(CHUNK_SIZE)
            except (OSError, EOFError) as exc:
                stream.close()
                self.logger.debug(
                    "compressed variant could not be decoded",
                    extra={"stage": "locate", "path": str(variant), "error": str(exc)},
                )
                continue
            return RemoteStreamHandle(
                itertools.chain((head,), iter(lambda: stream.read(CHUNK_SIZE), b"")),
                name=str(variant),
                provenance="local",
                on_close=stream.close,
            )
        return None

    def _open_local(self, checksum: str, entry: LocalDirectory) -> Optional[ContentHandle]:
        candidate = Path(expand_path_template(entry.path, checksum))
        if candidate.is_file():
            try:
                return CacheFileHandle(candidate, provenance="local")
            except OSError as exc:
                self.logger.debug(
                    "local source could not be opened",
                    extra={"stage": "locate", "path": str(candidate), "error": str(exc)},
                )
                return None
        if entry.allow_compressed:
            return self._open_compressed(candidate)
        return None

    def iter_sources(
        self,
        checksum: str,
        entries: Sequence[SearchPathEntry],
        *,
        local_only: bool = False,
    ) -> Iterator[ContentHandle]:
        """Yield an opened handle for every entry that has ``checksum``, in order.

        Entries are opened lazily, so stopping the iteration stops the search.
        Handles that the consumer does not keep must be closed by the consumer.
        """

        for entry in entries:
            if isinstance(entry, LocalDirectory):
                handle = self._open_local(checksum, entry)
                if handle is not None:
                    yield handle
                continue
            if local_only:
                continue
            url = expand_path_template(entry.template, checksum)
            try:
                handle = self.transport.open(url)
            except TransportError as exc:
                self.logger.debug(
                    "search path entry did not match",
                    extra={
                        "stage": "locate",
                        "url": url,
                        "status_code": exc.status_code,
                        "error": str(exc),
                    },
                )
                continue
            yield handle

    def locate(
        self,
        checksum: str,
        entries: Sequence[SearchPathEntry],
        *,
        local_only: bool = False,
    ) -> Optional[ContentHandle]:
        """Return the first source for ``checksum`` or ``None`` when nothing matches."""

        sources = self.iter_sources(checksum, entries, local_only=local_only)
        try:
            return next(sources, None)
        finally:
            sources.close()
