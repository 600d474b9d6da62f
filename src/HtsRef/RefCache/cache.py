# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.cache",
#   "purpose": "Checksum-keyed local cache with atomic, verified population",
#   "sections": [
#     {"id": "helpers", "name": "Naming & directory helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "writer", "name": "CacheWriter", "anchor": "WRT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Atomic population of the checksum-keyed reference cache.

A committed cache entry is always complete, MD5-verified and read-only.
Content is streamed into a uniquely named temporary file next to the final
path, hashed on the way, and only renamed onto the final name once the digest
matches.  Temporary names are claimed with an exclusive create so that two
processes populating the same entry never share a file; whichever rename lands
last simply replaces identical bytes.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from .checksums import CHUNK_SIZE, Content, normalize_checksum
from .errors import CacheWriteError, IntegrityMismatchError
from .templates import expand_path_template

__all__ = [
    "READ_ONLY_MODE",
    "CacheEntry",
    "CacheWriter",
    "make_directory_chain",
    "temporary_name",
    "thread_hash",
]

READ_ONLY_MODE = 0o444
_TEMP_FILE_MODE = 0o644
_UINT32 = 0xFFFFFFFF


# --- Naming & directory helpers ------------------------------------------------


def thread_hash(ident: Optional[int] = None) -> int:
    """Fold a thread identity into an unsigned 32-bit integer."""

    ident = threading.get_ident() if ident is None else ident
    value = 0
    for byte in (ident & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little"):
        value = ((value << 5) - value + byte) & _UINT32
    return value


def _clock_nonce() -> int:
    return (int(time.time()) ^ int(time.process_time() * 1_000_000)) & _UINT32


def temporary_name(final_path: Path, pid: int, thread: int, nonce: int) -> Path:
    """Return the sibling temporary path used while populating ``final_path``."""

    return final_path.with_name(f"{final_path.name}.tmp_{pid}_{thread}_{nonce}")


def make_directory_chain(directory: Path, mode: int) -> List[Path]:
    """Create ``directory`` and any missing ancestors, shallowest first.

    Each created directory is ``chmod``-ed to ``mode`` so the process umask
    does not narrow it. Directories created concurrently by another process
    are accepted.

    Returns:
        Directories created by this call, in creation order.

    Raises:
        OSError: If a component exists but is not a directory, or ``mkdir``
            fails for another reason.
    """

    missing: List[Path] = []
    current = Path(directory)
    while not current.is_dir():
        missing.append(current)
        parent = current.parent
        if parent == current:
            break
        current = parent

    created: List[Path] = []
    for path in reversed(missing):
        try:
            os.mkdir(path, mode)
        except FileExistsError:
            if path.is_dir():
                continue
            raise
        os.chmod(path, mode)
        created.append(path)
    return created


def _iter_chunks(content: Content) -> Iterator[bytes]:
    if isinstance(content, (bytes, bytearray, memoryview)):
        view = memoryview(content)
        for offset in range(0, len(view), CHUNK_SIZE):
            yield bytes(view[offset : offset + CHUNK_SIZE])
        return
    yield from iter(lambda: content.read(CHUNK_SIZE), b"")


# --- CacheWriter ---------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Record of one cache population.

    Attributes:
        final_path: Where the verified content lives.
        temporary_path: Temporary name used while writing; never valid after
            the call returns.
        size: Number of bytes written.
        published: ``False`` when a concurrent writer had already published
            the entry and this writer's rename was skipped.
    """

    final_path: Path
    temporary_path: Path
    size: int
    published: bool = True


class CacheWriter:
    """Derive cache paths and atomically commit verified content.

    Attributes:
        template: Cache directory template (``%s`` / ``%Ns`` placeholders).
        directory_mode: Mode applied to directories created on demand.
        cache_root: Root of a derived default cache; a warning is emitted
            when it has to be created.
        logger: Logger receiving cache diagnostics.
    """

    def __init__(
        self,
        template: str,
        *,
        directory_mode: int = 0o1777,
        cache_root: Optional[Union[str, Path]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.template = template
        self.directory_mode = directory_mode
        self.cache_root = Path(cache_root) if cache_root else None
        self.logger = logger or logging.getLogger("HtsRef.RefCache")

    def cache_path(self, checksum: str) -> Path:
        return Path(expand_path_template(self.template, checksum))

    def _prepare_directories(self, final_path: Path) -> None:
        if self.cache_root is not None and not self.cache_root.is_dir():
            self.logger.warning(
                "creating reference cache directory %s; this may become large, "
                "set REF_CACHE to choose its location",
                self.cache_root,
                extra={"stage": "cache", "path": str(self.cache_root)},
            )
        try:
            make_directory_chain(final_path.parent, self.directory_mode)
        except OSError as exc:
            raise CacheWriteError(
                f"Unable to create cache directory {final_path.parent}: {exc}",
                path=str(final_path),
            ) from exc

    def _create_temporary(self, final_path: Path) -> Tuple[Path, int]:
        pid = os.getpid()
        thread = thread_hash()
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)
        while True:
            thread = (thread + 1) & _UINT32
            candidate = temporary_name(final_path, pid, thread, _clock_nonce())
            try:
                return candidate, os.open(candidate, flags, _TEMP_FILE_MODE)
            except FileExistsError:
                continue
            except OSError as exc:
                raise CacheWriteError(
                    f"Unable to create temporary cache file {candidate}: {exc}",
                    path=str(final_path),
                ) from exc

    def _write(self, fd: int, content: Content, temporary: Path) -> Tuple[str, int]:
        hasher = hashlib.md5()
        size = 0
        try:
            with os.fdopen(fd, "wb") as out:
                for chunk in _iter_chunks(content):
                    hasher.update(chunk)
                    out.write(chunk)
                    size += len(chunk)
                out.flush()
                os.fsync(out.fileno())
        except OSError as exc:
            raise CacheWriteError(
                f"Failed writing cache file {temporary}: {exc}", path=str(temporary)
            ) from exc
        return hasher.hexdigest(), size

    def populate(self, checksum: str, content: Content) -> CacheEntry:
        """Stream ``content`` into the cache entry for ``checksum``.

        Args:
            checksum: Expected MD5 digest (any case).
            content: Bytes or a readable binary stream.

        Returns:
            :class:`CacheEntry` describing the committed file.

        Raises:
            IntegrityMismatchError: If the streamed bytes do not hash to
                ``checksum``. The final path is left untouched.
            CacheWriteError: If directories, the temporary file, the permission
                change or the rename failed. The temporary file is removed.
        """

        checksum = normalize_checksum(checksum)
        final_path = self.cache_path(checksum)
        self.logger.info(
            "writing cache file %s",
            final_path,
            extra={"stage": "cache", "checksum": checksum, "path": str(final_path)},
        )
        self._prepare_directories(final_path)
        temporary, fd = self._create_temporary(final_path)
        published = False
        try:
            digest, size = self._write(fd, content, temporary)
            if digest != checksum:
                self.logger.error(
                    "mismatching md5sum for reference content",
                    extra={"stage": "cache", "checksum": checksum, "actual": digest},
                )
                raise IntegrityMismatchError(checksum, digest, source=str(final_path))
            try:
                os.chmod(temporary, READ_ONLY_MODE)
            except OSError as exc:
                raise CacheWriteError(
                    f"Unable to mark {temporary} read-only: {exc}", path=str(final_path)
                ) from exc
            try:
                os.replace(temporary, final_path)
            except OSError as exc:
                if final_path.is_file():
                    self.logger.debug(
                        "cache entry already published by a concurrent writer",
                        extra={"stage": "cache", "path": str(final_path)},
                    )
                    return CacheEntry(final_path, temporary, size, published=False)
                raise CacheWriteError(
                    f"Unable to publish cache file {final_path}: {exc}", path=str(final_path)
                ) from exc
            published = True
            return CacheEntry(final_path, temporary, size)
        finally:
            if not published:
                try:
                    temporary.unlink(missing_ok=True)
                except OSError as exc:
                    self.logger.debug(
                        "temporary cache file could not be removed",
                        extra={"stage": "cache", "path": str(temporary), "error": str(exc)},
                    )
