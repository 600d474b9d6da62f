"""Caller-facing content handles.

Resolution can end in three places: a file on disk (cache hit or a local
search-path hit), a stream still attached to its transport, or a verified
buffer held in memory.  All three expose the same small file-like surface
(``read``/``seek``/``tell``/``close`` plus ``size``, ``name`` and
``provenance``) so callers never branch on where the bytes came from.

``close()`` releases the underlying resources exactly once; calling it again
is a no-op.
"""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, Optional

__all__ = [
    "CacheFileHandle",
    "ContentHandle",
    "InMemoryHandle",
    "RemoteStreamHandle",
]


class ContentHandle:
    """Common behaviour shared by every content handle variant.

    Attributes:
        name: Path or URL the content was read from.
        provenance: One of ``cache``, ``local``, ``remote`` or ``memory``.
        size: Content length in bytes when known, otherwise ``None``.
    """

    def __init__(self, *, name: str, provenance: str, size: Optional[int]) -> None:
        self.name = name
        self.provenance = provenance
        self.size = size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed content handle")

    def read(self, size: int = -1) -> bytes:
        raise NotImplementedError

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        raise NotImplementedError

    def tell(self) -> int:
        raise NotImplementedError

    def readable(self) -> bool:
        return not self._closed

    def seekable(self) -> bool:
        return False

    def _release(self) -> None:
        """Free variant-specific resources; called at most once."""

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()

    def __enter__(self) -> "ContentHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return (
            f"<{type(self).__name__} name={self.name!r} provenance={self.provenance!r} "
            f"size={self.size!r} {state}>"
        )


class CacheFileHandle(ContentHandle):
    """Handle backed by a plain file on the local filesystem."""

    def __init__(self, path: Path, *, provenance: str = "cache") -> None:
        self.path = Path(path)
        self._file: BinaryIO = self.path.open("rb")
        size = os.fstat(self._file.fileno()).st_size
        super().__init__(name=str(self.path), provenance=provenance, size=size)

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        return self._file.read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self._file.tell()

    def seekable(self) -> bool:
        return not self._closed

    def _release(self) -> None:
        self._file.close()


class InMemoryHandle(ContentHandle):
    """Handle over verified bytes already resident in memory."""

    def __init__(self, data: bytes, *, name: str, provenance: str = "memory") -> None:
        super().__init__(name=name, provenance=provenance, size=len(data))
        self._buffer = io.BytesIO(data)

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        return self._buffer.read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        return self._buffer.seek(offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self._buffer.tell()

    def seekable(self) -> bool:
        return not self._closed

    def getvalue(self) -> bytes:
        self._check_open()
        return self._buffer.getvalue()

    def _release(self) -> None:
        self._buffer.close()


class RemoteStreamHandle(ContentHandle):
    """Sequential handle over chunks produced by a transport.

    Only forward seeks are supported; they are served by reading and
    discarding data.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        name: str,
        size: Optional[int] = None,
        on_close: Optional[Callable[[], None]] = None,
        provenance: str = "remote",
    ) -> None:
        super().__init__(name=name, provenance=provenance, size=size)
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""
        self._position = 0
        self._exhausted = False
        self._on_close = on_close

    def _next_chunk(self) -> bytes:
        while not self._exhausted:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            if chunk:
                return chunk
        return b""

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        if size is None or size < 0:
            parts = [self._pending]
            self._pending = b""
            while True:
                chunk = self._next_chunk()
                if not chunk:
                    break
                parts.append(chunk)
            data = b"".join(parts)
        else:
            while len(self._pending) < size:
                chunk = self._next_chunk()
                if not chunk:
                    break
                self._pending += chunk
            data, self._pending = self._pending[:size], self._pending[size:]
        self._position += len(data)
        return data

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._check_open()
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self._position + offset
        else:
            raise io.UnsupportedOperation("remote streams cannot seek relative to the end")
        if target < self._position:
            raise io.UnsupportedOperation("remote streams only support forward seeks")
        while self._position < target:
            if not self.read(min(target - self._position, 1 << 20)):
                break
        return self._position

    def tell(self) -> int:
        self._check_open()
        return self._position

    def _release(self) -> None:
        self._pending = b""
        if self._on_close is not None:
            self._on_close()
