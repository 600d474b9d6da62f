"""Behaviour shared by the three content handle variants."""

from __future__ import annotations

import io
import os

import pytest

from HtsRef.RefCache.handles import CacheFileHandle, InMemoryHandle, RemoteStreamHandle


class TestCacheFileHandle:
    def test_reads_and_seeks(self, tmp_path) -> None:
        path = tmp_path / "ref"
        path.write_bytes(b"ACGTACGT")
        handle = CacheFileHandle(path)

        assert handle.size == 8
        assert handle.name == str(path)
        assert handle.provenance == "cache"
        assert handle.seekable()
        assert handle.read(4) == b"ACGT"
        assert handle.seek(-2, os.SEEK_END) == 6
        assert handle.read() == b"GT"
        handle.close()

    def test_close_is_idempotent(self, tmp_path) -> None:
        path = tmp_path / "ref"
        path.write_bytes(b"A")
        handle = CacheFileHandle(path, provenance="local")
        handle.close()
        handle.close()

        assert handle.closed
        with pytest.raises(ValueError):
            handle.read()

    def test_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            CacheFileHandle(tmp_path / "absent")


def test_in_memory_handle_round_trip() -> None:
    with InMemoryHandle(b"NNNN", name="http://refs/x", provenance="remote") as handle:
        assert handle.size == 4
        assert handle.read(2) == b"NN"
        assert handle.tell() == 2
        handle.seek(0)
        assert handle.getvalue() == b"NNNN"
    assert handle.closed
    assert "closed" in repr(handle)


class TestRemoteStreamHandle:
    def test_sequential_reads_across_chunks(self) -> None:
        handle = RemoteStreamHandle([b"ab", b"", b"cde"], name="http://refs/x", size=5)

        assert handle.read(3) == b"abc"
        assert handle.tell() == 3
        assert handle.read() == b"de"
        assert handle.read() == b""

    def test_forward_seek_only(self) -> None:
        handle = RemoteStreamHandle([b"abcdef"], name="ftp://mirror/x")

        assert handle.seek(2) == 2
        assert handle.seek(1, os.SEEK_CUR) == 3
        assert handle.read(1) == b"d"
        assert not handle.seekable()
        with pytest.raises(io.UnsupportedOperation):
            handle.seek(0)
        with pytest.raises(io.UnsupportedOperation):
            handle.seek(0, os.SEEK_END)

    def test_close_releases_transport_once(self) -> None:
        closed = []
        handle = RemoteStreamHandle(
            iter([b"x"]), name="http://refs/x", on_close=lambda: closed.append(True)
        )
        handle.close()
        handle.close()

        assert closed == [True]
        with pytest.raises(ValueError):
            handle.read()
