"""Search-path traversal over local directories and remote templates."""

from __future__ import annotations

import gzip
import hashlib

from HtsRef.RefCache.locator import SourceLocator
from HtsRef.RefCache.search_path import tokenize_search_path

PAYLOAD = b">chrM\nGATCACAGGTCTATCACCC\n"
DIGEST = hashlib.md5(PAYLOAD).hexdigest()


def test_local_directory_hit(tmp_path, workdir, counting_transport) -> None:
    refs = tmp_path / "refs"
    refs.mkdir()
    (refs / DIGEST).write_bytes(PAYLOAD)
    entries = tokenize_search_path(f"{refs}/%s:http://remote/%s", ":")

    handle = SourceLocator(counting_transport).locate(DIGEST, entries)

    assert handle is not None
    with handle:
        assert handle.provenance == "local"
        assert handle.read() == PAYLOAD
    assert counting_transport.calls == []


def test_compressed_variant_is_decoded(tmp_path, workdir, counting_transport) -> None:
    refs = tmp_path / "refs"
    refs.mkdir()
    with gzip.open(refs / f"{DIGEST}.gz", "wb") as out:
        out.write(PAYLOAD)
    entries = tokenize_search_path(f"{refs}/%s", ":")

    handle = SourceLocator(counting_transport).locate(DIGEST, entries)

    assert handle is not None
    with handle:
        assert handle.name == str(refs / f"{DIGEST}.gz")
        assert handle.read() == PAYLOAD


def test_undecodable_compressed_variant_is_skipped(
    tmp_path, workdir, counting_transport
) -> None:
    refs = tmp_path / "refs"
    refs.mkdir()
    (refs / f"{DIGEST}.gz").write_bytes(b"not gzip")
    counting_transport.payloads[f"http://remote/{DIGEST}"] = PAYLOAD
    entries = tokenize_search_path(f"{refs}/%s:http://remote/%s", ":")
    locator = SourceLocator(counting_transport)

    assert locator.locate(DIGEST, entries, local_only=True) is None
    with locator.locate(DIGEST, entries) as handle:
        assert handle.name == f"http://remote/{DIGEST}"
        assert handle.read() == PAYLOAD


def test_pipe_entry_skips_compressed_variant(tmp_path, workdir, counting_transport) -> None:
    refs = tmp_path / "refs"
    refs.mkdir()
    with gzip.open(refs / f"{DIGEST}.gz", "wb") as out:
        out.write(PAYLOAD)
    entries = tokenize_search_path(f"|{refs}/%s", ":")

    assert SourceLocator(counting_transport).locate(DIGEST, entries) is None


def test_remote_entries_in_order(workdir, counting_transport) -> None:
    counting_transport.payloads[f"http://second/{DIGEST}"] = PAYLOAD
    entries = tokenize_search_path("http://first/%s:http://second/%s:http://third/%s", ":")

    handle = SourceLocator(counting_transport).locate(DIGEST, entries)

    assert handle is not None
    assert handle.read() == PAYLOAD
    assert counting_transport.calls == [f"http://first/{DIGEST}", f"http://second/{DIGEST}"]


def test_local_only_never_touches_transport(workdir, counting_transport) -> None:
    counting_transport.payloads[f"http://remote/{DIGEST}"] = PAYLOAD
    entries = tokenize_search_path("http://remote/%s", ":")

    assert SourceLocator(counting_transport).locate(DIGEST, entries, local_only=True) is None
    assert counting_transport.calls == []


def test_iter_sources_is_lazy(workdir, counting_transport) -> None:
    counting_transport.payloads[f"http://a/{DIGEST}"] = PAYLOAD
    counting_transport.payloads[f"http://b/{DIGEST}"] = PAYLOAD
    entries = tokenize_search_path("http://a/%s:http://b/%s", ":")

    sources = SourceLocator(counting_transport).iter_sources(DIGEST, entries)
    first = next(sources)
    sources.close()

    assert first.name == f"http://a/{DIGEST}"
    assert counting_transport.calls == [f"http://a/{DIGEST}"]


def test_implicit_current_directory_entry(workdir, counting_transport) -> None:
    (workdir / DIGEST).write_bytes(PAYLOAD)
    entries = tokenize_search_path("", ":")

    locator = SourceLocator(counting_transport)
    assert locator.find_local_path(DIGEST, entries) is not None
    handle = locator.locate(DIGEST, entries)
    assert handle is not None
    with handle:
        assert handle.read() == PAYLOAD
