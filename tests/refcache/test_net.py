"""HTTP and FTP openers exercised through httpx.MockTransport and fsspec."""

from __future__ import annotations

import ftplib
import uuid

import fsspec
import httpx
import pytest

from HtsRef.RefCache import net as net_mod
from HtsRef.RefCache.errors import TransportError
from HtsRef.RefCache.net import DefaultTransport, get_http_client, open_ftp, open_http
from HtsRef.RefCache.testing import ReferenceFixtureServer, use_mock_http_client


def test_open_http_streams_body() -> None:
    payload = b"ACGT" * 100

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.headers["User-Agent"].startswith("HtsRef-RefCache/")
        return httpx.Response(200, content=payload)

    with use_mock_http_client(
        httpx.MockTransport(handler), headers={"User-Agent": "HtsRef-RefCache/test"}
    ):
        with open_http("http://refs.test/md5/abc") as handle:
            assert handle.size == len(payload)
            assert handle.provenance == "remote"
            assert handle.read(4) == b"ACGT"
            assert handle.read() == payload[4:]


def test_non_success_status_is_transport_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, request=request))

    with use_mock_http_client(transport):
        with pytest.raises(TransportError) as excinfo:
            open_http("http://refs.test/md5/missing")

    assert excinfo.value.status_code == 404
    assert excinfo.value.url == "http://refs.test/md5/missing"


def test_connection_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with use_mock_http_client(httpx.MockTransport(handler)):
        with pytest.raises(TransportError):
            DefaultTransport().open("https://refs.test/md5/x")


def test_explicit_client_bypasses_shared_client() -> None:
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"NN"))
    )
    handle = DefaultTransport(client=client).open("http://private/x")
    assert handle.read() == b"NN"
    handle.close()
    client.close()


def test_unsupported_scheme() -> None:
    with pytest.raises(TransportError):
        DefaultTransport().open("gopher://refs/x")


def test_shared_client_is_lazy_and_resettable() -> None:
    first = get_http_client()
    assert get_http_client() is first
    net_mod.reset_http_client()
    assert get_http_client() is not first


def test_mock_client_is_installed_and_removed() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200))
    with use_mock_http_client(transport) as client:
        assert get_http_client() is client
    assert get_http_client() is not client


def test_open_ftp_reads_through_fsspec() -> None:
    path = f"/refs-{uuid.uuid4().hex}/sequence"
    fs = fsspec.filesystem("memory")
    fs.pipe(path, b"GATTACA")
    try:
        with open_ftp(f"memory://{path.lstrip('/')}") as handle:
            assert handle.read() == b"GATTACA"
    finally:
        fs.rm(path)


def test_open_ftp_missing_path() -> None:
    with pytest.raises(TransportError):
        open_ftp(f"memory://missing-{uuid.uuid4().hex}/sequence")


def test_malformed_http_url_is_transport_error() -> None:
    with use_mock_http_client(httpx.MockTransport(lambda request: httpx.Response(200))):
        with pytest.raises(TransportError) as excinfo:
            DefaultTransport().open("http://bad:notaport/md5/x")

    assert excinfo.value.url == "http://bad:notaport/md5/x"


def test_malformed_ftp_url_is_transport_error() -> None:
    with pytest.raises(TransportError):
        DefaultTransport().open("ftp://bad:notaport/refs/x")


def test_ftp_scheme_dispatches_to_fsspec(monkeypatch) -> None:
    seen = []

    def refuse(url, **kwargs):
        seen.append(url)
        raise ftplib.error_perm("530 Login incorrect")

    monkeypatch.setattr(fsspec.core, "url_to_fs", refuse)

    with pytest.raises(TransportError) as excinfo:
        DefaultTransport().open("ftp://mirror.test/refs/x")

    assert seen == ["ftp://mirror.test/refs/x"]
    assert excinfo.value.url == "ftp://mirror.test/refs/x"
    assert isinstance(excinfo.value.__cause__, ftplib.error_perm)


def test_fixture_server_closes_dedicated_clients() -> None:
    with ReferenceFixtureServer() as server:
        checksum = server.register(b"ACGT")
        transport = server.transport()
        with transport.open(server.url_for(checksum)) as handle:
            assert handle.read() == b"ACGT"
        client = transport._client
        assert not client.is_closed

    assert client.is_closed
