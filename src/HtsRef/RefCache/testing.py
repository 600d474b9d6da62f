"""Testing utilities for exercising reference resolution without a network.

Provides an in-process fake of an MD5 lookup service served through
``httpx.MockTransport`` and a helper that temporarily installs a mock-backed
HTTPX client as the shared client used by :mod:`HtsRef.RefCache.net`.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import httpx

from .net import DefaultTransport, configure_http_client, reset_http_client

__all__ = [
    "ReferenceFixtureServer",
    "RequestRecord",
    "ResponseSpec",
    "use_mock_http_client",
]


@contextlib.contextmanager
def use_mock_http_client(transport: "httpx.BaseTransport", **client_kwargs):
    """Temporarily install an HTTPX client backed by ``transport``."""

    default_config = client_kwargs.pop("default_config", None)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_config=default_config)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


@dataclass
class ResponseSpec:
    """HTTP response served for one checksum."""

    status: int = 200
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    stream: Optional[Sequence[bytes]] = None
    delay_sec: Optional[float] = None


@dataclass
class RequestRecord:
    """Captured request issued against the fake lookup service."""

    method: str
    url: str
    path: str


class ReferenceFixtureServer(contextlib.AbstractContextManager["ReferenceFixtureServer"]):
    """Fake MD5 lookup service keyed by checksum.

    Entering the context installs a mock-backed client as the shared HTTPX
    client, so a plain :class:`~HtsRef.RefCache.net.DefaultTransport` talks
    to this fake.

    Examples:
        >>> with ReferenceFixtureServer() as server:
        ...     checksum = server.register(b"ACGT")
        ...     server.url_template
        'http://refs.test/md5/%s'
    """

    def __init__(
        self,
        base_url: str = "http://refs.test",
        *,
        prefix: str = "/md5/",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.prefix = "/" + prefix.strip("/") + "/"
        self._logger = logger or logging.getLogger("HtsRef.RefCache.testing")
        self._responses: Dict[str, ResponseSpec] = {}
        self._request_log: List[RequestRecord] = []
        self._lock = threading.Lock()
        self._client_context: Optional[contextlib.AbstractContextManager] = None
        self._dedicated_clients: List[httpx.Client] = []

    def __enter__(self) -> "ReferenceFixtureServer":
        self._client_context = use_mock_http_client(self.build_httpx_transport())
        self._client_context.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._client_context is not None:
            self._client_context.__exit__(exc_type, exc, tb)
            self._client_context = None
        while self._dedicated_clients:
            self._dedicated_clients.pop().close()

    @property
    def url_template(self) -> str:
        return f"{self.base_url}{self.prefix}%s"

    def url_for(self, checksum: str) -> str:
        return f"{self.base_url}{self.prefix}{checksum}"

    def register(
        self,
        data: Union[bytes, str],
        *,
        checksum: Optional[str] = None,
        corrupt: bool = False,
        chunk_size: Optional[int] = None,
        delay_sec: Optional[float] = None,
    ) -> str:
        """Serve ``data`` under its MD5 (or ``checksum``) and return the key.

        ``corrupt=True`` flips the last byte of the served body so it no
        longer matches the key.
        """

        content = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        key = (checksum or hashlib.md5(content).hexdigest()).lower()
        body = content
        if corrupt:
            body = content[:-1] + bytes([(content[-1] ^ 0xFF) if content else 0x00])
        stream = None
        if chunk_size:
            stream = [body[i : i + chunk_size] for i in range(0, len(body), chunk_size)]
        self.queue(key, ResponseSpec(body=body, stream=stream, delay_sec=delay_sec))
        return key

    def fail(self, checksum: str, status: int = 500) -> None:
        """Answer requests for ``checksum`` with ``status`` and an empty body."""

        self.queue(checksum.lower(), ResponseSpec(status=status))

    def queue(self, checksum: str, response: ResponseSpec) -> None:
        with self._lock:
            self._responses[checksum] = response

    @property
    def requests(self) -> Sequence[RequestRecord]:
        with self._lock:
            return list(self._request_log)

    def request_count(self, checksum: Optional[str] = None) -> int:
        records = self.requests
        if checksum is None:
            return len(records)
        return sum(1 for record in records if record.path.endswith("/" + checksum))

    def build_httpx_transport(self) -> "httpx.MockTransport":
        """Return an HTTPX transport answering from the registered payloads."""

        server = self

        def _handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path or "/"
            with server._lock:
                server._request_log.append(
                    RequestRecord(method=request.method, url=str(request.url), path=path)
                )
                spec = None
                if path.startswith(server.prefix):
                    spec = server._responses.get(path[len(server.prefix) :].lower())
            server._logger.debug("fixture request", extra={"stage": "testing", "url": str(request.url)})
            if spec is None:
                return httpx.Response(404, request=request, content=b"")
            if spec.delay_sec:
                time.sleep(spec.delay_sec)
            if spec.stream is not None:

                def iterator() -> Iterable[bytes]:
                    yield from spec.stream or []

                return httpx.Response(
                    spec.status, headers=dict(spec.headers), content=iterator(), request=request
                )
            return httpx.Response(
                spec.status, headers=dict(spec.headers), content=spec.body, request=request
            )

        return httpx.MockTransport(_handler)

    def transport(self) -> DefaultTransport:
        """Return a transport bound to a dedicated client for this fake.

        The client is closed when the context exits.
        """

        client = httpx.Client(transport=self.build_httpx_transport())
        self._dedicated_clients.append(client)
        return DefaultTransport(client=client)
