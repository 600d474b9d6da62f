# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.net",
#   "purpose": "Shared HTTPX client and HTTP/FTP stream openers for remote references",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Transport collaborator used by the source locator for remote entries.

HTTP(S) goes through one lazily-built, process-wide HTTPX client; FTP goes
through ``fsspec``.  Both return :class:`RemoteStreamHandle` objects and map
every transport failure, including non-2xx statuses, to
:class:`TransportError` so the locator can move on to the next entry.
"""

from __future__ import annotations

import contextlib
import ftplib
import logging
import ssl
import threading
from typing import Iterator, Optional, Protocol
from urllib.parse import urlparse

import certifi
import fsspec
import httpx

from .checksums import CHUNK_SIZE
from .errors import TransportError
from .handles import ContentHandle, RemoteStreamHandle
from .settings import HttpConfiguration

LOGGER = logging.getLogger("HtsRef.RefCache.net")

__all__ = [
    "DefaultTransport",
    "Transport",
    "configure_http_client",
    "get_http_client",
    "open_ftp",
    "open_http",
    "reset_http_client",
]

# --- Constants & globals -------------------------------------------------------

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_DEFAULT_CONFIG = HttpConfiguration()
_FTP_ERRORS = (OSError, EOFError, ftplib.Error)
# fsspec raises ValueError for malformed host or port parts.
_FTP_OPEN_ERRORS = _FTP_ERRORS + (ValueError,)

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: HttpConfiguration) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.timeout_sec,
        write=config.timeout_sec,
        pool=config.connect_timeout_sec,
    )


def _limits_for(config: HttpConfiguration) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_keepalive_connections,
    )


def _build_http_client(config: HttpConfiguration) -> httpx.Client:
    return httpx.Client(
        timeout=_timeout_for(config),
        limits=_limits_for(config),
        verify=_build_ssl_context(),
        trust_env=True,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    default_config: Optional[HttpConfiguration] = None,
) -> None:
    """Install ``client`` as the shared HTTPX client or set the default config."""

    global _HTTP_CLIENT, _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        if default_config is not None:
            _DEFAULT_CONFIG = default_config
        if client is None or _HTTP_CLIENT is not client:
            _close_client_unlocked()
        _HTTP_CLIENT = client


def reset_http_client() -> None:
    """Close the shared client and restore the default configuration (test helper)."""

    global _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        _close_client_unlocked()
        _DEFAULT_CONFIG = HttpConfiguration()


def get_http_client(config: Optional[HttpConfiguration] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it on first use."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            cfg = config or _DEFAULT_CONFIG
            _HTTP_CLIENT = _build_http_client(cfg)
            LOGGER.debug(
                "http client initialized",
                extra={"stage": "transport", "timeout_sec": cfg.timeout_sec},
            )
        return _HTTP_CLIENT


def _iter_response(response: httpx.Response, url: str) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes(CHUNK_SIZE)
    except httpx.HTTPError as exc:
        raise TransportError(f"Failed reading {url}: {exc}", url=url) from exc


def open_http(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    config: Optional[HttpConfiguration] = None,
) -> RemoteStreamHandle:
    """Issue a streaming GET for ``url`` and wrap the body in a handle."""

    active = client or get_http_client(config)
    try:
        response = active.send(active.build_request("GET", url), stream=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise TransportError(f"HTTP request failed for {url}: {exc}", url=url) from exc

    if not response.is_success:
        status = response.status_code
        response.close()
        raise TransportError(f"HTTP {status} for {url}", url=url, status_code=status)

    size: Optional[int] = None
    length = response.headers.get("Content-Length")
    if length and not response.headers.get("Content-Encoding"):
        with contextlib.suppress(ValueError):
            size = int(length)
    LOGGER.debug(
        "opened http source",
        extra={"stage": "transport", "url": url, "status": response.status_code},
    )
    return RemoteStreamHandle(
        _iter_response(response, url), name=url, size=size, on_close=response.close
    )


def _iter_file(handle, url: str) -> Iterator[bytes]:
    try:
        yield from iter(lambda: handle.read(CHUNK_SIZE), b"")
    except _FTP_ERRORS as exc:
        raise TransportError(f"Failed reading {url}: {exc}", url=url) from exc


def open_ftp(url: str) -> RemoteStreamHandle:
    """Open ``url`` through fsspec's FTP filesystem."""

    try:
        fs, path = fsspec.core.url_to_fs(url)
        handle = fs.open(path, "rb")
    except _FTP_OPEN_ERRORS as exc:
        raise TransportError(f"FTP open failed for {url}: {exc}", url=url) from exc
    size = getattr(handle, "size", None)
    LOGGER.debug("opened ftp source", extra={"stage": "transport", "url": url})
    return RemoteStreamHandle(_iter_file(handle, url), name=url, size=size, on_close=handle.close)


class Transport(Protocol):
    """Opens remote URLs as content handles."""

    def open(self, url: str) -> ContentHandle:
        """Open ``url`` or raise :class:`TransportError`."""
        ...


class DefaultTransport:
    """Scheme-dispatching transport backed by HTTPX and fsspec."""

    def __init__(
        self,
        config: Optional[HttpConfiguration] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self._client = client

    def open(self, url: str) -> ContentHandle:
        scheme = urlparse(url).scheme.lower()
        if scheme in {"http", "https"}:
            return open_http(url, client=self._client, config=self.config)
        if scheme == "ftp":
            return open_ftp(url)
        raise TransportError(f"Unsupported URL scheme for {url}", url=url)
