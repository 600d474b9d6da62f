"""Shared fixtures for the reference cache test suite."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import pytest

from HtsRef.RefCache import net as net_mod
from HtsRef.RefCache.errors import TransportError
from HtsRef.RefCache.handles import ContentHandle, InMemoryHandle
from HtsRef.RefCache.logging_config import LOGGER_NAME
from HtsRef.RefCache.settings import ResolverSettings
from HtsRef.RefCache.testing import ReferenceFixtureServer

REF_ENV_VARS = (
    "REF_PATH",
    "REF_CACHE",
    "XDG_CACHE_HOME",
    "HOME",
    "TMPDIR",
    "TEMP",
    "HTSREF_LOG_LEVEL",
    "HTSREF_HTTP_TIMEOUT_SEC",
)


class CountingTransport:
    """Transport serving fixed payloads by URL and recording every open."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None) -> None:
        self.payloads: Dict[str, bytes] = dict(payloads or {})
        self.calls: List[str] = []

    def open(self, url: str) -> ContentHandle:
        self.calls.append(url)
        if url not in self.payloads:
            raise TransportError(f"HTTP 404 for {url}", url=url, status_code=404)
        return InMemoryHandle(self.payloads[url], name=url, provenance="remote")


@pytest.fixture(autouse=True)
def _isolated_network_and_logging():
    net_mod.reset_http_client()
    yield
    net_mod.reset_http_client()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_htsref_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every environment variable the resolver reads."""

    for name in REF_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def counting_transport() -> CountingTransport:
    return CountingTransport()


@pytest.fixture
def fixture_server():
    with ReferenceFixtureServer() as server:
        yield server


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test from an empty directory so the implicit ``./`` entry finds nothing."""

    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def cache_template(tmp_path) -> str:
    return str(tmp_path / "cache" / "%2s" / "%2s" / "%s")


@pytest.fixture
def cache_settings(cache_template, fixture_server, workdir) -> ResolverSettings:
    return ResolverSettings(
        search_path=fixture_server.url_template,
        explicit_search_path=True,
        cache_template=cache_template,
        path_separator=":",
    )
