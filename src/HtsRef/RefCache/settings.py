# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.settings",
#   "purpose": "Settings models and environment loading for reference resolution",
#   "sections": [
#     {"id": "models", "name": "Configuration models", "anchor": "MOD", "kind": "api"},
#     {"id": "environment", "name": "Environment overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "builders", "name": "Settings builders", "anchor": "BLD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models, environment overrides, and cache location defaults.

The resolver never reads process environment itself.  ``load_settings`` is
called once at the boundary (CLI entry point, library caller) and produces an
immutable :class:`ResolverSettings` that is handed to the resolver.

Environment variables honoured:

* ``REF_PATH`` – search path of directories and URL templates.  Unset or empty
  selects the public EBI lookup service.
* ``REF_CACHE`` – cache directory template.  When both ``REF_CACHE`` and
  ``REF_PATH`` are unset, a cache below ``<cache-base>/hts-ref`` is used so the
  public service is not queried twice for the same sequence.
* ``XDG_CACHE_HOME``, ``HOME``, ``TMPDIR``, ``TEMP`` – checked in that order
  for ``<cache-base>``; ``HOME`` gets ``/.cache`` appended.
* ``HTSREF_LOG_LEVEL``, ``HTSREF_HTTP_TIMEOUT_SEC`` – ambient tuning.
"""

from __future__ import annotations

import os
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .search_path import SearchPathEntry, tokenize_search_path

__all__ = [
    "DEFAULT_SEARCH_PATH",
    "FALLBACK_CACHE_BASE",
    "EnvironmentOverrides",
    "HttpConfiguration",
    "LoggingConfiguration",
    "ResolverSettings",
    "build_settings",
    "cache_base_dir",
    "default_cache_template",
    "load_settings",
]

DEFAULT_SEARCH_PATH = "http://www.ebi.ac.uk:80/ena/cram/md5/%s"
FALLBACK_CACHE_BASE = "/tmp"
CACHE_DIR_NAME = "hts-ref"
DEFAULT_DIRECTORY_MODE = 0o1777


# --- Configuration models ------------------------------------------------------


class LoggingConfiguration(BaseModel):
    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_logs: bool = Field(default=False, description="Emit JSON lines on the console handler")
    log_file: Optional[str] = Field(default=None, description="Optional rotating JSON log file")
    max_log_size_mb: int = Field(default=10, gt=0)

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = ConfigDict(validate_assignment=True)


class HttpConfiguration(BaseModel):
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=120.0)
    timeout_sec: float = Field(default=60.0, gt=0.0, le=3600.0)
    follow_redirects: bool = Field(default=True)
    max_connections: int = Field(default=16, ge=1, le=256)
    max_keepalive_connections: int = Field(default=8, ge=0, le=256)
    user_agent: str = Field(default="HtsRef-RefCache/1.0")

    model_config = ConfigDict(validate_assignment=True)


class ResolverSettings(BaseModel):
    """Effective configuration for one resolver instance.

    Attributes:
        search_path: Raw search path string (``REF_PATH`` syntax).
        explicit_search_path: ``False`` when the default lookup service is used.
        cache_template: Cache directory template or ``None`` to disable caching.
        cache_root: Root of the default cache when it was derived rather than
            configured; used only for the "cache may become large" notice.
        path_separator: Separator between search path entries.
        directory_mode: Mode applied to cache directories created on demand.
        compressed_suffixes: Suffixes probed for local entries without ``|``.
        single_flight: Coordinate concurrent remote fetches per checksum.
    """

    search_path: str = Field(default=DEFAULT_SEARCH_PATH)
    explicit_search_path: bool = Field(default=False)
    cache_template: Optional[str] = Field(default=None)
    cache_root: Optional[str] = Field(default=None)
    path_separator: str = Field(default=os.pathsep, min_length=1, max_length=1)
    directory_mode: int = Field(default=DEFAULT_DIRECTORY_MODE, ge=0, le=0o7777)
    compressed_suffixes: Tuple[str, ...] = Field(default=(".gz",))
    single_flight: bool = Field(default=False)
    http: HttpConfiguration = Field(default_factory=HttpConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = ConfigDict(frozen=True)

    @field_validator("compressed_suffixes")
    @classmethod
    def validate_suffixes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        for suffix in value:
            if not suffix.startswith("."):
                raise ValueError(f"compressed suffix must start with '.': {suffix!r}")
        return value

    def entries(self) -> List[SearchPathEntry]:
        """Tokenise :attr:`search_path` into typed entries."""

        return tokenize_search_path(self.search_path, self.path_separator)


# --- Environment overrides -----------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    """Environment variables recognised by the reference resolver."""

    ref_path: Optional[str] = Field(default=None, alias="REF_PATH")
    ref_cache: Optional[str] = Field(default=None, alias="REF_CACHE")
    xdg_cache_home: Optional[str] = Field(default=None, alias="XDG_CACHE_HOME")
    home: Optional[str] = Field(default=None, alias="HOME")
    tmpdir: Optional[str] = Field(default=None, alias="TMPDIR")
    temp: Optional[str] = Field(default=None, alias="TEMP")
    log_level: Optional[str] = Field(default=None, alias="HTSREF_LOG_LEVEL")
    http_timeout_sec: Optional[float] = Field(default=None, alias="HTSREF_HTTP_TIMEOUT_SEC")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore", populate_by_name=True)


def cache_base_dir(
    *,
    xdg_cache_home: Optional[str] = None,
    home: Optional[str] = None,
    tmpdir: Optional[str] = None,
    temp: Optional[str] = None,
) -> str:
    """Return the base directory for the default cache.

    The first non-empty candidate wins; ``home`` gets ``/.cache`` appended.

    Examples:
        >>> cache_base_dir(home="/home/ada")
        '/home/ada/.cache'
        >>> cache_base_dir()
        '/tmp'
    """

    if xdg_cache_home:
        return xdg_cache_home
    if home:
        return f"{home}/.cache"
    if tmpdir:
        return tmpdir
    if temp:
        return temp
    return FALLBACK_CACHE_BASE


def default_cache_template(base: str) -> Tuple[str, str]:
    """Return ``(cache_root, cache_template)`` for a cache below ``base``."""

    root = f"{base}/{CACHE_DIR_NAME}"
    return root, f"{root}/%2s/%2s/%s"


# --- Settings builders ---------------------------------------------------------


def build_settings(env: EnvironmentOverrides, **overrides: object) -> ResolverSettings:
    """Derive :class:`ResolverSettings` from ``env`` plus explicit overrides."""

    search_path = env.ref_path or None
    cache_template = env.ref_cache or None
    cache_root: Optional[str] = None
    explicit = search_path is not None
    if search_path is None:
        search_path = DEFAULT_SEARCH_PATH
        if cache_template is None:
            base = cache_base_dir(
                xdg_cache_home=env.xdg_cache_home,
                home=env.home,
                tmpdir=env.tmpdir,
                temp=env.temp,
            )
            cache_root, cache_template = default_cache_template(base)

    values: dict = {
        "search_path": search_path,
        "explicit_search_path": explicit,
        "cache_template": cache_template,
        "cache_root": cache_root,
    }
    if env.log_level:
        values["logging"] = {"level": env.log_level}
    if env.http_timeout_sec is not None:
        values["http"] = {"timeout_sec": env.http_timeout_sec}
    values.update(overrides)
    try:
        return ResolverSettings.model_validate(values)
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid resolver settings: {exc}") from exc


def load_settings(**overrides: object) -> ResolverSettings:
    """Read the process environment once and build resolver settings."""

    try:
        env = EnvironmentOverrides()
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid environment configuration: {exc}") from exc
    return build_settings(env, **overrides)
