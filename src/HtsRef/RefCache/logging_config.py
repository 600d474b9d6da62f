"""
Structured Logging Utilities

Console and optional JSON file logging for the reference resolver.  Modules
log through ``logging.getLogger("HtsRef.RefCache")`` (or a child logger) and
attach context through ``extra={"stage": ..., "checksum": ...}``; the
:class:`JSONFormatter` lifts those fields into the emitted record.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .settings import LoggingConfiguration

LOGGER_NAME = "HtsRef.RefCache"

_CONTEXT_FIELDS = (
    "stage",
    "checksum",
    "actual",
    "path",
    "url",
    "source",
    "status",
    "status_code",
    "size",
    "template",
    "states",
    "error",
)


def mask_url_credentials(value: str) -> str:
    """Hide ``user:password@`` userinfo embedded in a URL.

    Examples:
        >>> mask_url_credentials("ftp://user:pw@example.org/%s")
        'ftp://***masked***@example.org/%s'
        >>> mask_url_credentials("/refs/%s")
        '/refs/%s'
    """

    scheme, sep, rest = value.partition("://")
    if not sep or "@" not in rest.split("/", 1)[0]:
        return value
    return f"{scheme}://***masked***@{rest.split('@', 1)[1]}"


def generate_correlation_id() -> str:
    """Create a short identifier linking log entries of one CLI invocation.

    Examples:
        >>> len(generate_correlation_id())
        12
    """
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                continue
            if isinstance(value, str):
                value = mask_url_credentials(value)
            log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


class _CorrelationFilter(logging.Filter):
    def __init__(self, correlation_id: str) -> None:
        super().__init__()
        self.correlation_id = correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = self.correlation_id
        return True


def setup_logging(
    config: Optional[LoggingConfiguration] = None,
    *,
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """Configure handlers on the ``HtsRef.RefCache`` logger.

    Handlers installed by a previous call are removed first, so the function
    can be called repeatedly (tests, CLI re-entry).  Console output goes to
    stderr so that reference bytes written to stdout stay clean.

    Args:
        config: Level, console format and optional rotating JSON log file.
        correlation_id: Identifier stamped on every record; generated when
            omitted.

    Returns:
        The configured package logger.

    Examples:
        >>> logger = setup_logging(LoggingConfiguration(level="WARNING"))
        >>> logger.name
        'HtsRef.RefCache'
    """

    config = config or LoggingConfiguration()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_htsref_managed", False):
            logger.removeHandler(handler)
            handler.close()
    correlation = _CorrelationFilter(correlation_id or generate_correlation_id())

    stream_handler = logging.StreamHandler(sys.stderr)
    if config.json_logs:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler.addFilter(correlation)
    stream_handler._htsref_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(correlation)
        file_handler._htsref_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = [
    "JSONFormatter",
    "LOGGER_NAME",
    "generate_correlation_id",
    "mask_url_credentials",
    "setup_logging",
]
