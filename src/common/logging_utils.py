"""Centralized logging helpers.

Keeps log setup and structured-context conventions in one place so the
registry client and the traversal engine log the same way.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_SENSITIVE_QUERY_KEYS = {"token", "access_token", "api_key", "apikey", "key", "sig", "signature"}


def configure_logging(level: Optional[str] = None) -> None:
    """Install the console handler on the root logger.

    Level precedence: explicit argument, then the environment variable named
    by ``Constants.LOG_LEVEL_ENV``, then INFO.
    """
    level_name = (level or os.environ.get(Constants.LOG_LEVEL_ENV) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    # Re-running setup (tests, repeated CLI calls) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_nugetharvest", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    handler._nugetharvest = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level_value)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra=`` mapping for structured log records.

    None values are dropped so records only carry what the caller knows.
    """
    return {key: value for key, value in fields.items() if value is not None}


def redact(value: str) -> str:
    """Mask all but the first characters of a secret."""
    if not value:
        return value
    if len(value) <= 4:
        return "****"
    return f"{value[:2]}****"


def safe_url(url: str) -> str:
    """Strip credentials and secret-looking query parameters from a URL for logging."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "****@" + netloc.rsplit("@", 1)[1]
    query = parts.query
    if query:
        pairs = urllib.parse.parse_qsl(query, keep_blank_values=True)
        query = urllib.parse.urlencode(
            [(k, redact(v) if k.lower() in _SENSITIVE_QUERY_KEYS else v) for k, v in pairs]
        )
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start: float = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds; usable while the block is still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)


def indent(depth: int) -> str:
    """Two spaces per dependency level, matching the console tree output."""
    return "  " * max(depth, 0)
