"""Structured logging setup.

All modules log through structlog with dotted event names and keyword
context, e.g. ``logger.info("dispatch.denied", command="mute")``.
Bot tokens are redacted from every event before rendering.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Discord bot tokens: base64 user id, timestamp, HMAC
_DISCORD_TOKEN_RE = re.compile(r"[MNO][A-Za-z\d_-]{23,25}\.[A-Za-z\d_-]{6}\.[A-Za-z\d_-]{27,38}")
_AUTH_HEADER_RE = re.compile(r"(Bot\s+)[A-Za-z\d_.-]{20,}")


def _truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _level_value(value: str | None, *, default: str = "info") -> int:
    if not value:
        return _LEVELS[default]
    return _LEVELS.get(value.strip().lower(), _LEVELS[default])


def _redact_text(text: str) -> str:
    text = _AUTH_HEADER_RE.sub(r"\1[REDACTED]", text)
    return _DISCORD_TOKEN_RE.sub("[REDACTED_TOKEN]", text)


def _redact_value(value: Any, memo: dict[int, Any]) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, bytes):
        return _redact_text(value.decode("utf-8", errors="replace"))
    if isinstance(value, (dict, list, tuple, set)):
        key = id(value)
        if key in memo:
            return memo[key]
        if isinstance(value, dict):
            out: Any = {}
            memo[key] = out
            for k, v in value.items():
                out[k] = _redact_value(v, memo)
            return out
        items = [_redact_value(v, memo) for v in value]
        if isinstance(value, tuple):
            out = tuple(items)
        elif isinstance(value, set):
            out = set(items)
        else:
            out = items
        memo[key] = out
        return out
    return value


def _redact_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return _redact_value(event_dict, {})


class SafeWriter:
    """File-like wrapper that never raises once the stream is gone.

    Shutdown can close stderr while background tasks are still logging.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._closed = False

    def write(self, data: str) -> int:
        if self._closed:
            return 0
        try:
            return self._stream.write(data)
        except (ValueError, OSError):
            self._closed = True
            return 0

    def flush(self) -> None:
        if self._closed:
            return
        try:
            self._stream.flush()
        except (ValueError, OSError):
            self._closed = True

    def isatty(self) -> bool:
        try:
            return self._stream.isatty()
        except (ValueError, OSError):
            return False


def setup_logging(*, debug: bool = False, stream: TextIO | None = None) -> None:
    """Configure structlog for the process.

    Environment overrides:
        GATEKEEP_LOG_LEVEL: debug/info/warning/error/critical
        GATEKEEP_LOG_FORMAT: "json" or "console"
        GATEKEEP_LOG_JSON: truthy forces JSON output
    """
    writer = SafeWriter(stream or sys.stderr)
    level = logging.DEBUG if debug else _level_value(os.environ.get("GATEKEEP_LOG_LEVEL"))

    log_format = (os.environ.get("GATEKEEP_LOG_FORMAT") or "").strip().lower()
    if _truthy(os.environ.get("GATEKEEP_LOG_JSON")):
        log_format = "json"
    if log_format not in {"json", "console"}:
        log_format = "console" if writer.isatty() else "json"

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=writer.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _redact_processor,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=writer),
        cache_logger_on_first_use=False,
    )

    # discord.py logs through stdlib logging
    logging.getLogger("discord").setLevel(logging.DEBUG if debug else logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


@contextmanager
def suppress_logs(level: str = "warning") -> Iterator[None]:
    """Temporarily raise the minimum level of structlog output."""
    previous = structlog.get_config()
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(_level_value(level)),
    )
    try:
        yield
    finally:
        structlog.configure(wrapper_class=previous["wrapper_class"])
