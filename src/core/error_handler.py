"""Logging setup and structured diagnostics for the extraction core.

Every assistant turn runs under one correlation id so the sanitizer, repair
and normalizer messages for that turn can be grouped. Structured fields are
redacted before they reach a handler: quiz leads carry personal data and
model output may echo anything the user typed.
"""

import logging
import re
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from core.config import get_settings
from core.security_config import is_sensitive_key


REDACTED = "[REDACTED]"

# Longer string values are cut in logs; payload text belongs in counters
MAX_LOGGED_STRING = 200

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(\.[\w-]+)+")

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)


def get_correlation_id() -> str:
    """Return the current correlation id, creating one on first use."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under ``correlation_id``, or under the caller's id if set.

    A fresh id is generated only when neither is available. The previous
    value is restored on exit.
    """
    scoped = correlation_id or _correlation_id_var.get() or str(uuid.uuid4())
    token = _correlation_id_var.set(scoped)
    try:
        yield scoped
    finally:
        _correlation_id_var.reset(token)


def redact(value: Any, key: str | None = None) -> Any:
    """Mask sensitive keys, email addresses and long strings, recursively."""
    if key is not None and is_sensitive_key(key):
        return REDACTED
    if isinstance(value, dict):
        return {k: redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    if isinstance(value, str):
        masked = _EMAIL_RE.sub(REDACTED, value)
        if len(masked) > MAX_LOGGED_STRING:
            return f"{masked[:MAX_LOGGED_STRING]}... ({len(masked)} chars)"
        return masked
    return value


class StructuredLogger:
    """Logger wrapper that attaches the correlation id and redacted fields.

    Fields are passed as keyword arguments and end up on the record as
    ``structured_data``. Outside production they are also appended to the
    message as ``key=value`` pairs so plain-text handlers show them.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def log(self, level: int, message: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return

        correlation_id = get_correlation_id()
        data = redact(fields)
        structured = {"correlation_id": correlation_id, **data}

        if get_settings().ENVIRONMENT != "production":
            details = " ".join(f"{k}={v!r}" for k, v in data.items())
            message = f"[{correlation_id}] {message}" + (f" {details}" if details else "")

        self.logger.log(level, message, extra={"structured_data": structured})

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, **fields)


def _resolve_level(configured: str | None, environment: str) -> int:
    if not configured:
        return logging.DEBUG if environment == "development" else logging.INFO
    level = logging.getLevelName(configured.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown LOG_LEVEL: {configured}")
    return level


def setup_logging() -> None:
    """Install a stdout handler on the root logger; a no-op once one exists.

    Production logs are JSON objects (with ``structured_data`` nested);
    other environments get a single readable line per record.
    """
    settings = get_settings()
    log_level = _resolve_level(settings.LOG_LEVEL, settings.ENVIRONMENT)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)

    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)
    logger.debug("Logging configured for %s (%s)", settings.APP_NAME, settings.ENVIRONMENT)
