"""Structured logging configuration using structlog.

JSON logs in production, console output everywhere else. Three processors
keep visitor data out of the log stream:

* credentials (tokens, cookies, authorization headers) become ``[REDACTED]``;
* visitor identifiers (IP, user agent, user id, referrer) become ``[PII_REDACTED]``;
* free text reported by clients (error messages, stack traces) has e-mail
  addresses and URLs replaced before it is written.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

from app.config import Environment, Settings, get_settings

_SENSITIVE_KEYS = ("password", "secret", "token", "authorization", "cookie", "email")

_PII_KEYS = frozenset(
    {"ip_address", "client_ip", "user_agent", "user_id", "referrer", "query_params"}
)

_FREE_TEXT_KEYS = frozenset({"message", "error_message", "stack", "reason"})

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_URL_RE = re.compile(r"https?://\S+")

# Access logs carry raw client addresses; the others are chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "asyncio")


def scrub_text(text: str) -> str:
    """Replace e-mail addresses and URLs in client-supplied text."""
    return _URL_RE.sub("[URL]", _EMAIL_RE.sub("[EMAIL]", text))


def _filter_sensitive_data(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Redact credentials from log events."""
    for key in list(event_dict.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def _filter_pii(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Redact visitor-identifying values."""
    for key in _PII_KEYS.intersection(event_dict):
        event_dict[key] = "[PII_REDACTED]"
    return event_dict


def _scrub_free_text(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in _FREE_TEXT_KEYS.intersection(event_dict):
        if isinstance(event_dict[key], str):
            event_dict[key] = scrub_text(event_dict[key])
    return event_dict


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.environment == Environment.PRODUCTION:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _filter_sensitive_data,
        _filter_pii,
        _scrub_free_text,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    for logger_name in _QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
