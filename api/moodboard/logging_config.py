"""Structured logging configuration using structlog.

Every event passes through :func:`redact_event` before rendering, so OAuth
codes, provider tokens and Stripe secrets never reach the log stream even
when a handler logs a raw payload.
"""

import logging
import sys
from typing import Any
import structlog
from moodboard.config import settings

SERVICE_NAME = "moodboard-api"
REDACTED = "***REDACTED***"

SENSITIVE_KEYS = {
    "password",
    "authorization",
    "code",
    "hmac",
    "credentials",
}
SENSITIVE_SUFFIXES = ("token", "secret", "api_key", "_key")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "openai", "hpack")


def is_sensitive(key: str) -> bool:
    key = key.lower()
    return key in SENSITIVE_KEYS or key.endswith(SENSITIVE_SUFFIXES)


def redact_sensitive_data(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with secret-looking fields masked.

    Nested dicts and dicts inside lists are walked; other values are kept.
    Used for activity metadata and provider responses before they are stored
    or logged.
    """
    redacted = {}
    for key, value in data.items():
        if is_sensitive(str(key)):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = redact_sensitive_data(value)
        elif isinstance(value, list):
            redacted[key] = [redact_sensitive_data(item) if isinstance(item, dict) else item for item in value]
        else:
            redacted[key] = value
    return redacted


def redact_event(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor applying :func:`redact_sensitive_data` to the event."""
    event = event_dict.pop("event", None)
    event_dict = redact_sensitive_data(event_dict)
    if event is not None:
        event_dict["event"] = event
    return event_dict


def add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging():
    """Configure stdlib logging and structlog once for the process."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service,
        redact_event,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_format == "json":
        renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger(SERVICE_NAME)
