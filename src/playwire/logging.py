"""Structured logging for playwire, built on structlog.

Library modules log through ``get_logger(__name__)`` with snake_case event
names and keyword context. Nothing is printed until the application (or the
``playwire`` CLI) calls ``configure_logging``.

Per-frame protocol logging is off by default. ``enable_protocol_debug()`` (or
``PLAYWIRE_DEBUG_PROTOCOL=true``) turns it on; frames are then logged at DEBUG
with long values such as base64 bodies shortened.
"""

import logging as stdlib_logging
import sys
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

MAX_VALUE_LENGTH = 200

_protocol_debug = False


def add_log_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the log level to the event dict."""
    event_dict["level"] = "warning" if method_name == "warn" else method_name
    return event_dict


def shorten_long_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Cut strings longer than MAX_VALUE_LENGTH, at any depth of dicts and lists.

    Protocol frames carry initializers, scripts and base64 payloads that would
    otherwise flood the log.
    """
    for key, value in event_dict.items():
        if key != "event":
            event_dict[key] = _shorten(value)
    return event_dict


def _shorten(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
        return f"{value[:MAX_VALUE_LENGTH]}...(+{len(value) - MAX_VALUE_LENGTH} chars)"
    if isinstance(value, dict):
        return {k: _shorten(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_shorten(v) for v in value]
    return value


def configure_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """Configure structlog output on stderr.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown
            names fall back to INFO.
        json_output: Render one JSON object per line instead of the
            human-readable console format.
    """
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_log_level,
            shorten_long_values,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(stdlib_logging, level.upper(), stdlib_logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def enable_protocol_debug(enabled: bool = True) -> None:
    """Log every frame sent to and received from the driver.

    Frames are logged at DEBUG level, so logging must also be configured
    with ``level="DEBUG"`` for them to appear.
    """
    global _protocol_debug
    _protocol_debug = enabled


def protocol_debug_enabled() -> bool:
    return _protocol_debug


@contextmanager
def suppress_asyncio_noise():
    """Silence asyncio's logger while a loop and its subprocess transports shut down.

    The driver's pipe transports can report "Event loop is closed" style
    WARNING/ERROR records when the sync facade closes its loop. Everything
    below CRITICAL from the ``asyncio`` logger is dropped inside the block, so
    keep the block small.
    """
    asyncio_logger = stdlib_logging.getLogger("asyncio")
    prev_level = asyncio_logger.level
    asyncio_logger.setLevel(stdlib_logging.CRITICAL)
    try:
        yield
    finally:
        asyncio_logger.setLevel(prev_level)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, normally as ``LOG = get_logger(__name__)``."""
    return structlog.get_logger(name)
