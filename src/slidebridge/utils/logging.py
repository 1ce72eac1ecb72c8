"""Structured logging configuration using structlog.

Log events carry the slide, question and upload they belong to. Slide
links embed an access token, so every URL that reaches the log goes
through ``redact_slide_url`` first.

Output is colored console text for interactive use or one JSON object
per line. Logs go to stderr; stdout is reserved for command output.
"""

import logging
import re
import sys
from collections.abc import Mapping, MutableMapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, cast

import structlog
from structlog.types import Processor

from slidebridge.config import settings

CORRELATION_KEYS = ("slide_url", "question", "upload_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_correlation: ContextVar[Mapping[str, str]] = ContextVar("correlation", default=_EMPTY)

# /i/<slide>/<token>/ - the token segment grants access to the slide.
_SLIDE_TOKEN = re.compile(r"(/i/[^/]+/)[^/]+(/)")


def redact_slide_url(url: str) -> str:
    """Replace the access token in a slide link.

    Example:
        >>> redact_slide_url("https://h/i/42/s3cr3t/SlideScoreMetadata.json")
        'https://h/i/42/***/SlideScoreMetadata.json'
    """
    return _SLIDE_TOKEN.sub(r"\1***\2", url, count=1)


def set_correlation_context(
    slide_url: str | None = None,
    question: str | None = None,
    upload_id: str | None = None,
) -> None:
    """Add correlation IDs to the current context.

    IDs already set and not passed here are kept.

    Args:
        slide_url: Metadata link of the slide being worked on (stored redacted)
        question: Service question the answer belongs to
        upload_id: Annotation id of the in-flight chunked upload
    """
    updates = {
        "slide_url": redact_slide_url(slide_url) if slide_url is not None else None,
        "question": question,
        "upload_id": upload_id,
    }
    merged = dict(_correlation.get())
    merged.update({k: v for k, v in updates.items() if v is not None})
    _correlation.set(MappingProxyType(merged))


def clear_correlation_context() -> None:
    """Clear all correlation IDs."""
    _correlation.set(_EMPTY)


def _add_correlation_ids(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor adding the context's correlation IDs."""
    _ = logger, method_name
    for key, value in _correlation.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def _redact_urls(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor redacting slide links passed as ``url`` or ``slide_url``."""
    _ = logger, method_name
    for key in ("url", "slide_url"):
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_slide_url(value)
    return event_dict


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to settings.LOG_LEVEL.
        log_format: "console" or "json". Defaults to settings.LOG_FORMAT.
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_format = log_format or settings.LOG_FORMAT

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_ids,
        _redact_urls,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info
        if log_format == "json"
        else structlog.processors.UnicodeDecoder(),
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Library modules log through plain stdlib loggers.
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    logging.getLogger().setLevel(getattr(logging, level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to ``name``."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
