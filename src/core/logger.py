"""JSON logs via structlog; request id and identity ride along as contextvars."""

from __future__ import annotations

import logging
from typing import Any

import structlog

from src.core.config import get_settings


_CONFIGURED = False
_CONTEXT_KEYS = ("request_id", "identity")


def _add_default_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    del logger, method_name
    for key in _CONTEXT_KEYS:
        event_dict.setdefault(key, None)
    return event_dict


def _resolve_level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = _resolve_level(get_settings().log_level)
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_default_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def bind_request_context(request_id: str, identity: str | None = None) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id, identity=identity)


def bind_identity_context(identity: str) -> None:
    structlog.contextvars.bind_contextvars(identity=identity)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
