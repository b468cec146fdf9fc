"""
structlog setup for the admission engine.

Every event carries the service name, environment and store backend, so
ledger and gate logs from memory-backed test runs and redis-backed
deployments can be told apart. Request-scoped fields (request_id, user_id,
room_id) live in contextvars; HTTP middleware and the WebSocket routes bind
them through bind_request_context.

JSON in production, colored console output otherwise.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

from liveroom.core.config import get_settings

_QUIET_LOGGERS = ("uvicorn.access", "redis", "httpx", "websockets")
_handler: Optional[logging.Handler] = None


def _app_context(settings) -> Processor:
    fields = {
        "app": settings.APP_NAME,
        "env": settings.ENVIRONMENT,
        "store": settings.STORE_BACKEND,
    }

    def add_app_context(logger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in fields.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_app_context


def _build_processors(settings) -> tuple[list[Processor], Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _app_context(settings),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.ENVIRONMENT == "production":
        processors.append(structlog.processors.format_exc_info)
        return processors, structlog.processors.JSONRenderer()
    return processors, structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """Configure structlog and the root handler. Safe to call more than once."""
    global _handler
    settings = get_settings()
    processors, renderer = _build_processors(settings)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from plain stdlib loggers (uvicorn, redis) get the same fields
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    if _handler is not None:
        root_logger.removeHandler(_handler)
    root_logger.addHandler(handler)
    _handler = handler
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    room_id: Optional[str] = None,
    **extra,
) -> str:
    """
    Replace the current context with fields for one request or socket.
    Returns the request id, generated when the caller sent none.
    """
    request_id = request_id or str(uuid.uuid4())[:8]
    structlog.contextvars.clear_contextvars()
    fields = {"request_id": request_id, **extra}
    if user_id:
        fields["user_id"] = user_id
    if room_id:
        fields["room_id"] = room_id
    structlog.contextvars.bind_contextvars(**fields)
    return request_id


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
