"""
Structured logging for the exam-prep service.

Development renders coloured console lines; every other environment emits one
JSON object per line. Request-scoped fields (``request_id``) are carried in
structlog contextvars and merged into every entry.
"""

import logging
import sys
import time
import uuid
from collections.abc import MutableMapping
from typing import Any, Optional

import structlog
from structlog.types import Processor

from .config import Settings, get_settings

REQUEST_ID_HEADER = "x-request-id"


def _use_console_renderer(settings: Settings) -> bool:
    return settings.debug or settings.env.lower() == "development"


def _add_service_name(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", "examprep")
    return event_dict


def get_processors(console: bool) -> list[Processor]:
    """Build the structlog processor chain."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _add_service_name,
    ]
    if console:
        return processors + [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return processors + [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(
    level: Optional[str] = None, settings: Optional[Settings] = None
) -> None:
    """
    Configure structlog on top of the stdlib root logger.

    Safe to call again: the application factory reconfigures with its own
    settings after module-level loggers configured the defaults.

    Args:
        level: Log level name; ``settings.log_level`` when omitted
        settings: Application settings; environment-derived when omitted
    """
    settings = settings or get_settings()
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )
    structlog.configure(
        processors=get_processors(console=_use_console_renderer(settings)),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class RequestLoggingMiddleware:
    """
    ASGI middleware that tags each HTTP request with a request id.

    The id comes from the caller's X-Request-ID header when present, is bound
    into the logging context for the lifetime of the request and is echoed
    back on the response.
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("http")

    @staticmethod
    def _request_id(scope) -> str:
        for name, value in scope.get("headers", []):
            if name.decode("latin-1").lower() == REQUEST_ID_HEADER and value:
                return value.decode("latin-1")[:64]
        return uuid.uuid4().hex[:12]

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._request_id(scope)
        method = scope.get("method", "")
        path = scope.get("path", "")
        status_code = 500
        started = time.perf_counter()
        bind_context(request_id=request_id)

        async def send_with_request_id(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER.encode("latin-1"), request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            if status_code >= 500:
                log = self.logger.error
            elif status_code >= 400:
                log = self.logger.warning
            else:
                log = self.logger.info
            log(
                "request_complete",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            clear_context()


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "RequestLoggingMiddleware",
]
