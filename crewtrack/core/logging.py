"""structlog setup shared by the API process, the sweeper and the db CLI."""

from __future__ import annotations

import logging
import logging.config
from time import perf_counter
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from crewtrack.core.config import Settings

TRACE_HEADER = "X-Trace-ID"
ROUTED_LOGGERS: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy")
_LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
_LOG_FILE_BACKUPS = 3


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _positive_id(value: int | str | None) -> int | None:
    """Coerce an entity id to a positive int, or None when it is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            return None
        value = int(text)
    return value if value > 0 else None


def bind_log_context(
    *,
    trace_id: str | None = None,
    task_id: int | str | None = None,
    project_id: int | str | None = None,
    crew_id: int | str | None = None,
) -> None:
    """Bind the non-empty identifiers onto every following log line of this context."""
    bound: dict[str, object] = {}
    trace = _clean_text(trace_id)
    if trace is not None:
        bound["trace_id"] = trace
    entity_ids = {"task_id": task_id, "project_id": project_id, "crew_id": crew_id}
    for key, raw in entity_ids.items():
        entity_id = _positive_id(raw)
        if entity_id is not None:
            bound[key] = entity_id
    if bound:
        structlog.contextvars.bind_contextvars(**bound)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


def _log_handlers(settings: Settings, level: str) -> dict[str, dict[str, object]]:
    handlers: dict[str, dict[str, object]] = {
        "stdout": {"class": "logging.StreamHandler", "formatter": "structured", "level": level}
    }
    if settings.log_file is not None:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "structured",
            "level": level,
            "filename": settings.log_file,
            "maxBytes": _LOG_FILE_MAX_BYTES,
            "backupCount": _LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }
    return handlers


def configure_logging(settings: Settings) -> None:
    """Route stdlib and structlog records through one formatter (json or console)."""
    level = settings.log_level.upper()
    pre_chain: list[object] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: object = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    handlers = _log_handlers(settings, level)
    handler_names = list(handlers)
    loggers: dict[str, dict[str, object]] = {"": {"handlers": handler_names, "level": level}}
    for name in ROUTED_LOGGERS:
        loggers[name] = {"handlers": handler_names, "level": level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        structlog.processors.format_exc_info,
                        structlog.processors.EventRenamer("message"),
                        renderer,
                    ],
                }
            },
            "handlers": handlers,
            "loggers": loggers,
        }
    )

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class TraceContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with a trace id, echo it back, and log its outcome and timing."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger = get_logger("crewtrack.api.request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = _clean_text(request.headers.get(TRACE_HEADER)) or f"trace-http-{uuid4().hex}"
        request.state.trace_id = trace_id
        clear_log_context()
        bind_log_context(trace_id=trace_id)
        log = self._logger.bind(method=request.method, path=request.url.path)
        started = perf_counter()
        log.info("request.received")
        try:
            response = await call_next(request)
        except Exception:
            log.exception("request.failed", duration_ms=_elapsed_ms(started))
            raise
        else:
            response.headers[TRACE_HEADER] = trace_id
            log.info(
                "request.completed",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )
            return response
        finally:
            clear_log_context()


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 2)
