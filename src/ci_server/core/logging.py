"""Structured logging configuration with JSON output and build correlation.

Uses python-json-logger so that every line carries the GitHub delivery id
and the build id it belongs to. Text output is kept for local runs.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger import jsonlogger

from ci_server.config import get_settings

# X-GitHub-Delivery of the webhook being handled
delivery_id_ctx: ContextVar[str | None] = ContextVar("delivery_id", default=None)
# Id of the build the pipeline is currently running
build_id_ctx: ContextVar[str | None] = ContextVar("build_id", default=None)

_CORRELATION_FIELDS = ("delivery_id", "build_id", "trace_id", "span_id")


@contextmanager
def bound_build_id(build_id: str) -> Iterator[None]:
    """Stamp ``build_id`` on every record logged inside the block."""
    token = build_id_ctx.set(build_id)
    try:
        yield
    finally:
        build_id_ctx.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Log filter that adds delivery/build IDs and trace IDs to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.delivery_id = delivery_id_ctx.get()
        record.build_id = build_id_ctx.get()
        try:
            from ci_server.observability.tracing import get_trace_ids

            record.trace_id, record.span_id = get_trace_ids()
        except Exception:
            record.trace_id = None
            record.span_id = None
        return True


class BuildJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that flattens correlation ids into top-level keys."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for field in _CORRELATION_FIELDS:
            value = getattr(record, field, None)
            if value:
                log_record[field] = value

        log_record["location"] = f"{record.module}:{record.funcName}:{record.lineno}"


def setup_logging() -> None:
    """Configure the root logger from settings (level and json/text format)."""
    settings = get_settings()

    if settings.log_format == "json":
        formatter: logging.Formatter = BuildJsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(build_id)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    # Status posts would otherwise log every request line
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )
