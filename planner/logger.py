"""structlog setup for the planner service, plus timing and error log helpers."""

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

from planner.config import settings


def _build_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _select_renderer() -> Processor:
    if settings.debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Route structlog and stdlib records (uvicorn, SQLAlchemy) through one stdout handler."""
    processors = _build_processors()

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=_select_renderer(), foreign_pre_chain=processors)
    )
    logging.basicConfig(handlers=[handler], level=logging.DEBUG if settings.debug else logging.INFO)


def get_logger(name: str | None = None) -> BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_timing(
    operation: str,
    logger: BoundLogger | None = None,
    level: str = "info",
    **context: Any,
) -> Iterator[dict[str, Any]]:
    """Emit ``"<operation> completed"`` with ``duration_ms`` when the block exits.

    Keys the caller writes into the yielded dict (occurrence counts, batch
    tallies) are added to the same event.
    """
    log = logger or get_logger(__name__)
    started = time.perf_counter()
    fields: dict[str, Any] = {}
    try:
        yield fields
    finally:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        getattr(log, level, log.info)(
            f"{operation} completed",
            operation=operation,
            duration_ms=duration_ms,
            **context,
            **fields,
        )


def log_exception(
    logger: BoundLogger,
    exc: BaseException,
    event: str,
    *,
    level: str = "error",
    include_traceback: bool = True,
    **extra: Any,
) -> None:
    """Log ``exc`` under ``event`` with its type attached.

    Batch matching logs per-item failures at warning level without the
    traceback, since the error is also returned to the caller.
    """
    fields: dict[str, Any] = {"error": str(exc), "error_type": type(exc).__name__, **extra}
    log_method = getattr(logger, level, logger.error)
    if include_traceback:
        log_method(event, exc_info=exc, **fields)
    else:
        log_method(event, **fields)
