"""Structured lifecycle events for the ingestion pipeline."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional


LOGGER = logging.getLogger("rulebooks.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "DATABASE_URL",
    "STORAGE_DIR",
    "PUBLIC_BASE_URL",
    "EXTRACTOR_BACKEND",
    "GEMINI_MODEL",
    "INDEX_BACKEND",
    "OPENAI_ANSWER_MODEL",
    "UPLOAD_CONCURRENCY",
    "UPLOAD_MAX_ATTEMPTS",
    "UPLOAD_BACKOFF_SECONDS",
    "SCHEDULE_MODE",
    "INDEX_ATTACH_TIMEOUT",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    rulebook_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if rulebook_id:
        event["rulebook_id"] = rulebook_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_ingest_event(
    step: str,
    *,
    rulebook_id: str,
    batch_index: int | None = None,
    pages: int | None = None,
    ingested_pages: int | None = None,
    status: str | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "batch_index": batch_index,
        "pages": pages,
        "ingested_pages": ingested_pages,
        "status": status,
    }
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        rulebook_id=rulebook_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_index_event(
    step: str,
    *,
    index_id: str | None,
    count: int,
    rulebook_id: str | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {"index_id": index_id, "count": count}
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        rulebook_id=rulebook_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    rulebook_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        rulebook_id=rulebook_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(
            logger or LOGGER,
            f"{step}.error",
            level="error",
            duration_ms=(time.perf_counter() - start) * 1000.0,
            details=fields,
            exc=error,
        )
        raise
    log_event(
        logger or LOGGER,
        f"{step}.complete",
        duration_ms=(time.perf_counter() - start) * 1000.0,
        details=fields,
    )


__all__ = [
    "emit_app_startup_event",
    "emit_ingest_event",
    "emit_index_event",
    "emit_exception",
    "traced_duration",
    "log_event",
]
