"""JSON logging for the API and the upload client, plus the ingest audit trail."""

from __future__ import annotations

import enum
import json
import logging
import logging.config
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "rulebooks.ingest.audit"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class JSONLineFormatter(logging.Formatter):
    """One JSON object per record.

    Dict messages (telemetry events, audit entries) are merged into the top
    level; plain messages land under ``message``. Enum values such as a
    rulebook status are written as their value.
    """

    def _base(self, record: logging.LogRecord) -> dict[str, Any]:
        return {"ts": _timestamp(record), "level": record.levelname, "logger": record.name}

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        payload = self._base(record)

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        if record.exc_info and "exc" not in payload:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                payload.setdefault(key, value)

        return json.dumps(payload, ensure_ascii=False, default=_json_default)


class AuditFormatter(JSONLineFormatter):
    """Audit entries carry only a timestamp and the entry itself."""

    def _base(self, record: logging.LogRecord) -> dict[str, Any]:
        return {"ts": _timestamp(record)}


def configure_logging(log_dir: str | Path | None = None) -> None:
    """Configure JSON logging plus the ingest audit trail."""

    log_dir = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONLineFormatter},
                "audit": {"()": AuditFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                },
                "ingest_audit": {
                    "class": "logging.FileHandler",
                    "filename": str(log_dir / "ingest_audit.log"),
                    "mode": "a",
                    "encoding": "utf-8",
                    "formatter": "audit",
                },
            },
            "root": {
                "level": level,
                "handlers": ["default"],
            },
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": ["ingest_audit"],
                    "propagate": False,
                },
                "httpx": {"level": "WARNING"},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
