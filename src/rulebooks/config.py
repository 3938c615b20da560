"""Environment driven configuration for the rulebook service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

LOGGER = logging.getLogger(__name__)

MAX_PDF_BYTES = 50 * 1024 * 1024
MAX_THUMBNAIL_BYTES = 5 * 1024 * 1024
INGEST_BATCH_SIZE = 25
EXTRACTION_CONCURRENCY = 5


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the API and the upload orchestrator."""

    database_url: str = "sqlite:///rulebooks.db"
    storage_dir: str = "data"
    public_base_url: str = "http://localhost:8000"
    upload_url_ttl_seconds: int = 7200

    extractor_backend: str = "gemini"
    google_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"

    index_backend: str = "openai"
    openai_api_key: str | None = None
    openai_answer_model: str = "gpt-5.1"

    upload_concurrency: int = 5
    upload_max_attempts: int = 3
    upload_backoff_seconds: float = 1.0
    schedule_mode: str = "windowed"
    index_attach_timeout: float = 120.0
    stale_after_seconds: int = 900

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_env_str("DATABASE_URL", cls.database_url),
            storage_dir=_env_str("STORAGE_DIR", cls.storage_dir),
            public_base_url=_env_str("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            upload_url_ttl_seconds=_env_int("UPLOAD_URL_TTL_SECONDS", cls.upload_url_ttl_seconds),
            extractor_backend=_env_str("EXTRACTOR_BACKEND", cls.extractor_backend).lower(),
            google_api_key=os.getenv("GOOGLE_AI_API_KEY") or None,
            gemini_model=_env_str("GEMINI_MODEL", cls.gemini_model),
            index_backend=_env_str("INDEX_BACKEND", cls.index_backend).lower(),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_answer_model=_env_str("OPENAI_ANSWER_MODEL", cls.openai_answer_model),
            upload_concurrency=max(1, _env_int("UPLOAD_CONCURRENCY", cls.upload_concurrency)),
            upload_max_attempts=max(1, _env_int("UPLOAD_MAX_ATTEMPTS", cls.upload_max_attempts)),
            upload_backoff_seconds=max(
                0.0, _env_float("UPLOAD_BACKOFF_SECONDS", cls.upload_backoff_seconds)
            ),
            schedule_mode=_env_str("SCHEDULE_MODE", cls.schedule_mode).lower(),
            index_attach_timeout=_env_float("INDEX_ATTACH_TIMEOUT", cls.index_attach_timeout),
            stale_after_seconds=_env_int("STALE_AFTER_SECONDS", cls.stale_after_seconds),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return settings loaded once from the process environment."""

    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
