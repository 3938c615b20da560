"""FastAPI dependency factories wiring settings to concrete backends.

Every factory is a plain callable so tests can replace it through
``app.dependency_overrides``.
"""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from rulebooks.config import Settings, get_settings
from rulebooks.db import Database, RulebookRepository
from rulebooks.errors import UpstreamServiceError
from rulebooks.index import InMemoryIndexService, IndexService, OpenAIIndexService
from rulebooks.ingest import GeminiPageExtractor, PageExtractor, ScheduleMode, StaticPageExtractor
from rulebooks.services import (
    AnswerService,
    BatchIngestionService,
    PageExtractionService,
    RulebookService,
    UploadPolicy,
)
from rulebooks.storage import LocalAssetStorage

LOGGER = logging.getLogger(__name__)


@lru_cache()
def get_database() -> Database:
    settings = get_settings()
    return Database(settings.database_url)


def get_repository(database: Database = Depends(get_database)) -> RulebookRepository:
    return RulebookRepository(database)


@lru_cache()
def get_storage() -> LocalAssetStorage:
    settings = get_settings()
    return LocalAssetStorage(
        settings.storage_dir,
        settings.public_base_url,
        ttl_seconds=settings.upload_url_ttl_seconds,
    )


@lru_cache()
def get_index_service() -> IndexService:
    """Return the shared index backend selected by ``INDEX_BACKEND``."""

    settings = get_settings()
    if settings.index_backend == "memory":
        LOGGER.info("Using in-memory index backend")
        return InMemoryIndexService()
    try:
        return OpenAIIndexService(
            settings.openai_api_key,
            answer_model=settings.openai_answer_model,
            attach_timeout=settings.index_attach_timeout,
        )
    except ValueError as exc:
        raise UpstreamServiceError(str(exc), cause=exc) from exc


@lru_cache()
def get_extractor() -> PageExtractor:
    """Return the shared page extractor selected by ``EXTRACTOR_BACKEND``."""

    settings = get_settings()
    if settings.extractor_backend == "static":
        LOGGER.info("Using static page extractor")
        return StaticPageExtractor()
    try:
        return GeminiPageExtractor(settings.google_api_key or "", model=settings.gemini_model)
    except ValueError as exc:
        raise UpstreamServiceError(str(exc), cause=exc) from exc


def get_upload_policy(settings: Settings = Depends(get_settings)) -> UploadPolicy:
    return UploadPolicy(
        concurrency=settings.upload_concurrency,
        max_attempts=settings.upload_max_attempts,
        backoff_seconds=settings.upload_backoff_seconds,
        mode=ScheduleMode.parse(settings.schedule_mode),
    )


def get_rulebook_service(
    repository: RulebookRepository = Depends(get_repository),
    storage: LocalAssetStorage = Depends(get_storage),
    index: IndexService = Depends(get_index_service),
    settings: Settings = Depends(get_settings),
) -> RulebookService:
    return RulebookService(
        repository,
        storage,
        index,
        stale_after_seconds=settings.stale_after_seconds,
    )


def get_ingestion_service(
    repository: RulebookRepository = Depends(get_repository),
    index: IndexService = Depends(get_index_service),
    policy: UploadPolicy = Depends(get_upload_policy),
) -> BatchIngestionService:
    return BatchIngestionService(repository, index, policy=policy)


def get_answer_service(
    repository: RulebookRepository = Depends(get_repository),
    index: IndexService = Depends(get_index_service),
) -> AnswerService:
    return AnswerService(repository, index)


def get_extraction_service(extractor: PageExtractor = Depends(get_extractor)) -> PageExtractionService:
    return PageExtractionService(extractor)


def reset_dependency_caches() -> None:
    """Drop cached backends so the next request rebuilds them from settings."""

    for factory in (get_database, get_storage, get_index_service, get_extractor):
        factory.cache_clear()  # type: ignore[attr-defined]
