"""Rulebook lifecycle operations outside of batch ingestion."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Iterable, List, Optional

from rulebooks.db import Rulebook, RulebookRepository, RulebookStatus
from rulebooks.errors import NotFoundError, UpstreamServiceError, ValidationError
from rulebooks.index import IndexService
from rulebooks.logging_config import AUDIT_LOGGER_NAME
from rulebooks.slug import generate_slug
from rulebooks.storage import (
    THUMBNAIL_EXTENSIONS,
    LocalAssetStorage,
    pdf_path,
    thumbnail_path,
    thumbnail_paths,
)

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

MAX_SLUG_ATTEMPTS = 5
SEARCH_LIMIT = 10
_IN_PROGRESS = {RulebookStatus.PENDING_INGEST, RulebookStatus.INGESTING}


@dataclass(slots=True)
class UploadSlot:
    rulebook_id: str
    slug: str
    upload_url: str


@dataclass(slots=True)
class AssetUrls:
    thumbnail_url: str
    pdf_url: str


@dataclass(slots=True)
class RulebookStatusView:
    """Status of one rulebook as seen by the status page and the upload client."""

    id: str
    slug: str
    title: str
    year: Optional[int]
    status: RulebookStatus
    ingested_pages: int
    page_count: int
    error_message: Optional[str]
    thumbnail_url: Optional[str]
    pdf_url: Optional[str]
    updated_at: datetime
    is_stale: bool


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(rulebook: Rulebook, *, stale_after_seconds: int, now: datetime | None = None) -> bool:
    """True when an in-progress rulebook has not been written to for too long."""

    if rulebook.status not in _IN_PROGRESS or rulebook.updated_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return (now - _as_utc(rulebook.updated_at)).total_seconds() > stale_after_seconds


class RulebookService:
    """Upload slots, asset finalisation, status, search and deletion."""

    def __init__(
        self,
        repository: RulebookRepository,
        storage: LocalAssetStorage,
        index: IndexService,
        *,
        stale_after_seconds: int = 900,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.index = index
        self.stale_after_seconds = stale_after_seconds

    def create_upload(self, title: str, year: int | None = None) -> UploadSlot:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        slug = None
        for _ in range(MAX_SLUG_ATTEMPTS):
            candidate = generate_slug(title)
            if not self.repository.slug_exists(candidate):
                slug = candidate
                break
            LOGGER.info("Slug %s already taken; regenerating", candidate)
        if slug is None:
            raise UpstreamServiceError("Failed to generate unique slug")

        rulebook = self.repository.create_rulebook(slug=slug, title=title, year=year)
        try:
            upload_url = self.storage.create_signed_upload_url(pdf_path(rulebook.id))
        except Exception as exc:
            LOGGER.error("Failed to create upload URL for %s: %s", rulebook.id, exc)
            self.repository.delete_many([rulebook.id])
            raise UpstreamServiceError("Failed to create upload URL", cause=exc) from exc
        return UploadSlot(rulebook_id=rulebook.id, slug=slug, upload_url=upload_url)

    def finalize_assets(self, rulebook_id: str, thumbnail: bytes, content_type: str | None) -> AssetUrls:
        if not rulebook_id or not thumbnail:
            raise ValidationError("Missing required fields")
        if content_type and content_type not in THUMBNAIL_EXTENSIONS:
            raise ValidationError(f"Unsupported thumbnail type: {content_type}")
        rulebook = self.repository.get(rulebook_id)
        if rulebook is None:
            raise NotFoundError("Rulebook not found")

        stored = self.storage.upload(
            thumbnail_path(rulebook_id, content_type),
            thumbnail,
            content_type or "image/png",
        )
        urls = AssetUrls(
            thumbnail_url=self.storage.public_url(stored),
            pdf_url=self.storage.public_url(pdf_path(rulebook_id)),
        )
        # The cover doubles as the game image shown in search until one is set.
        self.repository.update(
            rulebook_id,
            thumbnail_url=urls.thumbnail_url,
            pdf_url=urls.pdf_url,
            game_image_url=rulebook.game_image_url or urls.thumbnail_url,
        )
        return urls

    def mark_failed(self, rulebook_id: str, message: str) -> RulebookStatus:
        if self.repository.mark_error(rulebook_id, message or "Upload failed") is None:
            raise NotFoundError("Rulebook not found")
        LOGGER.info("Rulebook %s marked as failed: %s", rulebook_id, message)
        return RulebookStatus.ERROR

    def status(self, slug: str) -> RulebookStatusView:
        rulebook = self.repository.get_by_slug(slug)
        if rulebook is None:
            raise NotFoundError("Rulebook not found")
        return RulebookStatusView(
            id=rulebook.id,
            slug=rulebook.slug,
            title=rulebook.title,
            year=rulebook.year,
            status=rulebook.status,
            ingested_pages=rulebook.ingested_pages,
            page_count=rulebook.page_count,
            error_message=rulebook.error_message,
            thumbnail_url=rulebook.thumbnail_url,
            pdf_url=rulebook.pdf_url,
            updated_at=_as_utc(rulebook.updated_at),
            is_stale=is_stale(rulebook, stale_after_seconds=self.stale_after_seconds),
        )

    def search(self, query: str | None) -> List[Rulebook]:
        query = (query or "").strip()
        if not query:
            return []
        return self.repository.search_ready(query, limit=SEARCH_LIMIT)

    async def delete(self, rulebook_ids: Iterable[str]) -> int:
        """Delete rulebooks and, best effort, everything they own externally."""

        ids = [rulebook_id for rulebook_id in rulebook_ids if rulebook_id]
        if not ids:
            raise ValidationError("No rulebook IDs provided")

        rulebooks = self.repository.get_many(ids)
        if not rulebooks:
            return 0
        found_ids = [rulebook.id for rulebook in rulebooks]

        try:
            pages = self.repository.list_pages(found_ids)
        except Exception as exc:
            LOGGER.error("Failed to fetch pages for deletion: %s", exc)
            pages = []

        await asyncio.gather(
            *(
                self._best_effort(self.index.delete_document(page.document_id), f"document {page.document_id}")
                for page in pages
            )
        )
        await asyncio.gather(
            *(
                self._best_effort(self.index.delete_index(rulebook.index_id), f"index {rulebook.index_id}")
                for rulebook in rulebooks
                if rulebook.index_id
            )
        )

        asset_paths = [pdf_path(rulebook_id) for rulebook_id in found_ids]
        for rulebook_id in found_ids:
            asset_paths.extend(thumbnail_paths(rulebook_id))
        self.storage.remove(asset_paths)

        self.repository.delete_many(found_ids)
        AUDIT_LOGGER.info(
            {
                "event": "delete",
                "rulebook_ids": found_ids,
                "documents": len(pages),
            }
        )
        return len(rulebooks)

    @staticmethod
    async def _best_effort(operation: Awaitable[None], description: str) -> None:
        try:
            await operation
        except Exception as exc:
            LOGGER.warning("Failed to delete %s: %s", description, exc)
