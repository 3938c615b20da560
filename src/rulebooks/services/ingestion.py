"""Server-side application of one ingestion batch."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List

from rulebooks.db import PageRecord, Rulebook, RulebookRepository, RulebookStatus
from rulebooks.errors import NotFoundError, PreconditionError, ValidationError
from rulebooks.index import IndexService
from rulebooks.ingest.models import PageText
from rulebooks.ingest.runner import ScheduleMode, run_bounded
from rulebooks.logging_config import AUDIT_LOGGER_NAME
from rulebooks.telemetry import emit_exception, emit_ingest_event

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


def document_name(rulebook_id: str, page_number: int) -> str:
    return f"rulebook-{rulebook_id}-page-{page_number}.txt"


def index_name(title: str) -> str:
    return f"{title} Rulebook"


@dataclass(slots=True)
class IngestBatch:
    """One client-defined batch of extracted pages."""

    rulebook_id: str
    batch_index: int
    pages: List[PageText] = field(default_factory=list)
    is_last_batch: bool = False
    total_pages: int = 0


@dataclass(slots=True)
class BatchResult:
    success: bool
    ingested_pages: int
    status: RulebookStatus


@dataclass(slots=True)
class UploadPolicy:
    """Concurrency and retry settings for per-page document uploads."""

    concurrency: int = 5
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    mode: ScheduleMode = ScheduleMode.WINDOWED


class BatchIngestionService:
    """Upload a batch of pages as documents, attach them to the index, and advance progress.

    Batch 0 creates the rulebook's index. There is no guard against batch 0
    arriving twice for the same rulebook: a second index is created and the
    stored reference is overwritten. Documents uploaded before a later step
    fails are not rolled back.
    """

    def __init__(
        self,
        repository: RulebookRepository,
        index: IndexService,
        *,
        policy: UploadPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.index = index
        self.policy = policy or UploadPolicy()
        self._sleep = sleep

    async def ingest_batch(self, batch: IngestBatch) -> BatchResult:
        self._validate(batch)
        rulebook = self.repository.get(batch.rulebook_id)
        if rulebook is None:
            raise NotFoundError("Rulebook not found")

        started = time.perf_counter()
        try:
            result = await self._apply(rulebook, batch)
        except Exception as exc:
            emit_ingest_event(
                "ingest.batch.error",
                rulebook_id=batch.rulebook_id,
                batch_index=batch.batch_index,
                pages=len(batch.pages),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=exc,
            )
            self._record_failure(batch.rulebook_id, exc)
            raise

        emit_ingest_event(
            "ingest.batch.complete",
            rulebook_id=batch.rulebook_id,
            batch_index=batch.batch_index,
            pages=len(batch.pages),
            ingested_pages=result.ingested_pages,
            status=result.status.value,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest_batch",
                "rulebook_id": batch.rulebook_id,
                "batch_index": batch.batch_index,
                "pages": [page.page_number for page in batch.pages],
                "ingested_pages": result.ingested_pages,
                "status": result.status.value,
            }
        )
        return result

    @staticmethod
    def _validate(batch: IngestBatch) -> None:
        if not batch.rulebook_id:
            raise ValidationError("rulebookId is required")
        if batch.batch_index < 0:
            raise ValidationError("batchIndex must not be negative")
        if not batch.pages:
            raise ValidationError("A batch must contain at least one page")
        numbers = [page.page_number for page in batch.pages]
        if any(number < 1 for number in numbers):
            raise ValidationError("Page numbers are 1-based")
        if len(set(numbers)) != len(numbers):
            raise ValidationError("Page numbers must be unique within a batch")
        if batch.is_last_batch and batch.total_pages < 1:
            raise ValidationError("totalPages is required on the last batch")

    async def _apply(self, rulebook: Rulebook, batch: IngestBatch) -> BatchResult:
        rulebook_id = rulebook.id
        new_count = (rulebook.ingested_pages or 0) + len(batch.pages)
        if batch.is_last_batch and new_count != batch.total_pages:
            raise PreconditionError(
                f"Last batch would leave {new_count} ingested pages but totalPages is {batch.total_pages}"
            )

        index_id = rulebook.index_id
        if batch.batch_index == 0:
            index_id = await self.index.create_index(index_name(rulebook.title))
            self.repository.update(
                rulebook_id,
                index_id=index_id,
                status=RulebookStatus.INGESTING,
                error_message=None,
            )
            LOGGER.info("Created index %s for rulebook %s", index_id, rulebook_id)
        if not index_id:
            raise PreconditionError("Rulebook has no index yet; batch 0 must be ingested first")

        async def _upload(page: PageText) -> str:
            return await self.index.upload_document(document_name(rulebook_id, page.page_number), page.text)

        uploaded = await run_bounded(
            batch.pages,
            _upload,
            label=lambda page: page.page_number,
            concurrency=self.policy.concurrency,
            max_attempts=self.policy.max_attempts,
            backoff_base=self.policy.backoff_seconds,
            mode=self.policy.mode,
            sleep=self._sleep,
        )
        document_ids = [uploaded[page.page_number] for page in batch.pages]

        await self.index.attach_documents(index_id, document_ids)

        self.repository.add_pages(
            rulebook_id,
            [
                PageRecord(
                    page_number=page.page_number,
                    document_id=uploaded[page.page_number],
                    text_length=len(page.text),
                )
                for page in batch.pages
            ],
        )

        if batch.is_last_batch:
            self.repository.update(
                rulebook_id,
                ingested_pages=new_count,
                page_count=batch.total_pages,
                status=RulebookStatus.READY,
                error_message=None,
            )
            return BatchResult(success=True, ingested_pages=new_count, status=RulebookStatus.READY)

        self.repository.update(rulebook_id, ingested_pages=new_count)
        return BatchResult(success=True, ingested_pages=new_count, status=RulebookStatus.INGESTING)

    def _record_failure(self, rulebook_id: str, error: Exception) -> None:
        message = str(error) or error.__class__.__name__
        try:
            self.repository.mark_error(rulebook_id, message)
        except Exception as mark_error:
            # The rulebook keeps whatever status the last successful step wrote.
            emit_exception(
                module=__name__,
                error=mark_error,
                rulebook_id=rulebook_id,
                suggestion="rulebook may still report 'ingesting'; check staleness",
            )
