"""Client-side upload workflow: upload, split, extract, ingest, finalize."""
from __future__ import annotations

import asyncio
import inspect
import logging
import math
import mimetypes
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, List, Optional

from rulebooks.config import (
    EXTRACTION_CONCURRENCY,
    INGEST_BATCH_SIZE,
    MAX_PDF_BYTES,
    MAX_THUMBNAIL_BYTES,
)
from rulebooks.errors import ValidationError
from rulebooks.ingest.models import PageText, SinglePage
from rulebooks.ingest.runner import ScheduleMode, run_bounded
from rulebooks.ingest.splitter import split_pdf
from rulebooks.orchestrator.client import RulebookApiClient
from rulebooks.orchestrator.state import Step, UploadState, check_transition
from rulebooks.storage import THUMBNAIL_EXTENSIONS

LOGGER = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
MIN_YEAR = 1900

StateCallback = Callable[[UploadState], Optional[Awaitable[None]]]


@dataclass
class UploadForm:
    """Everything the user supplies for one rulebook upload."""

    title: str
    pdf: bytes
    thumbnail: bytes
    pdf_filename: str = "rulebook.pdf"
    thumbnail_filename: str = "thumbnail.png"
    pdf_content_type: Optional[str] = None
    thumbnail_content_type: Optional[str] = None
    year: Optional[int] = None

    def resolved_pdf_type(self) -> Optional[str]:
        if self.pdf_content_type:
            return self.pdf_content_type
        if self.pdf.startswith(PDF_MAGIC):
            return "application/pdf"
        return mimetypes.guess_type(self.pdf_filename)[0]

    def resolved_thumbnail_type(self) -> Optional[str]:
        return self.thumbnail_content_type or mimetypes.guess_type(self.thumbnail_filename)[0]

    def validate(self, today: Optional[date] = None) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("Please enter a title")
        if not self.pdf:
            raise ValidationError("Please select a PDF file")
        if self.resolved_pdf_type() != "application/pdf":
            raise ValidationError("The rulebook must be a PDF file")
        if len(self.pdf) > MAX_PDF_BYTES:
            raise ValidationError("PDF must be under 50MB")
        if not self.thumbnail:
            raise ValidationError("Please select a thumbnail image")
        if self.resolved_thumbnail_type() not in THUMBNAIL_EXTENSIONS:
            raise ValidationError("Thumbnail must be a PNG, JPEG, WebP or GIF image")
        if len(self.thumbnail) > MAX_THUMBNAIL_BYTES:
            raise ValidationError("Thumbnail must be under 5MB")
        if self.year is not None:
            latest = (today or date.today()).year + 1
            if not MIN_YEAR <= self.year <= latest:
                raise ValidationError(f"Year must be between {MIN_YEAR} and {latest}")


@dataclass(frozen=True)
class UploadResult:
    rulebook_id: str
    slug: str
    page_url: str


def batch_ranges(page_count: int, batch_size: int = INGEST_BATCH_SIZE) -> List[range]:
    """Split ``1..page_count`` into consecutive page-number ranges of ``batch_size``."""

    total_batches = math.ceil(page_count / batch_size)
    return [
        range(index * batch_size + 1, min((index + 1) * batch_size, page_count) + 1)
        for index in range(total_batches)
    ]


class IngestionOrchestrator:
    """Drive one rulebook from the upload form to a ready, queryable index.

    States are published through ``on_state``. A failed run ends in ``error``;
    call :meth:`reset` and run again, which allocates a new rulebook. The
    abandoned rulebook is left as it is.
    """

    def __init__(
        self,
        api: RulebookApiClient,
        *,
        batch_size: int = INGEST_BATCH_SIZE,
        concurrency: int = EXTRACTION_CONCURRENCY,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        mode: ScheduleMode = ScheduleMode.WINDOWED,
        on_state: StateCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.mode = mode
        self._on_state = on_state
        self._sleep = sleep
        self._state = UploadState(Step.FORM)

    @property
    def state(self) -> UploadState:
        return self._state

    async def _set_state(self, state: UploadState) -> None:
        check_transition(self._state.step, state.step)
        self._state = state
        LOGGER.debug("Upload state: %s %s/%s", state.step.value, state.current, state.total)
        if self._on_state is not None:
            result = self._on_state(state)
            if inspect.isawaitable(result):
                await result

    async def reset(self) -> None:
        if self._state.step is not Step.FORM:
            await self._set_state(UploadState(Step.FORM))

    async def run(self, form: UploadForm) -> UploadResult:
        form.validate()
        rulebook_id: Optional[str] = None
        # FORM -> UPLOADING is checked before any remote call is made.
        await self._set_state(UploadState(Step.UPLOADING, message="Creating upload..."))
        try:
            created = await self.api.create_upload(form.title.strip(), form.year)
            rulebook_id = created["rulebookId"]
            slug = created["slug"]

            await self._set_state(UploadState(Step.UPLOADING, message="Uploading PDF..."))
            await self.api.upload_pdf(created["uploadUrl"], form.pdf)

            await self._set_state(UploadState(Step.PARSING, message="Splitting PDF into pages..."))
            document = split_pdf(form.pdf)

            texts = await self._extract_pages(document.pages, document.page_count)
            await self._ingest(rulebook_id, texts, document.page_count)

            await self._set_state(UploadState(Step.FINALIZING, message="Uploading thumbnail..."))
            await self.api.upload_assets(
                rulebook_id,
                form.thumbnail,
                filename=form.thumbnail_filename,
                content_type=form.resolved_thumbnail_type() or "image/png",
            )
        except Exception as exc:
            message = str(exc) or "Upload failed"
            LOGGER.error("Upload failed: %s", message)
            await self._set_state(UploadState(Step.ERROR, message=message))
            if rulebook_id:
                await self._mark_error(rulebook_id, message)
            raise

        result = UploadResult(rulebook_id=rulebook_id, slug=slug, page_url=f"/games/{slug}")
        await self._set_state(UploadState(Step.DONE, message=result.page_url))
        return result

    async def _extract_pages(self, pages: List[SinglePage], page_count: int) -> List[PageText]:
        await self._set_state(UploadState(Step.PROCESSING, current=0, total=page_count))

        async def _progress(completed: int, total: int) -> None:
            await self._set_state(UploadState(Step.PROCESSING, current=completed, total=total))

        async def _process(page: SinglePage) -> PageText:
            return await self.api.process_page(page.page_number, page.pdf_base64)

        results = await run_bounded(
            pages,
            _process,
            label=lambda page: page.page_number,
            concurrency=self.concurrency,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_seconds,
            mode=self.mode,
            on_progress=_progress,
            sleep=self._sleep,
        )
        return [
            PageText(page_number=number, text=result.text)
            for number, result in sorted(results.items())
        ]

    async def _ingest(self, rulebook_id: str, texts: List[PageText], page_count: int) -> None:
        by_number = {text.page_number: text for text in texts}
        ranges = batch_ranges(page_count, self.batch_size)
        for batch_index, numbers in enumerate(ranges):
            await self._set_state(
                UploadState(Step.INGESTING, current=numbers.start - 1, total=page_count)
            )
            await self.api.ingest_batch(
                rulebook_id,
                batch_index,
                [by_number[number] for number in numbers],
                is_last_batch=batch_index == len(ranges) - 1,
                total_pages=page_count,
            )
        await self._set_state(UploadState(Step.INGESTING, current=page_count, total=page_count))

    async def _mark_error(self, rulebook_id: str, message: str) -> None:
        try:
            await self.api.mark_error(rulebook_id, message)
        except Exception as exc:
            LOGGER.warning("Failed to mark rulebook %s as errored: %s", rulebook_id, exc)
