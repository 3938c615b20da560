"""API router for rulebook upload, ingestion, question answering and deletion."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from rulebooks.api.schemas import (
    AskRequest,
    AskResponse,
    AssetUrlsResponse,
    CitationItem,
    CreateUploadRequest,
    CreateUploadResponse,
    DeleteRequest,
    DeleteResponse,
    IngestBatchRequest,
    IngestBatchResponse,
    MarkErrorRequest,
    MarkErrorResponse,
    ProcessPageRequest,
    ProcessPageResponse,
    RulebookStatusResponse,
    SearchResultItem,
)
from rulebooks.config import MAX_THUMBNAIL_BYTES
from rulebooks.dependencies import (
    get_answer_service,
    get_extraction_service,
    get_ingestion_service,
    get_rulebook_service,
)
from rulebooks.errors import ValidationError
from rulebooks.ingest.models import PageText
from rulebooks.services import (
    AnswerService,
    BatchIngestionService,
    IngestBatch,
    PageExtractionService,
    RulebookService,
)

router = APIRouter(prefix="/api/rulebooks", tags=["rulebooks"])


@router.post("/create-upload", response_model=CreateUploadResponse)
def create_upload(
    request: CreateUploadRequest,
    service: RulebookService = Depends(get_rulebook_service),
) -> CreateUploadResponse:
    """Create a pending rulebook and return a one-off URL for the raw PDF."""

    slot = service.create_upload(request.title, request.year)
    return CreateUploadResponse(rulebook_id=slot.rulebook_id, slug=slot.slug, upload_url=slot.upload_url)


@router.post("/process-page", response_model=ProcessPageResponse)
async def process_page(
    request: ProcessPageRequest,
    service: PageExtractionService = Depends(get_extraction_service),
) -> ProcessPageResponse:
    """Extract the text of one single-page PDF."""

    result = await service.process_page(request.page_number, request.pdf_base64)
    return ProcessPageResponse(page_number=result.page_number, processed_text=result.text)


@router.post("/ingest-batch", response_model=IngestBatchResponse)
async def ingest_batch(
    request: IngestBatchRequest,
    service: BatchIngestionService = Depends(get_ingestion_service),
) -> IngestBatchResponse:
    """Upload a batch of extracted pages into the rulebook's index."""

    batch = IngestBatch(
        rulebook_id=request.rulebook_id,
        batch_index=request.batch_index,
        pages=[PageText(page_number=page.page_number, text=page.text) for page in request.pages],
        is_last_batch=request.is_last_batch,
        total_pages=request.total_pages,
    )
    result = await service.ingest_batch(batch)
    return IngestBatchResponse(
        success=result.success,
        ingested_pages=result.ingested_pages,
        status=result.status.value,
    )


@router.post("/upload-assets", response_model=AssetUrlsResponse)
async def upload_assets(
    rulebook_id: str = Form(..., alias="rulebookId"),
    thumbnail: UploadFile = File(...),
    service: RulebookService = Depends(get_rulebook_service),
) -> AssetUrlsResponse:
    """Store the thumbnail and record public asset URLs on the rulebook."""

    data = await thumbnail.read()
    if len(data) > MAX_THUMBNAIL_BYTES:
        raise ValidationError("Thumbnail exceeds the 5MB limit")
    urls = service.finalize_assets(rulebook_id, data, thumbnail.content_type)
    return AssetUrlsResponse(thumbnail_url=urls.thumbnail_url, pdf_url=urls.pdf_url)


@router.post("/mark-error", response_model=MarkErrorResponse)
def mark_error(
    request: MarkErrorRequest,
    service: RulebookService = Depends(get_rulebook_service),
) -> MarkErrorResponse:
    status = service.mark_failed(request.rulebook_id, request.message)
    return MarkErrorResponse(status=status.value)


@router.post("/ask", response_model=AskResponse)
async def ask(
    request: AskRequest,
    service: AnswerService = Depends(get_answer_service),
) -> AskResponse:
    """Answer a question with quotes from a ready rulebook."""

    answer = await service.ask(request.rulebook_id, request.question)
    return AskResponse(
        answer=answer.answer,
        citations=[
            CitationItem(page_number=citation.page_number, document_id=citation.document_id)
            for citation in answer.citations
        ],
    )


@router.post("/delete", response_model=DeleteResponse)
async def delete_rulebooks(
    request: DeleteRequest,
    service: RulebookService = Depends(get_rulebook_service),
) -> DeleteResponse:
    deleted = await service.delete(request.ids)
    return DeleteResponse(deleted_count=deleted)


@router.get("/search", response_model=list[SearchResultItem])
def search(
    q: str = "",
    service: RulebookService = Depends(get_rulebook_service),
) -> list[SearchResultItem]:
    return [
        SearchResultItem(
            id=rulebook.id,
            slug=rulebook.slug,
            title=rulebook.title,
            year=rulebook.year,
            thumbnail_url=rulebook.thumbnail_url,
            game_image_url=rulebook.game_image_url,
        )
        for rulebook in service.search(q)
    ]


@router.get("/{slug}", response_model=RulebookStatusResponse)
def get_rulebook(
    slug: str,
    service: RulebookService = Depends(get_rulebook_service),
) -> RulebookStatusResponse:
    """Return the lifecycle status of one rulebook."""

    view = service.status(slug)
    return RulebookStatusResponse(
        id=view.id,
        slug=view.slug,
        title=view.title,
        year=view.year,
        status=view.status.value,
        ingested_pages=view.ingested_pages,
        page_count=view.page_count,
        error_message=view.error_message,
        thumbnail_url=view.thumbnail_url,
        pdf_url=view.pdf_url,
        updated_at=view.updated_at,
        is_stale=view.is_stale,
    )
