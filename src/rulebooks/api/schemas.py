"""Request and response bodies for the rulebook API (camelCase on the wire)."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateUploadRequest(CamelModel):
    title: str = Field(..., description="Display title of the rulebook.")
    year: int | None = Field(None, description="Publication year, if known.")


class CreateUploadResponse(CamelModel):
    rulebook_id: str
    slug: str
    upload_url: str


class StoredUploadResponse(CamelModel):
    path: str


class ProcessPageRequest(CamelModel):
    page_number: int = Field(..., ge=1)
    pdf_base64: str = Field(..., min_length=1)


class ProcessPageResponse(CamelModel):
    page_number: int
    processed_text: str


class BatchPage(CamelModel):
    page_number: int
    text: str


class IngestBatchRequest(CamelModel):
    rulebook_id: str
    batch_index: int
    pages: list[BatchPage]
    is_last_batch: bool = False
    total_pages: int = 0


class IngestBatchResponse(CamelModel):
    success: bool
    ingested_pages: int
    status: str


class AssetUrlsResponse(CamelModel):
    thumbnail_url: str
    pdf_url: str


class MarkErrorRequest(CamelModel):
    rulebook_id: str
    message: str = "Upload failed"


class MarkErrorResponse(CamelModel):
    status: str


class AskRequest(CamelModel):
    rulebook_id: str
    question: str


class CitationItem(CamelModel):
    page_number: int
    document_id: str


class AskResponse(CamelModel):
    answer: str
    citations: list[CitationItem]


class DeleteRequest(CamelModel):
    ids: list[str]


class DeleteResponse(CamelModel):
    deleted_count: int


class SearchResultItem(CamelModel):
    id: str
    slug: str
    title: str
    year: int | None = None
    thumbnail_url: str | None = None
    game_image_url: str | None = None


class RulebookStatusResponse(CamelModel):
    id: str
    slug: str
    title: str
    year: int | None
    status: str
    ingested_pages: int
    page_count: int
    error_message: str | None
    thumbnail_url: str | None
    pdf_url: str | None
    updated_at: datetime
    is_stale: bool
