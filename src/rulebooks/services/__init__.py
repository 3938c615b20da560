"""Application services behind the HTTP routes."""
from __future__ import annotations

from .answers import Answer, AnswerService, Citation
from .extraction import PageExtractionService
from .ingestion import BatchIngestionService, BatchResult, IngestBatch, UploadPolicy
from .rulebooks import AssetUrls, RulebookService, RulebookStatusView, UploadSlot

__all__ = [
    "Answer",
    "AnswerService",
    "AssetUrls",
    "BatchIngestionService",
    "BatchResult",
    "Citation",
    "IngestBatch",
    "PageExtractionService",
    "RulebookService",
    "RulebookStatusView",
    "UploadPolicy",
    "UploadSlot",
]
