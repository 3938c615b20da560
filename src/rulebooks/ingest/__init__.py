"""Rulebook ingestion pipeline: splitting, page extraction and bounded uploads."""
from __future__ import annotations

from .extractor import GeminiPageExtractor, PageExtractor, StaticPageExtractor
from .models import PageText, SinglePage, SplitDocument
from .runner import ScheduleMode, run_bounded, run_with_retry
from .splitter import join_pages, split_pdf

__all__ = [
    "GeminiPageExtractor",
    "PageExtractor",
    "PageText",
    "ScheduleMode",
    "SinglePage",
    "SplitDocument",
    "StaticPageExtractor",
    "join_pages",
    "run_bounded",
    "run_with_retry",
    "split_pdf",
]
