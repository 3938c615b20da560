"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class SinglePage:
    """A one-page PDF cut out of the uploaded rulebook."""

    page_number: int
    pdf_bytes: bytes
    pdf_base64: str


@dataclass(slots=True)
class SplitDocument:
    """Result of splitting a rulebook into single-page documents."""

    page_count: int
    pages: List[SinglePage] = field(default_factory=list)


@dataclass(slots=True)
class PageText:
    """Extracted, structured text for one page."""

    page_number: int
    text: str
