"""Split a rulebook PDF into single-page PDF documents."""
from __future__ import annotations

import base64
import io
import logging
from typing import Iterable

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError

from rulebooks.errors import MalformedDocument

from .models import SinglePage, SplitDocument

LOGGER = logging.getLogger(__name__)


def _read_pdf(data: bytes) -> PdfReader:
    if not data:
        raise MalformedDocument("Document is empty")
    try:
        reader = PdfReader(io.BytesIO(data))
        page_total = len(reader.pages)
    except PdfReadError as exc:
        raise MalformedDocument(f"Unable to parse PDF: {exc}", cause=exc) from exc
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise MalformedDocument(f"Unable to parse PDF: {exc}", cause=exc) from exc
    if page_total == 0:
        raise MalformedDocument("PDF contains no pages")
    return reader


def split_pdf(data: bytes) -> SplitDocument:
    """Return one single-page PDF per input page, in order, numbered from 1."""

    reader = _read_pdf(data)
    pages: list[SinglePage] = []
    for page_number, page in enumerate(reader.pages, start=1):
        writer = PdfWriter()
        writer.add_page(page)
        buffer = io.BytesIO()
        writer.write(buffer)
        page_bytes = buffer.getvalue()
        pages.append(
            SinglePage(
                page_number=page_number,
                pdf_bytes=page_bytes,
                pdf_base64=base64.b64encode(page_bytes).decode("ascii"),
            )
        )
    LOGGER.info("Split PDF into %s single-page documents", len(pages))
    return SplitDocument(page_count=len(pages), pages=pages)


def join_pages(pages: Iterable[SinglePage]) -> bytes:
    """Concatenate single-page documents back into one PDF."""

    writer = PdfWriter()
    for single in sorted(pages, key=lambda item: item.page_number):
        for page in PdfReader(io.BytesIO(single.pdf_bytes)).pages:
            writer.add_page(page)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_text(pdf_bytes: bytes) -> str:
    """Return the native text layer of a single-page PDF."""

    reader = _read_pdf(pdf_bytes)
    parts = []
    for page in reader.pages:
        try:
            parts.append(page.extract_text() or "")
        except Exception as error:  # pragma: no cover - depends on font encodings
            LOGGER.warning("Failed to extract native text: %s", error)
    return "\n".join(part for part in parts if part).strip()
