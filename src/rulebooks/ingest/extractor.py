"""Clients that turn a single-page PDF into structured plain text."""
from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod

from google import genai
from google.genai import types as genai_types

from rulebooks.errors import ExtractionFailed, ExtractionMalformed

from .prompt import build_prompt_for_page
from .splitter import page_text

LOGGER = logging.getLogger(__name__)

_PAGE_INDEX_RE = re.compile(r"^\s*PAGE_INDEX:\s*(\d+)\s*$", re.MULTILINE)


def check_page_index(text: str, page_number: int) -> None:
    """Reject output whose echoed ``PAGE_INDEX`` differs from the requested page."""

    match = _PAGE_INDEX_RE.search(text)
    if match is None:
        LOGGER.warning("Extraction output for page %s carries no PAGE_INDEX line", page_number)
        return
    echoed = int(match.group(1))
    if echoed != page_number:
        raise ExtractionMalformed(
            f"Extraction for page {page_number} echoed PAGE_INDEX {echoed}"
        )


class PageExtractor(ABC):
    """Abstract interface for page extraction backends."""

    @abstractmethod
    async def extract(self, pdf_bytes: bytes, page_number: int) -> str:
        """Return the structured plain text for one page."""


class GeminiPageExtractor(PageExtractor):
    """Extract page text with a Gemini multimodal model."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        client: genai.Client | None = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("GOOGLE_AI_API_KEY is not configured")
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model

    async def extract(self, pdf_bytes: bytes, page_number: int) -> str:
        prompt = build_prompt_for_page(page_number)
        started = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[
                    genai_types.Part.from_bytes(data=pdf_bytes, mime_type="application/pdf"),
                    prompt,
                ],
            )
        except Exception as exc:
            raise ExtractionFailed(f"Extraction request for page {page_number} failed: {exc}", cause=exc) from exc

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise ExtractionMalformed(f"Extraction for page {page_number} returned no text")
        check_page_index(text, page_number)
        LOGGER.info(
            "Extracted page %s with %s in %.3fs (%s chars)",
            page_number,
            self.model,
            time.perf_counter() - started,
            len(text),
        )
        LOGGER.debug("Page %s extraction output:\n%s", page_number, text)
        return text


class StaticPageExtractor(PageExtractor):
    """Offline extractor that lays out the PDF's native text layer."""

    async def extract(self, pdf_bytes: bytes, page_number: int) -> str:
        text = page_text(pdf_bytes)
        body = text or "[EMPTY PAGE]"
        return (
            f"PAGE_INDEX: {page_number}\n\n"
            "SECTION_PATH_INFERRED: UNKNOWN\n"
            "HEADINGS_ON_PAGE:\n- NONE\n\n---\n\n"
            f"[SECTION: UNKNOWN]\n{body}"
        )
