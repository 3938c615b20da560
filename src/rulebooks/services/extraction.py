"""Server-side page extraction for the upload client."""
from __future__ import annotations

import base64
import binascii
import logging

from rulebooks.errors import ValidationError
from rulebooks.ingest.extractor import PageExtractor
from rulebooks.ingest.models import PageText

LOGGER = logging.getLogger(__name__)


class PageExtractionService:
    """Decode one single-page PDF and run it through the configured extractor.

    Retries belong to the caller; every request makes exactly one extraction call.
    """

    def __init__(self, extractor: PageExtractor) -> None:
        self.extractor = extractor

    async def process_page(self, page_number: int, pdf_base64: str) -> PageText:
        if not page_number or page_number < 1 or not pdf_base64:
            raise ValidationError("pageNumber and pdfBase64 are required")
        try:
            pdf_bytes = base64.b64decode(pdf_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("pdfBase64 is not valid base64") from exc

        text = await self.extractor.extract(pdf_bytes, page_number)
        return PageText(page_number=page_number, text=text)
