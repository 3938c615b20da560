"""Async HTTP client for the rulebook API."""
from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from rulebooks.errors import RulebookError
from rulebooks.ingest.models import PageText

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api/rulebooks"


class ApiError(RulebookError):
    """The API answered with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error")
    if not message:
        message = response.text or f"HTTP {response.status_code}"
    raise ApiError(response.status_code, str(message))


class RulebookApiClient:
    """Thin wrapper around :class:`httpx.AsyncClient`, one method per endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 180.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def __aenter__(self) -> "RulebookApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        response = await self._client.post(f"{API_PREFIX}{path}", json=payload)
        _raise_for_error(response)
        return response.json()

    async def create_upload(self, title: str, year: int | None = None) -> dict[str, str]:
        return await self._post_json("/create-upload", {"title": title, "year": year})

    async def upload_pdf(self, upload_url: str, data: bytes) -> None:
        response = await self._client.put(
            upload_url,
            content=data,
            headers={"Content-Type": "application/pdf"},
        )
        _raise_for_error(response)

    async def process_page(self, page_number: int, pdf_base64: str) -> PageText:
        body = await self._post_json(
            "/process-page",
            {"pageNumber": page_number, "pdfBase64": pdf_base64},
        )
        return PageText(page_number=body["pageNumber"], text=body["processedText"])

    async def ingest_batch(
        self,
        rulebook_id: str,
        batch_index: int,
        pages: Sequence[PageText],
        *,
        is_last_batch: bool,
        total_pages: int,
    ) -> dict[str, Any]:
        return await self._post_json(
            "/ingest-batch",
            {
                "rulebookId": rulebook_id,
                "batchIndex": batch_index,
                "pages": [{"pageNumber": page.page_number, "text": page.text} for page in pages],
                "isLastBatch": is_last_batch,
                "totalPages": total_pages,
            },
        )

    async def upload_assets(
        self,
        rulebook_id: str,
        thumbnail: bytes,
        *,
        filename: str,
        content_type: str,
    ) -> dict[str, str]:
        response = await self._client.post(
            f"{API_PREFIX}/upload-assets",
            data={"rulebookId": rulebook_id},
            files={"thumbnail": (filename, thumbnail, content_type)},
        )
        _raise_for_error(response)
        return response.json()

    async def mark_error(self, rulebook_id: str, message: str) -> None:
        await self._post_json("/mark-error", {"rulebookId": rulebook_id, "message": message})

    async def get_rulebook(self, slug: str) -> dict[str, Any]:
        response = await self._client.get(f"{API_PREFIX}/{slug}")
        _raise_for_error(response)
        return response.json()
