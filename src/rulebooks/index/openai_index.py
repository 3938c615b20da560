"""OpenAI vector stores as the backing retrieval index."""
from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Any, Iterable, List, Sequence

from openai import AsyncOpenAI

from rulebooks.errors import IndexAttachTimeout, IndexServiceError
from rulebooks.telemetry import emit_index_event

from .base import IndexAnswer, IndexService

LOGGER = logging.getLogger(__name__)

DEFAULT_ANSWER_MODEL = "gpt-5.1"


def _cited_file_ids(output: Iterable[Any]) -> List[str]:
    """Collect ``file_citation`` ids from message annotations, first seen first."""

    seen: dict[str, None] = {}
    for item in output or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) != "output_text":
                continue
            for annotation in getattr(content, "annotations", None) or []:
                if getattr(annotation, "type", None) != "file_citation":
                    continue
                file_id = getattr(annotation, "file_id", None)
                if file_id:
                    seen.setdefault(file_id, None)
    return list(seen)


class OpenAIIndexService(IndexService):
    """Index backend built on OpenAI files, vector stores and the Responses API."""

    def __init__(
        self,
        api_key: str | None,
        *,
        answer_model: str = DEFAULT_ANSWER_MODEL,
        attach_timeout: float = 120.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("Missing OPENAI_API_KEY environment variable")
            client = AsyncOpenAI(api_key=api_key)
        self._client = client
        self.answer_model = answer_model
        self.attach_timeout = attach_timeout

    async def create_index(self, name: str) -> str:
        try:
            vector_store = await self._client.vector_stores.create(name=name)
        except Exception as exc:
            raise IndexServiceError(f"Failed to create vector store: {exc}", cause=exc) from exc
        LOGGER.info("Created vector store %s (%s)", vector_store.id, name)
        return vector_store.id

    async def upload_document(self, name: str, text: str) -> str:
        # A fresh buffer per call; a consumed stream cannot be re-sent on retry.
        payload = io.BytesIO(text.encode("utf-8"))
        try:
            uploaded = await self._client.files.create(
                file=(name, payload, "text/plain"),
                purpose="assistants",
            )
        except Exception as exc:
            raise IndexServiceError(f"Failed to upload {name}: {exc}", cause=exc) from exc
        return uploaded.id

    async def attach_documents(self, index_id: str, document_ids: Sequence[str]) -> str:
        started = time.perf_counter()
        try:
            batch = await asyncio.wait_for(
                self._client.vector_stores.file_batches.create_and_poll(
                    index_id,
                    file_ids=list(document_ids),
                ),
                timeout=self.attach_timeout,
            )
        except asyncio.TimeoutError as exc:
            emit_index_event(
                "index.attach.timeout",
                index_id=index_id,
                count=len(document_ids),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=exc,
            )
            raise IndexAttachTimeout(
                f"Vector store {index_id} did not finish attaching {len(document_ids)} files "
                f"within {self.attach_timeout:.0f}s; the files exist but may not be searchable yet",
                cause=exc,
            ) from exc
        except Exception as exc:
            raise IndexServiceError(f"Failed to attach files to {index_id}: {exc}", cause=exc) from exc

        status = str(getattr(batch, "status", "unknown"))
        emit_index_event(
            "index.attach",
            index_id=index_id,
            count=len(document_ids),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        if status != "completed":
            counts = getattr(batch, "file_counts", None)
            raise IndexServiceError(
                f"File batch for {index_id} ended with status {status!r} (counts: {counts})"
            )
        return status

    async def delete_document(self, document_id: str) -> None:
        try:
            await self._client.files.delete(document_id)
        except Exception as exc:
            raise IndexServiceError(f"Failed to delete file {document_id}: {exc}", cause=exc) from exc

    async def delete_index(self, index_id: str) -> None:
        try:
            await self._client.vector_stores.delete(index_id)
        except Exception as exc:
            raise IndexServiceError(f"Failed to delete vector store {index_id}: {exc}", cause=exc) from exc

    async def answer(self, index_id: str, question: str, *, instructions: str) -> IndexAnswer:
        try:
            response = await self._client.responses.create(
                model=self.answer_model,
                input=question,
                instructions=instructions,
                tools=[{"type": "file_search", "vector_store_ids": [index_id]}],
            )
        except Exception as exc:
            raise IndexServiceError(f"Answering request failed: {exc}", cause=exc) from exc

        file_ids = _cited_file_ids(getattr(response, "output", None))
        LOGGER.debug("Cited file ids for %s: %s", index_id, file_ids)
        return IndexAnswer(text=getattr(response, "output_text", "") or "", cited_document_ids=file_ids)
