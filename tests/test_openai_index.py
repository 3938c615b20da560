from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from rulebooks.errors import IndexAttachTimeout, IndexServiceError
from rulebooks.index import OpenAIIndexService


class _FakeFileBatches:
    def __init__(self, status: str = "completed", delay: float = 0.0) -> None:
        self.status = status
        self.delay = delay
        self.calls: list[tuple[str, list[str]]] = []

    async def create_and_poll(self, vector_store_id: str, *, file_ids: list[str]) -> object:
        self.calls.append((vector_store_id, file_ids))
        if self.delay:
            await asyncio.sleep(self.delay)
        return SimpleNamespace(status=self.status, file_counts={"completed": len(file_ids)})


class _FakeFiles:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, bytes, str, str]] = []
        self.deleted: list[str] = []

    async def create(self, *, file: tuple, purpose: str) -> object:
        name, stream, content_type = file
        self.uploads.append((name, stream.read(), content_type, purpose))
        return SimpleNamespace(id=f"file-{len(self.uploads)}")

    async def delete(self, file_id: str) -> None:
        self.deleted.append(file_id)


class _FakeVectorStores:
    def __init__(self, batches: _FakeFileBatches) -> None:
        self.file_batches = batches
        self.created: list[str] = []
        self.deleted: list[str] = []

    async def create(self, *, name: str) -> object:
        self.created.append(name)
        return SimpleNamespace(id="vs_1")

    async def delete(self, vector_store_id: str) -> None:
        self.deleted.append(vector_store_id)


def _service(batches: _FakeFileBatches | None = None, response: object | None = None, timeout: float = 1.0):
    async def _create_response(**kwargs):
        _create_response.kwargs = kwargs
        return response

    client = SimpleNamespace(
        files=_FakeFiles(),
        vector_stores=_FakeVectorStores(batches or _FakeFileBatches()),
        responses=SimpleNamespace(create=_create_response),
    )
    service = OpenAIIndexService(None, answer_model="gpt-test", attach_timeout=timeout, client=client)
    return service, client, _create_response


def test_create_upload_and_attach() -> None:
    service, client, _ = _service()

    async def _scenario() -> tuple[str, str, str]:
        index_id = await service.create_index("Catan Rulebook")
        document_id = await service.upload_document("rulebook-x-page-1.txt", "Roll two dice.")
        status = await service.attach_documents(index_id, [document_id])
        return index_id, document_id, status

    index_id, document_id, status = asyncio.run(_scenario())

    assert (index_id, document_id, status) == ("vs_1", "file-1", "completed")
    assert client.vector_stores.created == ["Catan Rulebook"]
    assert client.files.uploads == [("rulebook-x-page-1.txt", b"Roll two dice.", "text/plain", "assistants")]
    assert client.vector_stores.file_batches.calls == [("vs_1", ["file-1"])]


def test_attach_timeout_raises_index_attach_timeout() -> None:
    service, _, _ = _service(_FakeFileBatches(delay=0.5), timeout=0.01)

    with pytest.raises(IndexAttachTimeout) as excinfo:
        asyncio.run(service.attach_documents("vs_1", ["file-1"]))

    assert excinfo.value.status_code == 504


def test_attach_not_completed_raises() -> None:
    service, _, _ = _service(_FakeFileBatches(status="failed"))

    with pytest.raises(IndexServiceError):
        asyncio.run(service.attach_documents("vs_1", ["file-1"]))


def test_answer_collects_file_citations() -> None:
    annotation = SimpleNamespace(type="file_citation", file_id="file-9")
    response = SimpleNamespace(
        output_text='"Roll two dice." - from the section "TURN".',
        output=[
            SimpleNamespace(type="file_search_call"),
            SimpleNamespace(
                type="message",
                content=[SimpleNamespace(type="output_text", annotations=[annotation, annotation])],
            ),
        ],
    )
    service, _, create = _service(response=response)

    answer = asyncio.run(service.answer("vs_1", "How many dice?", instructions="quote"))

    assert answer.cited_document_ids == ["file-9"]
    assert answer.text.startswith('"Roll two dice."')
    assert create.kwargs["tools"] == [{"type": "file_search", "vector_store_ids": ["vs_1"]}]
    assert create.kwargs["model"] == "gpt-test"


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        OpenAIIndexService(None)
