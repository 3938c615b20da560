from __future__ import annotations

import asyncio

import pytest

from rulebooks.errors import IndexServiceError, ValidationError
from rulebooks.index import InMemoryIndexService
from rulebooks.ingest import PageText
from rulebooks.services import BatchIngestionService, IngestBatch, RulebookService, UploadPolicy
from rulebooks.storage import pdf_path, thumbnail_path


def _ready_rulebook(repository, index, storage, title: str):
    slot = RulebookService(repository, storage, index).create_upload(title, 2020)
    storage.upload(pdf_path(slot.rulebook_id), b"%PDF-")
    storage.upload(thumbnail_path(slot.rulebook_id, "image/gif"), b"GIF89a", "image/gif")
    service = BatchIngestionService(repository, index, policy=UploadPolicy(backoff_seconds=0.0))
    asyncio.run(
        service.ingest_batch(
            IngestBatch(
                rulebook_id=slot.rulebook_id,
                batch_index=0,
                pages=[PageText(page_number=n, text=f"Page {n}") for n in (1, 2)],
                is_last_batch=True,
                total_pages=2,
            )
        )
    )
    return repository.get(slot.rulebook_id)


def test_delete_removes_rows_documents_index_and_files(repository, index_service, storage) -> None:
    first = _ready_rulebook(repository, index_service, storage, "Agricola")
    second = _ready_rulebook(repository, index_service, storage, "Brass")
    service = RulebookService(repository, storage, index_service)

    deleted = asyncio.run(service.delete([first.id, "unknown-id"]))

    assert deleted == 1
    assert repository.get(first.id) is None
    assert repository.list_pages(first.id) == []
    assert first.index_id not in index_service.indexes
    assert len(index_service.documents) == 2
    assert not storage.exists(pdf_path(first.id))
    assert not storage.exists(thumbnail_path(first.id, "image/gif"))
    assert repository.get(second.id) is not None
    assert storage.exists(pdf_path(second.id))


class _UnreliableDeletes(InMemoryIndexService):
    async def delete_document(self, document_id: str) -> None:
        raise IndexServiceError("document store unavailable")

    async def delete_index(self, index_id: str) -> None:
        raise IndexServiceError("index store unavailable")


def test_delete_survives_failing_external_deletes(repository, storage) -> None:
    index = _UnreliableDeletes()
    rulebook = _ready_rulebook(repository, index, storage, "Terraforming Mars")
    service = RulebookService(repository, storage, index)

    deleted = asyncio.run(service.delete([rulebook.id]))

    assert deleted == 1
    assert repository.get(rulebook.id) is None
    assert not storage.exists(pdf_path(rulebook.id))


def test_delete_requires_ids(repository, index_service, storage) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(RulebookService(repository, storage, index_service).delete([]))


def test_delete_endpoint(client, repository) -> None:
    body = client.post("/api/rulebooks/create-upload", json={"title": "Everdell"}).json()

    response = client.post("/api/rulebooks/delete", json={"ids": [body["rulebookId"]]})

    assert response.status_code == 200
    assert response.json() == {"deletedCount": 1}
    assert repository.get(body["rulebookId"]) is None
