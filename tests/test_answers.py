from __future__ import annotations

import asyncio
from typing import Sequence

import pytest

from rulebooks.db import PageRecord, RulebookStatus
from rulebooks.errors import NotFoundError, PreconditionError, UpstreamServiceError
from rulebooks.index import IndexAnswer, InMemoryIndexService
from rulebooks.services import AnswerService
from rulebooks.services.answers import SYSTEM_PROMPT


class _CannedIndex(InMemoryIndexService):
    def __init__(self, answer: IndexAnswer) -> None:
        super().__init__()
        self.canned = answer
        self.instructions: list[str] = []

    async def answer(self, index_id: str, question: str, *, instructions: str) -> IndexAnswer:
        self.instructions.append(instructions)
        return self.canned


def _ready(repository, document_ids: Sequence[str]):
    rulebook = repository.create_rulebook(slug="scythe-123456", title="Scythe", year=2016)
    repository.add_pages(
        rulebook.id,
        [PageRecord(page_number=n, document_id=doc, text_length=10) for n, doc in enumerate(document_ids, start=1)],
    )
    repository.update(rulebook.id, status=RulebookStatus.READY, index_id="vs_1", page_count=len(document_ids))
    return rulebook


def test_citations_are_resolved_to_sorted_pages(repository) -> None:
    rulebook = _ready(repository, ["file-a", "file-b", "file-c"])
    index = _CannedIndex(IndexAnswer(text='"Move up to 3." - from the section "MOVE".', cited_document_ids=["file-c", "file-a", "file-x"]))

    answer = asyncio.run(AnswerService(repository, index).ask(rulebook.id, "How far can I move?"))

    assert [c.page_number for c in answer.citations] == [1, 3]
    assert index.instructions == [SYSTEM_PROMPT]


def test_empty_answer_is_an_upstream_error(repository) -> None:
    rulebook = _ready(repository, ["file-a"])

    with pytest.raises(UpstreamServiceError):
        asyncio.run(AnswerService(repository, _CannedIndex(IndexAnswer(text="  "))).ask(rulebook.id, "Who wins?"))


def test_missing_and_unindexed_rulebooks(repository, index_service) -> None:
    service = AnswerService(repository, index_service)
    with pytest.raises(NotFoundError):
        asyncio.run(service.ask("missing", "Who wins?"))

    rulebook = repository.create_rulebook(slug="tapestry-654321", title="Tapestry", year=2019)
    repository.update(rulebook.id, status=RulebookStatus.READY)
    with pytest.raises(PreconditionError):
        asyncio.run(service.ask(rulebook.id, "Who wins?"))
