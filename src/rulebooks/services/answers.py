"""Question answering over a ready rulebook's index."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from rulebooks.db import RulebookRepository, RulebookStatus
from rulebooks.errors import NotFoundError, PreconditionError, UpstreamServiceError, ValidationError
from rulebooks.index import IndexService
from rulebooks.telemetry import traced_duration

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a board game rules assistant. Answer using ONLY the provided rulebook files.

Instructions:
- Always use exact quotes as your main answer.
- When it helps, you may put a one-sentence summary and/or a yes/no answer before the quoted passage.
- Keep quotes as short as possible while still fully answering the question.
- After each quoted passage, add: - from the section "SECTION NAME".
- Use the section name exactly as it appears in the file.
- Every answer MUST include at least one file citation.
- If the answer cannot be found, say: "I couldn't find this in the rulebook."

Cite the source file for every quoted passage."""


@dataclass(slots=True)
class Citation:
    page_number: int
    document_id: str


@dataclass(slots=True)
class Answer:
    answer: str
    citations: List[Citation] = field(default_factory=list)


class AnswerService:
    def __init__(self, repository: RulebookRepository, index: IndexService) -> None:
        self.repository = repository
        self.index = index

    async def ask(self, rulebook_id: str, question: str) -> Answer:
        question = (question or "").strip()
        if not rulebook_id or not question:
            raise ValidationError("rulebookId and question are required")

        rulebook = self.repository.get(rulebook_id)
        if rulebook is None:
            raise NotFoundError("Rulebook not found")
        if rulebook.status is not RulebookStatus.READY:
            raise PreconditionError("Rulebook is not ready for queries")
        if not rulebook.index_id:
            raise PreconditionError("Rulebook has no index")

        with traced_duration("answer.query", rulebook_id=rulebook_id):
            result = await self.index.answer(rulebook.index_id, question, instructions=SYSTEM_PROMPT)
        if not result.text.strip():
            raise UpstreamServiceError("No response from the answering service")

        pages = self.repository.pages_for_documents(rulebook_id, result.cited_document_ids)
        citations = sorted(
            (Citation(page_number=page.page_number, document_id=page.document_id) for page in pages),
            key=lambda citation: citation.page_number,
        )
        LOGGER.info(
            "Answered question for %s with %s citations", rulebook_id, len(citations)
        )
        return Answer(answer=result.text, citations=citations)
