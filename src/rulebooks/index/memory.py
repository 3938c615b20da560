"""In-memory index backend for local development and tests."""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from rulebooks.errors import IndexServiceError

from .base import IndexAnswer, IndexService

LOGGER = logging.getLogger(__name__)

NOT_FOUND_ANSWER = "I couldn't find this in the rulebook."

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_SECTION_RE = re.compile(r"^\[SECTION:\s*(.*?)\]\s*$", re.MULTILINE)


def _tokens(text: str) -> set[str]:
    return {token for token in _TOKEN_RE.findall(text.lower()) if len(token) > 2}


def _blocks(text: str) -> List[Tuple[str, str]]:
    """Split extracted page text into ``(section, block)`` pairs."""

    matches = list(_SECTION_RE.finditer(text))
    if not matches:
        return [("UNKNOWN", text.strip())] if text.strip() else []
    blocks: List[Tuple[str, str]] = []
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        body = text[match.end() : end].strip()
        if body:
            blocks.append((match.group(1).strip() or "UNKNOWN", body))
    return blocks


@dataclass(slots=True)
class _StoredDocument:
    name: str
    text: str


@dataclass(slots=True)
class _StoredIndex:
    name: str
    document_ids: List[str] = field(default_factory=list)


class InMemoryIndexService(IndexService):
    """Keeps indexes and documents in dictionaries and answers by keyword overlap."""

    def __init__(self) -> None:
        self.indexes: Dict[str, _StoredIndex] = {}
        self.documents: Dict[str, _StoredDocument] = {}

    async def create_index(self, name: str) -> str:
        index_id = f"vs_{uuid.uuid4().hex[:24]}"
        self.indexes[index_id] = _StoredIndex(name=name)
        return index_id

    async def upload_document(self, name: str, text: str) -> str:
        document_id = f"file-{uuid.uuid4().hex[:24]}"
        self.documents[document_id] = _StoredDocument(name=name, text=text)
        return document_id

    async def attach_documents(self, index_id: str, document_ids: Sequence[str]) -> str:
        index = self.indexes.get(index_id)
        if index is None:
            raise IndexServiceError(f"Index {index_id} does not exist")
        missing = [document_id for document_id in document_ids if document_id not in self.documents]
        if missing:
            raise IndexServiceError(f"Unknown documents: {', '.join(missing)}")
        index.document_ids.extend(document_ids)
        return "completed"

    async def delete_document(self, document_id: str) -> None:
        if self.documents.pop(document_id, None) is None:
            raise IndexServiceError(f"Document {document_id} does not exist")
        for index in self.indexes.values():
            if document_id in index.document_ids:
                index.document_ids.remove(document_id)

    async def delete_index(self, index_id: str) -> None:
        if self.indexes.pop(index_id, None) is None:
            raise IndexServiceError(f"Index {index_id} does not exist")

    async def answer(self, index_id: str, question: str, *, instructions: str) -> IndexAnswer:
        del instructions
        index = self.indexes.get(index_id)
        if index is None:
            raise IndexServiceError(f"Index {index_id} does not exist")

        wanted = _tokens(question)
        best: Tuple[int, str, str, str] | None = None
        for document_id in index.document_ids:
            document = self.documents.get(document_id)
            if document is None:
                continue
            for section, block in _blocks(document.text):
                score = len(wanted & _tokens(block))
                if score and (best is None or score > best[0]):
                    best = (score, document_id, section, block)

        if best is None:
            return IndexAnswer(text=NOT_FOUND_ANSWER)
        _, document_id, section, block = best
        return IndexAnswer(
            text=f'"{block}" - from the section "{section}".',
            cited_document_ids=[document_id],
        )
