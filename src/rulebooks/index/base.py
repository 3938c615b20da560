"""Interface for the managed retrieval index and its document store."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence

__all__ = ["IndexAnswer", "IndexService"]


@dataclass(slots=True)
class IndexAnswer:
    """Answer text plus the document references the service cited."""

    text: str
    cited_document_ids: List[str] = field(default_factory=list)


class IndexService(ABC):
    """Abstract interface for index backends.

    An index holds page documents that were uploaded separately and then
    attached; documents stay addressable by their own id so they can be
    deleted and resolved back to pages.
    """

    @abstractmethod
    async def create_index(self, name: str) -> str:
        """Create an empty index and return its id."""

    @abstractmethod
    async def upload_document(self, name: str, text: str) -> str:
        """Store ``text`` as a standalone document and return its id."""

    @abstractmethod
    async def attach_documents(self, index_id: str, document_ids: Sequence[str]) -> str:
        """Attach documents in one call and wait until the index has processed them.

        Returns the final attachment status reported by the backend.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a previously uploaded document."""

    @abstractmethod
    async def delete_index(self, index_id: str) -> None:
        """Delete an index."""

    @abstractmethod
    async def answer(self, index_id: str, question: str, *, instructions: str) -> IndexAnswer:
        """Answer ``question`` from the documents attached to ``index_id``."""
