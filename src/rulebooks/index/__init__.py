"""Retrieval index backends."""
from __future__ import annotations

from .base import IndexAnswer, IndexService
from .memory import InMemoryIndexService
from .openai_index import OpenAIIndexService

__all__ = ["IndexAnswer", "IndexService", "InMemoryIndexService", "OpenAIIndexService"]
