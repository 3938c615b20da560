"""Persistence layer for rulebook lifecycle state."""
from __future__ import annotations

from .models import Base, Rulebook, RulebookPage, RulebookStatus
from .repository import Database, PageRecord, RulebookRepository

__all__ = [
    "Base",
    "Database",
    "PageRecord",
    "Rulebook",
    "RulebookPage",
    "RulebookRepository",
    "RulebookStatus",
]
