"""HTTP routers."""
from __future__ import annotations

from .rulebooks import router as rulebooks_router
from .storage import router as storage_router

__all__ = ["rulebooks_router", "storage_router"]
