"""Client-side driver for the rulebook upload workflow."""
from __future__ import annotations

from .client import ApiError, RulebookApiClient
from .state import ALLOWED_TRANSITIONS, InvalidTransition, Step, UploadState
from .workflow import IngestionOrchestrator, UploadForm, UploadResult, batch_ranges

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ApiError",
    "IngestionOrchestrator",
    "InvalidTransition",
    "RulebookApiClient",
    "Step",
    "UploadForm",
    "UploadResult",
    "UploadState",
    "batch_ranges",
]
