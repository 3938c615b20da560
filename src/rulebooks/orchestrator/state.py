"""Upload workflow states and the transitions allowed between them."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional


class Step(str, enum.Enum):
    FORM = "form"
    UPLOADING = "uploading"
    PARSING = "parsing"
    PROCESSING = "processing"
    INGESTING = "ingesting"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class UploadState:
    """One observable point in the upload workflow.

    ``current``/``total`` count pages for ``processing`` and ``ingesting``;
    ``message`` carries a human-readable note or, for ``error``, the failure.
    """

    step: Step
    current: int = 0
    total: int = 0
    message: Optional[str] = None


ALLOWED_TRANSITIONS: Dict[Step, FrozenSet[Step]] = {
    Step.FORM: frozenset({Step.UPLOADING}),
    Step.UPLOADING: frozenset({Step.UPLOADING, Step.PARSING, Step.ERROR}),
    Step.PARSING: frozenset({Step.PROCESSING, Step.ERROR}),
    Step.PROCESSING: frozenset({Step.PROCESSING, Step.INGESTING, Step.ERROR}),
    Step.INGESTING: frozenset({Step.INGESTING, Step.FINALIZING, Step.ERROR}),
    Step.FINALIZING: frozenset({Step.DONE, Step.ERROR}),
    Step.DONE: frozenset({Step.FORM}),
    Step.ERROR: frozenset({Step.FORM}),
}


class InvalidTransition(RuntimeError):
    def __init__(self, source: Step, target: Step) -> None:
        super().__init__(f"Cannot move from {source.value} to {target.value}")
        self.source = source
        self.target = target


def check_transition(source: Step, target: Step) -> None:
    if target not in ALLOWED_TRANSITIONS[source]:
        raise InvalidTransition(source, target)
