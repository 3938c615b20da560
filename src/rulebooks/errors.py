"""Exception hierarchy shared by the ingestion pipeline and the HTTP layer."""
from __future__ import annotations


class RulebookError(RuntimeError):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class ValidationError(RulebookError):
    """Missing or invalid request fields. Nothing has been mutated."""

    status_code = 400


class NotFoundError(RulebookError):
    status_code = 404


class PreconditionError(RulebookError):
    """The rulebook exists but is not in a state that allows the operation."""

    status_code = 400


class MalformedDocument(RulebookError):
    """The uploaded bytes are not a readable, paginated PDF."""

    status_code = 400


class UpstreamServiceError(RulebookError):
    """An external service (extraction model, index, storage) failed."""

    status_code = 500


class ExtractionFailed(UpstreamServiceError):
    """The extraction service could not be reached or returned an error."""


class ExtractionMalformed(UpstreamServiceError):
    """The extraction service answered with empty or unusable text."""


class IndexServiceError(UpstreamServiceError):
    """The retrieval index or document store rejected a request."""


class IndexAttachTimeout(RulebookError):
    """Documents were uploaded but the index did not finish attaching them in time."""

    status_code = 504


class ItemUploadFailed(UpstreamServiceError):
    """A single item exhausted its retry budget inside the bounded runner."""

    def __init__(self, page_number: int, last_error: BaseException) -> None:
        super().__init__(f"Page {page_number} failed after retries: {last_error}")
        self.page_number = page_number
        self.last_error = last_error
        self.__cause__ = last_error


__all__ = [
    "RulebookError",
    "ValidationError",
    "NotFoundError",
    "PreconditionError",
    "MalformedDocument",
    "UpstreamServiceError",
    "ExtractionFailed",
    "ExtractionMalformed",
    "IndexServiceError",
    "IndexAttachTimeout",
    "ItemUploadFailed",
]
