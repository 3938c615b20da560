"""Local file storage for raw rulebook PDFs and thumbnails."""
from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Final, Iterable

from rulebooks.errors import NotFoundError, PreconditionError, ValidationError

LOGGER = logging.getLogger(__name__)

_SEGMENT_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")

THUMBNAIL_EXTENSIONS: Final[dict[str, str]] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def pdf_path(rulebook_id: str) -> str:
    return f"pdfs/{rulebook_id}.pdf"


def thumbnail_path(rulebook_id: str, content_type: str | None) -> str:
    extension = THUMBNAIL_EXTENSIONS.get(content_type or "", "png")
    return f"thumbnails/{rulebook_id}.{extension}"


def thumbnail_paths(rulebook_id: str) -> list[str]:
    return [f"thumbnails/{rulebook_id}.{ext}" for ext in sorted(set(THUMBNAIL_EXTENSIONS.values()))]


def _sanitize_segment(segment: str) -> str:
    sanitized = _SEGMENT_SAFE_CHARS_RE.sub("_", segment).strip("._")
    if not sanitized:
        raise ValidationError(f"Invalid storage path segment: {segment!r}")
    return sanitized


@dataclass(slots=True)
class _UploadGrant:
    path: str
    expires_at: float


class LocalAssetStorage:
    """Store assets under a root directory and hand out time-limited upload URLs."""

    def __init__(
        self,
        root: str | Path,
        public_base_url: str,
        *,
        ttl_seconds: int = 7200,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._grants: dict[str, _UploadGrant] = {}

    def normalize(self, path: str) -> str:
        parts = [part for part in path.replace("\\", "/").split("/") if part]
        if not parts:
            raise ValidationError("Storage path must not be empty")
        return "/".join(_sanitize_segment(part) for part in parts)

    def _resolve(self, path: str) -> Path:
        destination = (self.root / self.normalize(path)).resolve()
        if self.root not in destination.parents:
            raise ValidationError(f"Storage path escapes the storage root: {path!r}")
        return destination

    def _prune_expired(self, now: float) -> None:
        expired = [token for token, grant in self._grants.items() if now > grant.expires_at]
        for token in expired:
            del self._grants[token]

    def create_signed_upload_url(self, path: str) -> str:
        now = self._clock()
        self._prune_expired(now)
        token = secrets.token_urlsafe(24)
        self._grants[token] = _UploadGrant(
            path=self.normalize(path),
            expires_at=now + self.ttl_seconds,
        )
        return f"{self.public_base_url}/storage/upload/{token}"

    def accept_upload(self, token: str, data: bytes) -> str:
        """Write ``data`` for a previously issued upload token."""
        grant = self._grants.get(token)
        if grant is None:
            raise NotFoundError("Unknown upload token")
        if self._clock() > grant.expires_at:
            self._grants.pop(token, None)
            raise PreconditionError("Upload URL has expired")
        self.upload(grant.path, data)
        self._grants.pop(token, None)
        return grant.path

    def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        destination = self._resolve(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        LOGGER.info("Stored %s (%s bytes, %s)", path, len(data), content_type or "unknown type")
        return self.normalize(path)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def open_path(self, path: str) -> Path:
        destination = self._resolve(path)
        if not destination.is_file():
            raise NotFoundError(f"No stored file at {path}")
        return destination

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/storage/files/{self.normalize(path)}"

    def remove(self, paths: Iterable[str]) -> list[str]:
        """Delete the given paths, skipping ones that do not exist."""
        removed: list[str] = []
        for path in paths:
            try:
                destination = self._resolve(path)
                if destination.is_file():
                    destination.unlink()
                    removed.append(path)
            except (OSError, ValidationError) as error:
                LOGGER.warning("Failed to remove stored file %s: %s", path, error)
        return removed
