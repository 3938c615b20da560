"""URL-friendly slugs for rulebooks."""
from __future__ import annotations

import re
import secrets
import string

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")

MAX_BASE_LENGTH = 50
SUFFIX_LENGTH = 6


def slug_base(title: str) -> str:
    base = _INVALID_CHARS_RE.sub("", title.lower().strip())
    base = _WHITESPACE_RE.sub("-", base)
    base = _DASHES_RE.sub("-", base)
    return base[:MAX_BASE_LENGTH]


def generate_slug(title: str) -> str:
    """Slugify ``title`` and append a random suffix so repeated titles stay unique."""

    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{slug_base(title)}-{suffix}"
