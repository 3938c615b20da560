"""Shared fixtures: a temporary database, local storage, in-memory index and app overrides."""
from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path
from typing import Callable, Iterator

import pytest

os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "rulebooks-test-logs"))
os.environ.setdefault("INDEX_BACKEND", "memory")
os.environ.setdefault("EXTRACTOR_BACKEND", "static")

from PyPDF2 import PdfWriter  # noqa: E402

from rulebooks.db import Database, RulebookRepository  # noqa: E402
from rulebooks.index import InMemoryIndexService  # noqa: E402
from rulebooks.ingest import PageExtractor  # noqa: E402
from rulebooks.services import UploadPolicy  # noqa: E402
from rulebooks.storage import LocalAssetStorage  # noqa: E402


def build_pdf(page_count: int) -> bytes:
    """Return a PDF whose page ``n`` is ``100 + n`` points wide."""

    writer = PdfWriter()
    for number in range(1, page_count + 1):
        writer.add_blank_page(width=100 + number, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_text_for(page_number: int) -> str:
    return (
        f"PAGE_INDEX: {page_number}\n\n"
        "SECTION_PATH_INFERRED: SETUP\n"
        "HEADINGS_ON_PAGE:\n- SETUP\n\n---\n\n"
        f"[SECTION: SETUP]\nPage {page_number}: each player takes {page_number} wooden cubes."
    )


class ScriptedExtractor(PageExtractor):
    """Returns deterministic structured text and records every call."""

    def __init__(self) -> None:
        self.calls: list[int] = []

    async def extract(self, pdf_bytes: bytes, page_number: int) -> str:
        self.calls.append(page_number)
        return page_text_for(page_number)


@pytest.fixture
def make_pdf() -> Callable[[int], bytes]:
    return build_pdf


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database(f"sqlite:///{tmp_path / 'rulebooks.db'}")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def repository(database: Database) -> RulebookRepository:
    return RulebookRepository(database)


@pytest.fixture
def index_service() -> InMemoryIndexService:
    return InMemoryIndexService()


@pytest.fixture
def storage(tmp_path: Path) -> LocalAssetStorage:
    return LocalAssetStorage(tmp_path / "storage", "http://testserver")


@pytest.fixture
def extractor() -> ScriptedExtractor:
    return ScriptedExtractor()


@pytest.fixture
def app_overrides(
    database: Database,
    storage: LocalAssetStorage,
    index_service: InMemoryIndexService,
    extractor: ScriptedExtractor,
) -> Iterator[None]:
    from rulebooks import dependencies
    from rulebooks.main import app

    app.dependency_overrides[dependencies.get_database] = lambda: database
    app.dependency_overrides[dependencies.get_storage] = lambda: storage
    app.dependency_overrides[dependencies.get_index_service] = lambda: index_service
    app.dependency_overrides[dependencies.get_extractor] = lambda: extractor
    app.dependency_overrides[dependencies.get_upload_policy] = lambda: UploadPolicy(backoff_seconds=0.0)
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client(app_overrides: None):
    from fastapi.testclient import TestClient

    from rulebooks.main import app

    return TestClient(app)
