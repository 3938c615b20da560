"""Row-level persistence for rulebooks and page documents."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from rulebooks.db.models import Base, Rulebook, RulebookPage, RulebookStatus, utcnow

LOGGER = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ANN001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, database_url: str) -> None:
        self.url = database_url
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine: Engine = create_engine(database_url, connect_args=connect_args)
        if database_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


@dataclass(slots=True)
class PageRecord:
    """Values for one page-document row inserted by a batch."""

    page_number: int
    document_id: str
    text_length: int


class RulebookRepository:
    """CRUD operations over the ``rulebooks`` and ``rulebook_pages`` tables.

    Rows are read and written without optimistic locking; callers that run
    two ingestion passes against the same rulebook concurrently can
    interleave counter updates.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def _session(self) -> Session:
        return self.database.session_factory()

    # rulebooks -----------------------------------------------------------------
    def create_rulebook(self, *, slug: str, title: str, year: int | None) -> Rulebook:
        with self._session() as session:
            rulebook = Rulebook(
                slug=slug,
                title=title,
                year=year,
                status=RulebookStatus.PENDING_INGEST,
                ingested_pages=0,
                page_count=0,
            )
            session.add(rulebook)
            session.commit()
            LOGGER.info("Created rulebook %s (%s)", rulebook.id, slug)
            return rulebook

    def slug_exists(self, slug: str) -> bool:
        with self._session() as session:
            found = session.scalar(select(Rulebook.id).where(Rulebook.slug == slug))
            return found is not None

    def get(self, rulebook_id: str) -> Rulebook | None:
        with self._session() as session:
            return session.get(Rulebook, rulebook_id)

    def get_by_slug(self, slug: str) -> Rulebook | None:
        with self._session() as session:
            return session.scalar(select(Rulebook).where(Rulebook.slug == slug))

    def get_many(self, rulebook_ids: Iterable[str]) -> list[Rulebook]:
        ids = list(rulebook_ids)
        if not ids:
            return []
        with self._session() as session:
            return list(session.scalars(select(Rulebook).where(Rulebook.id.in_(ids))))

    def update(self, rulebook_id: str, **fields: object) -> Rulebook | None:
        """Apply ``fields`` to the row and bump ``updated_at``."""
        with self._session() as session:
            rulebook = session.get(Rulebook, rulebook_id)
            if rulebook is None:
                return None
            for key, value in fields.items():
                if not hasattr(Rulebook, key):
                    raise AttributeError(f"Rulebook has no column {key!r}")
                setattr(rulebook, key, value)
            rulebook.updated_at = utcnow()
            session.commit()
            return rulebook

    def mark_error(self, rulebook_id: str, message: str) -> Rulebook | None:
        return self.update(rulebook_id, status=RulebookStatus.ERROR, error_message=message)

    def search_ready(self, query: str, *, limit: int = 10) -> list[Rulebook]:
        pattern = f"%{query}%"
        with self._session() as session:
            statement = (
                select(Rulebook)
                .where(Rulebook.title.ilike(pattern))
                .where(Rulebook.status == RulebookStatus.READY)
                .order_by(Rulebook.title)
                .limit(limit)
            )
            return list(session.scalars(statement))

    def delete_many(self, rulebook_ids: Iterable[str]) -> int:
        """Delete rulebooks; their page rows go with them."""
        ids = list(rulebook_ids)
        if not ids:
            return 0
        with self._session() as session:
            rulebooks = list(session.scalars(select(Rulebook).where(Rulebook.id.in_(ids))))
            for rulebook in rulebooks:
                session.delete(rulebook)
            session.commit()
            return len(rulebooks)

    # pages ---------------------------------------------------------------------
    def add_pages(self, rulebook_id: str, pages: Sequence[PageRecord]) -> None:
        with self._session() as session:
            session.add_all(
                RulebookPage(
                    rulebook_id=rulebook_id,
                    page_number=page.page_number,
                    document_id=page.document_id,
                    text_length=page.text_length,
                )
                for page in pages
            )
            session.commit()

    def list_pages(self, rulebook_id: str | Iterable[str]) -> list[RulebookPage]:
        ids = [rulebook_id] if isinstance(rulebook_id, str) else list(rulebook_id)
        if not ids:
            return []
        with self._session() as session:
            statement = (
                select(RulebookPage)
                .where(RulebookPage.rulebook_id.in_(ids))
                .order_by(RulebookPage.rulebook_id, RulebookPage.page_number)
            )
            return list(session.scalars(statement))

    def pages_for_documents(self, rulebook_id: str, document_ids: Iterable[str]) -> list[RulebookPage]:
        ids = list(document_ids)
        if not ids:
            return []
        with self._session() as session:
            statement = (
                select(RulebookPage)
                .where(RulebookPage.rulebook_id == rulebook_id)
                .where(RulebookPage.document_id.in_(ids))
            )
            return list(session.scalars(statement))
