"""SQLAlchemy ORM models for rulebooks and their page documents."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class RulebookStatus(str, enum.Enum):
    PENDING_INGEST = "pending_ingest"
    INGESTING = "ingesting"
    READY = "ready"
    ERROR = "error"


class Base(DeclarativeBase):
    pass


class Rulebook(Base):
    """One uploaded rulebook and its ingestion lifecycle."""

    __tablename__ = "rulebooks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[RulebookStatus] = mapped_column(
        Enum(RulebookStatus, values_callable=lambda enum_cls: [item.value for item in enum_cls]),
        default=RulebookStatus.PENDING_INGEST,
        nullable=False,
    )
    ingested_pages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    index_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    game_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    pages: Mapped[list["RulebookPage"]] = relationship(
        back_populates="rulebook",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RulebookPage(Base):
    """A single page stored as an independently addressable index document."""

    __tablename__ = "rulebook_pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rulebook_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("rulebooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    text_length: Mapped[int | None] = mapped_column(Integer, nullable=True)

    rulebook: Mapped[Rulebook] = relationship(back_populates="pages")

    __table_args__ = (
        UniqueConstraint("rulebook_id", "page_number", name="uq_rulebook_page_number"),
    )
