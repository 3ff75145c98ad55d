# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐       ┌──────────────────────────────────┐
# │  documents       │       │  chunks                          │
# ├──────────────────┤       ├──────────────────────────────────┤
# │ id (PK)          │──1:N─▶│ id (PK)                          │
# │ url (unique)     │       │ document_id (FK → documents.id)  │
# │ title (nullable) │       │ content (text)                   │
# │ created_at       │       │ embedding (vector(N))            │
# │ updated_at       │       │ chunk_index (int)                │
# └──────────────────┘       │ created_at                       │
#                            └──────────────────────────────────┘
#
# INVARIANTS:
# - One document row per URL (unique constraint, upserted by URL).
# - (document_id, chunk_index) is unique; indices are 0..n-1 for the
#   latest ingestion only. Chunk sets are replaced whole, never edited.
# - Deleting a document cascades to its chunks.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from tutor.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Document(Base):
    """A source page that has been ingested at least once."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Canonical source URL; the identity used for re-ingestion
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)

    # Page <title>, refreshed on every ingestion (falls back to the URL)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # passive_deletes lets the database ON DELETE CASCADE remove chunks
    # without SQLAlchemy loading them first.
    chunks: Mapped[list["Chunk"]] = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, url='{self.url}')>"


class Chunk(Base):
    """
    A contiguous slice of a document's text with its embedding.

    Retrieval ranks these by cosine similarity between `embedding` and
    the query vector.
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Dimensionality is fixed by the embedding model (EMBEDDING_DIMENSIONS)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(get_settings().embedding_dimensions),
        nullable=False,
    )

    # 0-indexed position within the document
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<Chunk(id={self.id}, document_id={self.document_id}, "
            f"index={self.chunk_index})>"
        )
