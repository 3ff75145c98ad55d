# =============================================================================
# Document Store — PostgreSQL + pgvector
# =============================================================================
#
# Persists documents and their chunks and exposes similarity search over
# chunk embeddings. Ranking happens inside PostgreSQL (pgvector cosine
# distance); this module only builds the queries and validates what comes
# back.
#
# Mixed sync/async interface:
# - upsert_document() / replace_chunks() are sync → called by ingestion
#   (CLI, Celery worker)
# - search() / get_documents() are async → called by the FastAPI query path
#
# CHUNK REPLACEMENT:
# replace_chunks() deletes the old set and inserts the new one inside a
# single transaction. Concurrent readers see the old set until commit and
# the new set after it, never an empty set in between.
#
# BOUNDARY VALIDATION:
# Rows are validated into DocumentRecord / RetrievalMatch. Database errors
# and malformed rows both raise UpstreamServiceError("store", ...).
#
# ARCHITECTURE:
#   DocumentStore (Protocol)
#   └── PgVectorStore
#       ├── upsert_document() — INSERT ... ON CONFLICT (url) DO UPDATE
#       ├── replace_chunks()  — DELETE + INSERT, one transaction
#       ├── search()          — 1 - cosine_distance > threshold, top N
#       └── get_documents()   — batched lookup by id
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from tutor.config import Settings
from tutor.db.engine import (
    build_async_engine,
    build_async_session_factory,
    build_sync_engine,
    build_sync_session_factory,
    init_db,
    session_scope,
)
from tutor.db.models import Chunk, Document
from tutor.errors import UpstreamServiceError
from tutor.models.records import ChunkRecord, DocumentRecord, RetrievalMatch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class DocumentStore(Protocol):
    """Persistence and similarity search used by both pipelines."""

    def upsert_document(self, url: str, title: str | None) -> DocumentRecord:
        """Insert the document for `url`, or reuse it and refresh its title."""
        ...

    def replace_chunks(
        self, document_id: int, chunks: Sequence[ChunkRecord],
    ) -> int:
        """Swap the document's whole chunk set for `chunks`. Returns the count."""
        ...

    async def search(
        self,
        query_embedding: list[float],
        similarity_threshold: float,
        max_count: int,
    ) -> list[RetrievalMatch]:
        """Chunks with similarity above threshold, best first, at most max_count."""
        ...

    async def get_documents(
        self, document_ids: Iterable[int],
    ) -> dict[int, DocumentRecord]:
        """Batched lookup. Unknown ids are simply absent from the result."""
        ...


# ---------------------------------------------------------------------------
# Implementation: pgvector
# ---------------------------------------------------------------------------


class PgVectorStore:
    """
    pgvector-backed document store.

    Engines are created lazily on first use: the API process never opens
    a psycopg2 pool, and the ingestion process never opens an asyncpg pool.
    """

    def __init__(
        self,
        database_url: str,
        database_url_sync: str,
        echo: bool = False,
    ) -> None:
        self._database_url = database_url
        self._database_url_sync = database_url_sync
        self._echo = echo
        self._async_engine = None
        self._async_session_factory = None
        self._sync_engine = None
        self._sync_session_factory = None

    @classmethod
    def from_settings(cls, settings: Settings) -> PgVectorStore:
        return cls(
            database_url=settings.database_url,
            database_url_sync=settings.database_url_sync,
            echo=settings.debug,
        )

    # --- Engine management ---

    def _get_async_session_factory(self):
        if self._async_session_factory is None:
            self._async_engine = build_async_engine(self._database_url, self._echo)
            self._async_session_factory = build_async_session_factory(
                self._async_engine,
            )
        return self._async_session_factory

    def _get_sync_session_factory(self):
        if self._sync_session_factory is None:
            self._sync_engine = build_sync_engine(self._database_url_sync, self._echo)
            self._sync_session_factory = build_sync_session_factory(
                self._sync_engine,
            )
        return self._sync_session_factory

    def init_schema(self) -> None:
        self._get_sync_session_factory()
        init_db(self._sync_engine)

    def close(self) -> None:
        if self._sync_engine is not None:
            self._sync_engine.dispose()
            self._sync_engine = None
            self._sync_session_factory = None

    async def aclose(self) -> None:
        if self._async_engine is not None:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None

    # --- Ingestion (sync) ---

    def upsert_document(self, url: str, title: str | None) -> DocumentRecord:
        stmt = (
            pg_insert(Document)
            .values(url=url, title=title)
            .on_conflict_do_update(
                index_elements=[Document.url],
                set_={"title": title, "updated_at": func.now()},
            )
            .returning(Document.id, Document.url, Document.title)
        )

        try:
            with session_scope(self._get_sync_session_factory()) as session:
                row = session.execute(stmt).one()
        except SQLAlchemyError as e:
            raise UpstreamServiceError("store", f"upsert failed for {url}: {e}") from e

        record = _validate_document(row._mapping)
        logger.info("[doc] Upserted document id=%d url=%s", record.id, url)
        return record

    def replace_chunks(
        self, document_id: int, chunks: Sequence[ChunkRecord],
    ) -> int:
        try:
            with session_scope(self._get_sync_session_factory()) as session:
                deleted = session.execute(
                    delete(Chunk).where(Chunk.document_id == document_id)
                ).rowcount
                session.add_all(
                    Chunk(
                        document_id=document_id,
                        content=chunk.content,
                        embedding=chunk.embedding,
                        chunk_index=chunk.chunk_index,
                    )
                    for chunk in chunks
                )
        except SQLAlchemyError as e:
            raise UpstreamServiceError(
                "store", f"chunk replacement failed for document {document_id}: {e}",
            ) from e

        logger.info(
            "[chunks] Replaced %d old chunks with %d new for document_id=%d",
            deleted or 0, len(chunks), document_id,
        )
        return len(chunks)

    # --- Query (async) ---

    async def search(
        self,
        query_embedding: list[float],
        similarity_threshold: float,
        max_count: int,
    ) -> list[RetrievalMatch]:
        """
        Cosine similarity search.

        pgvector's cosine_distance() is in [0, 2]; similarity is
        1 - distance. "similarity > threshold" is expressed as
        "distance < 1 - threshold" so the ORDER BY and WHERE share one
        expression.
        """
        distance = Chunk.embedding.cosine_distance(query_embedding)
        stmt = (
            select(
                Chunk.document_id,
                Chunk.content,
                (1 - distance).label("score"),
            )
            .where(distance < 1 - similarity_threshold)
            .order_by(distance)
            .limit(max_count)
        )

        try:
            async with self._get_async_session_factory()() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise UpstreamServiceError("store", f"similarity search failed: {e}") from e

        logger.debug(
            "Similarity search returned %d rows (threshold=%.3f, max=%d)",
            len(rows), similarity_threshold, max_count,
        )
        return validate_matches(dict(row._mapping) for row in rows)

    async def get_documents(
        self, document_ids: Iterable[int],
    ) -> dict[int, DocumentRecord]:
        ids = sorted(set(document_ids))
        if not ids:
            return {}

        stmt = select(Document.id, Document.url, Document.title).where(
            Document.id.in_(ids)
        )

        try:
            async with self._get_async_session_factory()() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise UpstreamServiceError("store", f"document lookup failed: {e}") from e

        documents = [_validate_document(row._mapping) for row in rows]
        return {doc.id: doc for doc in documents}


# ---------------------------------------------------------------------------
# Boundary Validation
# ---------------------------------------------------------------------------


def validate_matches(rows: Iterable[dict]) -> list[RetrievalMatch]:
    """
    Validate raw search rows and return them best-first.

    Raises:
        UpstreamServiceError: A row is missing a field or has the wrong type.
    """
    try:
        matches = [RetrievalMatch.model_validate(row) for row in rows]
    except ValidationError as e:
        raise UpstreamServiceError("store", f"malformed search result: {e}") from e
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def _validate_document(row) -> DocumentRecord:
    try:
        return DocumentRecord.model_validate(dict(row))
    except ValidationError as e:
        raise UpstreamServiceError("store", f"malformed document row: {e}") from e
