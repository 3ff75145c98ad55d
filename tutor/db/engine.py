# =============================================================================
# Database Engines & Session Management
# =============================================================================
#
# Two engines point at the same PostgreSQL database:
#
# - Async (asyncpg): request-time reads from FastAPI handlers (similarity
#   search and document lookup).
# - Sync (psycopg2): ingestion writes from the CLI and Celery workers,
#   which are synchronous.
#
# Engines are built from explicit URLs by whoever owns them (the vector
# store), never at import time, so importing this package needs no
# database driver configuration.
#
# COMMIT POLICY: session_scope() commits on clean exit and rolls back on
# any exception. Everything inside one `with session_scope(...)` block is
# one transaction.
# =============================================================================

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, sessionmaker

from tutor.db.models import Base

logger = logging.getLogger(__name__)


def build_async_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for request-time reads (asyncpg)."""
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
    )


def build_sync_engine(database_url: str, echo: bool = False) -> Engine:
    """Sync engine for ingestion writes (psycopg2)."""
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
    )


def build_async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: loaded attributes stay readable after commit,
    # outside the async context that loaded them.
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def build_sync_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional sync session.

    Usage:
        with session_scope(factory) as session:
            session.add(obj)
            # commits on exit, rolls back on exception
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create the pgvector extension and all tables if they don't exist."""
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        Base.metadata.create_all(conn)
    logger.info("Database schema ready")
