# =============================================================================
# Ingestion Orchestrator — Source URLs → Searchable Chunks
# =============================================================================
#
# For each URL, sequentially:
#   1. Fetch the page (HTTP GET, bot User-Agent, timeout)
#   2. Extract title + main text (BeautifulSoup)
#   3. Skip if the text is shorter than min_document_chars
#   4. Upsert the document row (keyed by URL, title refreshed)
#   5. Chunk the text (overlapping character windows)
#   6. Embed every chunk, pacing calls through the injected rate limiter
#   7. Replace the document's chunk set in one transaction
#
# Embedding happens BEFORE the old chunks are touched, so a failure in
# step 6 leaves the previous chunk set in place. Re-ingesting the same URL
# never accumulates duplicate chunks.
#
# FAILURE ISOLATION: one URL failing (fetch error, embedding error, store
# error) is logged and recorded in the report; the run continues with the
# next URL. Only the process-level setup (configuration) is fatal.
# =============================================================================

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from tutor.config import Settings
from tutor.errors import ContentTooShortError
from tutor.models.records import ChunkRecord
from tutor.services.chunker import chunk_text
from tutor.services.embedder import Embedder, OpenAIEmbedder
from tutor.services.extractor import extract_text
from tutor.services.fetcher import HttpFetcher, PageFetcher
from tutor.services.rate_limiter import RateLimiter, build_rate_limiter
from tutor.services.vectorstore import DocumentStore, PgVectorStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Report Types
# ---------------------------------------------------------------------------


class IngestionStatus(str, enum.Enum):
    INGESTED = "ingested"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class IngestionOutcome:
    url: str
    status: IngestionStatus
    document_id: int | None = None
    chunk_count: int = 0
    error: str | None = None


@dataclass
class IngestionReport:
    """Per-URL outcomes for one ingestion run, in input order."""

    outcomes: list[IngestionOutcome] = field(default_factory=list)

    def _count(self, status: IngestionStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def ingested(self) -> int:
        return self._count(IngestionStatus.INGESTED)

    @property
    def skipped(self) -> int:
        return self._count(IngestionStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(IngestionStatus.FAILED)

    def to_dict(self) -> dict:
        """JSON-safe summary, used as the Celery task result."""
        return {
            "ingested": self.ingested,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": [
                {
                    "url": o.url,
                    "status": o.status.value,
                    "document_id": o.document_id,
                    "chunk_count": o.chunk_count,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }


# ---------------------------------------------------------------------------
# Source List
# ---------------------------------------------------------------------------


def read_source_urls(path: str | Path) -> list[str]:
    """
    Read one URL per line. Blank lines and lines starting with `#` are
    ignored; surrounding whitespace is stripped.
    """
    urls = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class IngestionOrchestrator:
    """Runs the per-URL pipeline over a list of sources, one at a time."""

    def __init__(
        self,
        fetcher: PageFetcher,
        embedder: Embedder,
        store: DocumentStore,
        rate_limiter: RateLimiter,
        *,
        max_chars: int = 1200,
        overlap_chars: int = 200,
        min_chunk_chars: int = 50,
        min_document_chars: int = 200,
    ) -> None:
        self._fetcher = fetcher
        self._embedder = embedder
        self._store = store
        self._rate_limiter = rate_limiter
        self._max_chars = max_chars
        self._overlap_chars = overlap_chars
        self._min_chunk_chars = min_chunk_chars
        self._min_document_chars = min_document_chars

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: PageFetcher,
        embedder: Embedder,
        store: DocumentStore,
        rate_limiter: RateLimiter,
    ) -> IngestionOrchestrator:
        return cls(
            fetcher=fetcher,
            embedder=embedder,
            store=store,
            rate_limiter=rate_limiter,
            max_chars=settings.chunk_max_chars,
            overlap_chars=settings.chunk_overlap_chars,
            min_chunk_chars=settings.chunk_min_chars,
            min_document_chars=settings.min_document_chars,
        )

    def run(self, urls: Iterable[str]) -> IngestionReport:
        urls = list(urls)
        logger.info("Starting ingestion run: %d URLs", len(urls))

        report = IngestionReport()
        for position, url in enumerate(urls, 1):
            logger.info("[%d/%d] %s", position, len(urls), url)
            report.outcomes.append(self.ingest_url(url))

        logger.info(
            "Ingestion run complete: ingested=%d, skipped=%d, failed=%d",
            report.ingested, report.skipped, report.failed,
        )
        return report

    def ingest_url(self, url: str) -> IngestionOutcome:
        """Ingest one URL. Never raises; the outcome records what happened."""
        try:
            return self._ingest(url)
        except ContentTooShortError as e:
            logger.warning("[skip] %s", e)
            return IngestionOutcome(
                url=url, status=IngestionStatus.SKIPPED, error=str(e),
            )
        except Exception as e:
            logger.exception("[error] Failed to ingest %s", url)
            return IngestionOutcome(
                url=url, status=IngestionStatus.FAILED, error=str(e),
            )

    def _ingest(self, url: str) -> IngestionOutcome:
        # --- Fetch & extract ---
        html = self._fetcher.fetch(url)
        page = extract_text(html)

        if len(page.text) < self._min_document_chars:
            raise ContentTooShortError(url, len(page.text), self._min_document_chars)

        # --- Chunk ---
        pieces = chunk_text(
            page.text,
            max_chars=self._max_chars,
            overlap_chars=self._overlap_chars,
            min_chars=self._min_chunk_chars,
        )
        if not pieces:
            raise ContentTooShortError(url, len(page.text), self._min_chunk_chars)

        document = self._store.upsert_document(url, page.title or url)

        # --- Embed (all chunks before touching the stored set) ---
        records = []
        for index, piece in enumerate(pieces):
            self._rate_limiter.acquire()
            logger.debug(
                "[embed] document_id=%d chunk %d/%d (%d chars)",
                document.id, index + 1, len(pieces), len(piece),
            )
            records.append(
                ChunkRecord(
                    chunk_index=index,
                    content=piece,
                    embedding=self._embedder.embed(piece),
                )
            )

        # --- Swap ---
        count = self._store.replace_chunks(document.id, records)
        logger.info(
            "[done] %s → document_id=%d, %d chunks", url, document.id, count,
        )
        return IngestionOutcome(
            url=url,
            status=IngestionStatus.INGESTED,
            document_id=document.id,
            chunk_count=count,
        )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def run_ingestion(settings: Settings, urls: Iterable[str]) -> IngestionReport:
    """
    Build the production collaborators from settings, run one ingestion
    pass, and release the HTTP client and database pool afterwards.

    Shared by the `tutor-ingest` CLI and the Celery task.
    """
    store = PgVectorStore.from_settings(settings)
    try:
        with HttpFetcher(
            timeout_seconds=settings.fetch_timeout_seconds,
            user_agent=settings.fetch_user_agent,
        ) as fetcher:
            orchestrator = IngestionOrchestrator.from_settings(
                settings,
                fetcher=fetcher,
                embedder=OpenAIEmbedder.from_settings(settings),
                store=store,
                rate_limiter=build_rate_limiter(settings),
            )
            return orchestrator.run(urls)
    finally:
        store.close()
