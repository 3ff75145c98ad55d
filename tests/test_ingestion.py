# =============================================================================
# Unit Tests — Ingestion Orchestrator
# =============================================================================
#
# Fetcher, embedder, store and rate limiter are in-memory fakes, so the
# whole per-URL pipeline runs without network or database access.
# =============================================================================

from __future__ import annotations

import httpx

from tutor.agents.ingestion import (
    IngestionOrchestrator,
    IngestionStatus,
    read_source_urls,
)
from tutor.errors import UpstreamServiceError
from tutor.models.records import ChunkRecord, DocumentRecord

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _page(title: str | None, sentences: int, topic: str = "an exchange traded fund") -> str:
    body = " ".join(
        f"Sentence {i} describes how {topic} works in practice." for i in range(sentences)
    )
    head = f"<head><title>{title}</title></head>" if title else ""
    return f"<html>{head}<body><nav>Menu</nav><main><p>{body}</p></main></body></html>"


class FakeFetcher:
    def __init__(self, pages: dict[str, str | Exception]) -> None:
        self.pages = pages

    def fetch(self, url: str) -> str:
        page = self.pages[url]
        if isinstance(page, Exception):
            raise page
        return page


class FakeEmbedder:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.error: Exception | None = None

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return [float(len(text)), 1.0]


class InMemoryStore:
    def __init__(self) -> None:
        self.documents: dict[int, DocumentRecord] = {}
        self.chunks: dict[int, list[ChunkRecord]] = {}
        self._next_id = 1

    def upsert_document(self, url: str, title: str | None) -> DocumentRecord:
        for doc in self.documents.values():
            if doc.url == url:
                record = DocumentRecord(id=doc.id, url=url, title=title)
                break
        else:
            record = DocumentRecord(id=self._next_id, url=url, title=title)
            self._next_id += 1
        self.documents[record.id] = record
        return record

    def replace_chunks(self, document_id: int, chunks) -> int:
        self.chunks[document_id] = list(chunks)
        return len(chunks)


class CountingLimiter:
    def __init__(self) -> None:
        self.count = 0

    def acquire(self) -> None:
        self.count += 1


def _orchestrator(pages, embedder=None, store=None, limiter=None):
    return IngestionOrchestrator(
        fetcher=FakeFetcher(pages),
        embedder=embedder or FakeEmbedder(),
        store=store or InMemoryStore(),
        rate_limiter=limiter or CountingLimiter(),
    )


URL = "https://example.com/etf"


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestIngestUrl:
    def test_ingests_document_and_chunks(self):
        store, embedder, limiter = InMemoryStore(), FakeEmbedder(), CountingLimiter()
        orchestrator = _orchestrator({URL: _page("ETF Basics", 40)}, embedder, store, limiter)

        outcome = orchestrator.ingest_url(URL)

        assert outcome.status is IngestionStatus.INGESTED
        assert outcome.chunk_count > 1
        chunks = store.chunks[outcome.document_id]
        assert len(chunks) == outcome.chunk_count
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert store.documents[outcome.document_id].title == "ETF Basics"
        assert all("Menu" not in c.content for c in chunks)

    def test_every_embedding_call_is_paced(self):
        embedder, limiter = FakeEmbedder(), CountingLimiter()
        orchestrator = _orchestrator({URL: _page("ETF Basics", 40)}, embedder, limiter=limiter)

        outcome = orchestrator.ingest_url(URL)

        assert limiter.count == len(embedder.calls) == outcome.chunk_count

    def test_reingest_replaces_instead_of_duplicating(self):
        store = InMemoryStore()
        pages = {URL: _page("ETF Basics", 40)}

        first = _orchestrator(pages, store=store).ingest_url(URL)
        second = _orchestrator(pages, store=store).ingest_url(URL)

        assert first.document_id == second.document_id
        assert len(store.documents) == 1
        assert len(store.chunks[first.document_id]) == first.chunk_count == second.chunk_count

    def test_reingest_with_new_content_swaps_chunk_set(self):
        store = InMemoryStore()
        _orchestrator({URL: _page("Old", 40)}, store=store).ingest_url(URL)

        outcome = _orchestrator(
            {URL: _page("New", 10, topic="a mutual fund")}, store=store,
        ).ingest_url(URL)

        chunks = store.chunks[outcome.document_id]
        assert store.documents[outcome.document_id].title == "New"
        assert all("mutual fund" in c.content for c in chunks)

    def test_missing_title_falls_back_to_url(self):
        store = InMemoryStore()
        outcome = _orchestrator({URL: _page(None, 40)}, store=store).ingest_url(URL)

        assert store.documents[outcome.document_id].title == URL

    def test_short_page_is_skipped(self):
        store, embedder = InMemoryStore(), FakeEmbedder()
        html = "<html><body><main><p>Coming soon.</p></main></body></html>"

        outcome = _orchestrator({URL: html}, embedder, store).ingest_url(URL)

        assert outcome.status is IngestionStatus.SKIPPED
        assert "too short" in outcome.error
        assert store.documents == {}
        assert embedder.calls == []

    def test_embedding_failure_keeps_previous_chunks(self):
        store, embedder = InMemoryStore(), FakeEmbedder()
        pages = {URL: _page("ETF Basics", 40)}
        first = _orchestrator(pages, embedder, store).ingest_url(URL)
        before = list(store.chunks[first.document_id])

        embedder.error = UpstreamServiceError("embedding", "quota exceeded")
        outcome = _orchestrator(pages, embedder, store).ingest_url(URL)

        assert outcome.status is IngestionStatus.FAILED
        assert "quota exceeded" in outcome.error
        assert store.chunks[first.document_id] == before


class TestRun:
    def test_failure_does_not_stop_the_run(self):
        pages = {
            "https://example.com/down": httpx.ConnectError("connection refused"),
            URL: _page("ETF Basics", 40),
        }

        report = _orchestrator(pages).run(["https://example.com/down", URL])

        assert [o.status for o in report.outcomes] == [
            IngestionStatus.FAILED, IngestionStatus.INGESTED,
        ]
        assert (report.ingested, report.skipped, report.failed) == (1, 0, 1)

    def test_report_to_dict(self):
        report = _orchestrator({URL: _page("ETF Basics", 40)}).run([URL])

        data = report.to_dict()

        assert data["ingested"] == 1
        assert data["outcomes"][0]["url"] == URL
        assert data["outcomes"][0]["status"] == "ingested"
        assert data["outcomes"][0]["error"] is None

    def test_empty_url_list(self):
        report = _orchestrator({}).run([])
        assert report.outcomes == []


class TestReadSourceUrls:
    def test_skips_comments_and_blank_lines(self, tmp_path):
        path = tmp_path / "urls.txt"
        path.write_text(
            "# trusted sources\n"
            "https://example.com/a\n"
            "\n"
            "   https://example.com/b   \n"
            "  # indented comment\n",
            encoding="utf-8",
        )

        assert read_source_urls(path) == ["https://example.com/a", "https://example.com/b"]
