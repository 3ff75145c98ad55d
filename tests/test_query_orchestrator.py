# =============================================================================
# Unit Tests — Query Orchestrator
# =============================================================================
#
# Runs the real LangGraph pipeline against in-memory fakes for the
# embedding service, document store and generative text service.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from tutor.agents.context import NOT_ENOUGH_INFORMATION_MESSAGE, REFUSAL_MESSAGE
from tutor.agents.orchestrator import QueryOrchestrator, QueryOutcome
from tutor.errors import UpstreamServiceError, UpstreamTimeoutError
from tutor.models.records import Citation, DocumentRecord, RetrievalMatch
from tutor.services.guardrails import ETF_FOLLOW_UPS, GENERIC_FOLLOW_UPS
from tutor.services.llm import LLMResponse


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmbedder:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.error = error

    async def aembed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return [0.1, 0.2, 0.3]


class SlowEmbedder:
    """Embeds after `delay` seconds, recording whether it was cancelled."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.finished = False
        self.cancelled = False

    async def aembed(self, text: str) -> list[float]:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        self.finished = True
        return [0.1, 0.2, 0.3]


class FakeStore:
    def __init__(
        self,
        matches: list[RetrievalMatch] | None = None,
        documents: dict[int, DocumentRecord] | None = None,
        search_error: Exception | None = None,
    ) -> None:
        self.matches = matches or []
        self.documents = documents or {}
        self.search_error = search_error
        self.search_calls: list[tuple] = []

    async def search(self, query_embedding, similarity_threshold, max_count):
        self.search_calls.append((query_embedding, similarity_threshold, max_count))
        if self.search_error:
            raise self.search_error
        return self.matches[:max_count]

    async def get_documents(self, document_ids):
        return {i: self.documents[i] for i in document_ids if i in self.documents}


class FakeLLM:
    def __init__(
        self,
        content: str = "An ETF is a fund that trades on an exchange.",
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.content = content
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return LLMResponse(
            content=self.content, model="fake-model", input_tokens=100, output_tokens=50,
        )


class AlwaysAdvice:
    def is_advice_query(self, query: str) -> bool:
        return True


def _match(document_id: int, score: float) -> RetrievalMatch:
    return RetrievalMatch(
        document_id=document_id,
        content=f"Chunk from document {document_id} scored {score}.",
        score=score,
    )


def _docs(*ids: int) -> dict[int, DocumentRecord]:
    return {
        i: DocumentRecord(id=i, url=f"https://example.com/{i}", title=None)
        for i in ids
    }


def _orchestrator(embedder=None, store=None, llm=None, **kwargs) -> QueryOrchestrator:
    return QueryOrchestrator(
        embedder=embedder or FakeEmbedder(),
        store=store or FakeStore(),
        llm=llm or FakeLLM(),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Refused
# ---------------------------------------------------------------------------


class TestRefused:
    def test_advice_query_is_refused_without_external_calls(self):
        embedder, store, llm = FakeEmbedder(), FakeStore(), FakeLLM()
        orchestrator = _orchestrator(embedder, store, llm)

        result = _run(orchestrator.answer("Should I buy Nifty ETF now?"))

        assert result.outcome is QueryOutcome.REFUSED
        assert result.safe is False
        assert result.answer == REFUSAL_MESSAGE
        assert result.citations == []
        assert result.follow_ups == list(ETF_FOLLOW_UPS)
        assert embedder.calls == []
        assert store.search_calls == []
        assert llm.calls == []

    def test_invest_in_gold_is_refused_without_external_calls(self):
        embedder, store, llm = FakeEmbedder(), FakeStore(), FakeLLM()
        orchestrator = _orchestrator(embedder, store, llm)

        result = _run(orchestrator.answer("Should I invest in gold now?"))

        assert result.outcome is QueryOutcome.REFUSED
        assert result.safe is False
        assert result.citations == []
        assert result.follow_ups == list(GENERIC_FOLLOW_UPS)
        assert embedder.calls == []
        assert store.search_calls == []
        assert llm.calls == []

    def test_injected_classifier_is_used(self):
        llm = FakeLLM()
        orchestrator = _orchestrator(llm=llm, classifier=AlwaysAdvice())

        result = _run(orchestrator.answer("What is inflation?"))

        assert result.outcome is QueryOutcome.REFUSED
        assert llm.calls == []


# ---------------------------------------------------------------------------
# Unanswerable
# ---------------------------------------------------------------------------


class TestUnanswerable:
    def test_no_matches_returns_fallback_without_generation(self):
        llm = FakeLLM()
        orchestrator = _orchestrator(store=FakeStore(matches=[]), llm=llm)

        result = _run(orchestrator.answer("What is inflation?"))

        assert result.outcome is QueryOutcome.UNANSWERABLE
        assert result.safe is True
        assert result.answer == NOT_ENOUGH_INFORMATION_MESSAGE
        assert result.citations == []
        assert result.follow_ups == list(GENERIC_FOLLOW_UPS)
        assert llm.calls == []


# ---------------------------------------------------------------------------
# Answered
# ---------------------------------------------------------------------------


class TestAnswered:
    def _store(self) -> FakeStore:
        return FakeStore(
            matches=[_match(1, 0.9), _match(2, 0.8), _match(1, 0.7), _match(3, 0.6), _match(4, 0.5)],
            documents=_docs(1, 2, 3, 4),
        )

    def test_answer_with_three_citations(self):
        orchestrator = _orchestrator(store=self._store())

        result = _run(orchestrator.answer("What is an ETF?"))

        assert result.outcome is QueryOutcome.ANSWERED
        assert result.safe is True
        assert result.answer == "An ETF is a fund that trades on an exchange."
        assert result.model == "fake-model"
        assert result.citations == [
            Citation(label="Source 1", url="https://example.com/1"),
            Citation(label="Source 2", url="https://example.com/2"),
            Citation(label="Source 3", url="https://example.com/1"),
        ]
        assert result.follow_ups == list(ETF_FOLLOW_UPS)

    def test_search_uses_configured_threshold_and_count(self):
        store = self._store()
        orchestrator = _orchestrator(
            store=store, similarity_threshold=0.2, max_matches=2,
        )

        _run(orchestrator.answer("What is an ETF?"))

        assert store.search_calls == [([0.1, 0.2, 0.3], 0.2, 2)]

    def test_prompt_contains_ranked_context(self):
        llm = FakeLLM()
        orchestrator = _orchestrator(store=self._store(), llm=llm, audience="new investors")

        _run(orchestrator.answer("What is an ETF?"))

        assert len(llm.calls) == 1
        call = llm.calls[0]
        user_message = call["messages"][0]["content"]
        assert call["messages"][0]["role"] == "user"
        assert user_message.startswith("User question:\nWhat is an ETF?")
        assert "Source 1:\nChunk from document 1 scored 0.9." in user_message
        assert "Source 5:\nChunk from document 4 scored 0.5." in user_message
        assert "new investors" in call["system"]

    def test_missing_document_drops_citation(self):
        store = self._store()
        store.documents = _docs(1, 3, 4)
        orchestrator = _orchestrator(store=store)

        result = _run(orchestrator.answer("What is an ETF?"))

        assert [c.label for c in result.citations] == ["Source 1", "Source 3"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_embedding_failure(self):
        orchestrator = _orchestrator(embedder=FakeEmbedder(error=RuntimeError("boom")))

        with pytest.raises(UpstreamServiceError) as exc_info:
            _run(orchestrator.answer("What is an ETF?"))

        assert exc_info.value.service == "embedding"

    def test_store_error_passes_through(self):
        error = UpstreamServiceError("store", "connection refused")
        orchestrator = _orchestrator(store=FakeStore(search_error=error))

        with pytest.raises(UpstreamServiceError) as exc_info:
            _run(orchestrator.answer("What is an ETF?"))

        assert exc_info.value is error

    def test_generation_failure(self):
        store = FakeStore(matches=[_match(1, 0.9)], documents=_docs(1))
        orchestrator = _orchestrator(store=store, llm=FakeLLM(error=RuntimeError("overloaded")))

        with pytest.raises(UpstreamServiceError) as exc_info:
            _run(orchestrator.answer("What is an ETF?"))

        assert exc_info.value.service == "generation"

    def test_timeout(self):
        store = FakeStore(matches=[_match(1, 0.9)], documents=_docs(1))
        orchestrator = _orchestrator(
            store=store, llm=FakeLLM(delay=5.0), timeout_seconds=0.05,
        )

        with pytest.raises(UpstreamTimeoutError):
            _run(orchestrator.answer("What is an ETF?"))

    def test_timeout_cancels_in_flight_embedding(self):
        embedder = SlowEmbedder(delay=1.0)
        orchestrator = _orchestrator(embedder=embedder, timeout_seconds=0.1)

        async def answer_then_wait():
            with pytest.raises(UpstreamTimeoutError):
                await orchestrator.answer("What is an ETF?")
            # Give an uncancelled call time to complete.
            await asyncio.sleep(1.2)

        _run(answer_then_wait())

        assert embedder.cancelled is True
        assert embedder.finished is False

    def test_concurrent_queries_are_independent(self):
        store = FakeStore(matches=[_match(1, 0.9)], documents=_docs(1))
        orchestrator = _orchestrator(store=store)

        async def both():
            return await asyncio.gather(
                orchestrator.answer("What is an ETF?"),
                orchestrator.answer("Should I sell my shares?"),
            )

        answered, refused = _run(both())

        assert answered.outcome is QueryOutcome.ANSWERED
        assert refused.outcome is QueryOutcome.REFUSED
        assert refused.citations == []
