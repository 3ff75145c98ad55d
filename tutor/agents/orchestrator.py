# =============================================================================
# Query Orchestrator — LangGraph Answering Pipeline
# =============================================================================
#
# Wires the per-query state machine into a LangGraph StateGraph:
#
#   START ──▶ classify ──┬──▶ END                         (Refused)
#                        └──▶ embed ──▶ retrieve ──┬──▶ END   (Unanswerable)
#                                                  └──▶ assemble ──▶ generate
#                                                       ──▶ cite ──▶ END
#                                                                 (Answered)
#
# Collaborators (embedder, store, LLM, classifier) are passed in at
# construction and the graph is compiled once per orchestrator. Nodes are
# bound methods, so the compiled graph closes over this instance's
# collaborators and nothing else. One orchestrator serves all concurrent
# requests; per-request data lives only in the graph state.
#
# FAILURES: any embedding, store or generation failure raises
# UpstreamServiceError for this request only. The whole graph runs under
# `timeout_seconds`; on expiry outstanding awaits are cancelled, including
# in-flight embedding and completion HTTP calls, and UpstreamTimeoutError
# is raised. There is no partial answer.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from tutor.agents.context import (
    DEFAULT_AUDIENCE,
    NOT_ENOUGH_INFORMATION_MESSAGE,
    REFUSAL_MESSAGE,
    build_citations,
    build_system_prompt,
    build_user_message,
    distinct_document_ids,
    format_context,
)
from tutor.config import Settings
from tutor.errors import UpstreamServiceError, UpstreamTimeoutError
from tutor.models.records import Citation, DocumentRecord, RetrievalMatch
from tutor.services.embedder import QueryEmbedder
from tutor.services.guardrails import (
    AdviceClassifier,
    KeywordAdviceClassifier,
    suggest_follow_ups,
)
from tutor.services.llm import LLMProvider
from tutor.services.vectorstore import DocumentStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result Types
# ---------------------------------------------------------------------------


class QueryOutcome(str, enum.Enum):
    """Terminal state of one query."""

    REFUSED = "refused"            # Advice-seeking, nothing retrieved
    UNANSWERABLE = "unanswerable"  # No chunk above the similarity threshold
    ANSWERED = "answered"          # Generated answer with citations


@dataclass
class QueryResult:
    answer: str
    safe: bool
    outcome: QueryOutcome
    citations: list[Citation] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)
    model: str | None = None


# ---------------------------------------------------------------------------
# Graph State Schema
# ---------------------------------------------------------------------------


class QueryState(TypedDict, total=False):
    """
    State flowing through the graph. total=False so each node returns only
    the keys it sets.
    """

    # --- Input ---
    query: str

    # --- Set by nodes ---
    outcome: QueryOutcome
    follow_ups: list[str]
    query_embedding: list[float]
    matches: list[RetrievalMatch]
    documents: dict[int, DocumentRecord]
    context_text: str

    # --- Output ---
    answer: str
    model: str
    citations: list[Citation]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class QueryOrchestrator:
    """Classify → Embed → Retrieve → Assemble → Generate → Cite."""

    def __init__(
        self,
        embedder: QueryEmbedder,
        store: DocumentStore,
        llm: LLMProvider,
        classifier: AdviceClassifier | None = None,
        *,
        similarity_threshold: float = 0.05,
        max_matches: int = 5,
        max_citations: int = 3,
        timeout_seconds: float | None = 60.0,
        audience: str = DEFAULT_AUDIENCE,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._llm = llm
        self._classifier = classifier or KeywordAdviceClassifier()
        self._similarity_threshold = similarity_threshold
        self._max_matches = max_matches
        self._max_citations = max_citations
        self._timeout_seconds = timeout_seconds
        self._system_prompt = build_system_prompt(audience)
        self._graph = self._build_graph()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        embedder: QueryEmbedder,
        store: DocumentStore,
        llm: LLMProvider,
        classifier: AdviceClassifier | None = None,
    ) -> QueryOrchestrator:
        return cls(
            embedder=embedder,
            store=store,
            llm=llm,
            classifier=classifier,
            similarity_threshold=settings.retrieval_similarity_threshold,
            max_matches=settings.retrieval_top_k,
            max_citations=settings.max_citations,
            timeout_seconds=settings.query_timeout_seconds,
            audience=settings.prompt_audience,
        )

    # --- Public API ---

    async def answer(self, query: str) -> QueryResult:
        """
        Run the graph for one question.

        Raises:
            UpstreamServiceError: An external call failed.
            UpstreamTimeoutError: The pipeline exceeded timeout_seconds.
        """
        logger.info("Answering query='%s'", query[:80])

        try:
            final: QueryState = await asyncio.wait_for(
                self._graph.ainvoke({"query": query}),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as e:
            logger.error(
                "Query timed out after %ss: '%s'",
                self._timeout_seconds, query[:80],
            )
            raise UpstreamTimeoutError(self._timeout_seconds) from e

        outcome = final["outcome"]
        logger.info(
            "Query complete: outcome=%s, citations=%d",
            outcome.value, len(final.get("citations", [])),
        )

        return QueryResult(
            answer=final["answer"],
            safe=outcome is not QueryOutcome.REFUSED,
            outcome=outcome,
            citations=final.get("citations", []),
            follow_ups=final.get("follow_ups", []),
            model=final.get("model"),
        )

    # --- Graph Assembly ---

    def _build_graph(self):
        builder = StateGraph(QueryState)
        builder.add_node("classify", self._classify_node)
        builder.add_node("embed", self._embed_node)
        builder.add_node("retrieve", self._retrieve_node)
        builder.add_node("assemble", self._assemble_node)
        builder.add_node("generate", self._generate_node)
        builder.add_node("cite", self._cite_node)

        builder.add_edge(START, "classify")
        builder.add_conditional_edges(
            "classify", _route_after_classify, {"end": END, "embed": "embed"},
        )
        builder.add_edge("embed", "retrieve")
        builder.add_conditional_edges(
            "retrieve", _route_after_retrieve, {"end": END, "assemble": "assemble"},
        )
        builder.add_edge("assemble", "generate")
        builder.add_edge("generate", "cite")
        builder.add_edge("cite", END)

        return builder.compile()

    # --- Node Functions ---
    # Each node receives the full state and returns a partial update.

    async def _classify_node(self, state: QueryState) -> dict:
        query = state["query"]
        follow_ups = suggest_follow_ups(query)

        if self._classifier.is_advice_query(query):
            logger.info("Guardrail refused advice-seeking query")
            return {
                "outcome": QueryOutcome.REFUSED,
                "answer": REFUSAL_MESSAGE,
                "citations": [],
                "follow_ups": follow_ups,
            }

        return {"follow_ups": follow_ups}

    async def _embed_node(self, state: QueryState) -> dict:
        try:
            embedding = await self._embedder.aembed(state["query"])
        except UpstreamServiceError:
            raise
        except Exception as e:
            raise UpstreamServiceError("embedding", str(e)) from e

        return {"query_embedding": embedding}

    async def _retrieve_node(self, state: QueryState) -> dict:
        try:
            matches = await self._store.search(
                query_embedding=state["query_embedding"],
                similarity_threshold=self._similarity_threshold,
                max_count=self._max_matches,
            )
        except UpstreamServiceError:
            raise
        except Exception as e:
            raise UpstreamServiceError("store", str(e)) from e

        logger.info(
            "Retrieved %d matches (threshold=%.3f, max=%d)",
            len(matches), self._similarity_threshold, self._max_matches,
        )

        if not matches:
            return {
                "matches": [],
                "outcome": QueryOutcome.UNANSWERABLE,
                "answer": NOT_ENOUGH_INFORMATION_MESSAGE,
                "citations": [],
            }

        return {"matches": matches}

    async def _assemble_node(self, state: QueryState) -> dict:
        matches = state["matches"]

        try:
            documents = await self._store.get_documents(
                distinct_document_ids(matches),
            )
        except UpstreamServiceError:
            raise
        except Exception as e:
            raise UpstreamServiceError("store", str(e)) from e

        return {
            "context_text": format_context(matches),
            "documents": documents,
        }

    async def _generate_node(self, state: QueryState) -> dict:
        user_message = build_user_message(state["query"], state["context_text"])

        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": user_message}],
                system=self._system_prompt,
            )
        except Exception as e:
            raise UpstreamServiceError("generation", str(e)) from e

        if not isinstance(response.content, str):
            raise UpstreamServiceError("generation", "response content is not text")

        logger.info(
            "Generated answer: model=%s, tokens=%d+%d",
            response.model, response.input_tokens, response.output_tokens,
        )
        return {"answer": response.content, "model": response.model}

    async def _cite_node(self, state: QueryState) -> dict:
        citations = build_citations(
            state["matches"], state["documents"], self._max_citations,
        )
        return {"citations": citations, "outcome": QueryOutcome.ANSWERED}


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def _route_after_classify(state: QueryState) -> str:
    return "end" if state.get("outcome") is QueryOutcome.REFUSED else "embed"


def _route_after_retrieve(state: QueryState) -> str:
    return "end" if state.get("outcome") is QueryOutcome.UNANSWERABLE else "assemble"
