# =============================================================================
# Context Assembly — Context Block, Prompt and Citations
# =============================================================================
#
# Turns ranked retrieval matches into:
#   1. a context block, "Source 1:", "Source 2:", ... in rank order, which
#      is the only factual basis the model may use
#   2. the system prompt + user message sent to the generative service
#   3. citations for the top-ranked matches, labelled by rank
#
# Source numbers in the context block and in citation labels are the
# same rank, so "Source 2" means the same chunk in the prompt and in the
# citation list.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from tutor.models.records import Citation, DocumentRecord, RetrievalMatch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fixed Messages
# ---------------------------------------------------------------------------

REFUSAL_MESSAGE = (
    "I'm here only to explain concepts, not to give investment advice.\n\n"
    "I can help you understand things like ETFs, mutual funds, risk, "
    "diversification, etc., but I cannot tell you what to buy, sell, or "
    "how much to invest."
)

NOT_ENOUGH_INFORMATION_MESSAGE = (
    "I don't have enough verified information in my sources to answer "
    "this confidently.\n\n"
    "Try asking about concepts like ETFs, mutual funds, IPOs, basic stock "
    "market terms, etc."
)

UNKNOWN_ANSWER_PHRASE = "I don't know based on my verified sources."

DISCLAIMER_SENTENCE = "This is educational only, not investment advice."


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------
# 1. Role
# 2. Grounding (context only, fixed fallback phrase)
# 3. No recommendations
# 4. Three-part answer format
# 5. Mandatory closing sentence
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are an investment education tutor for {audience}.\n\n"
    "You must:\n"
    "- ONLY use the provided context.\n"
    "- If the answer is not clearly in the context, say: "
    f'"{UNKNOWN_ANSWER_PHRASE}"\n'
    "- Never recommend what to buy or sell, or how much to invest.\n"
    "- Answer in simple, clear English.\n"
    "- Format your answer as:\n\n"
    "1) A 2-3 line explanation.\n"
    "2) 3 bullet points with key ideas.\n"
    "3) One simple example (if relevant).\n\n"
    "End with this sentence exactly:\n"
    f'"{DISCLAIMER_SENTENCE}"'
)

DEFAULT_AUDIENCE = "retail investors"


def build_system_prompt(audience: str = DEFAULT_AUDIENCE) -> str:
    return SYSTEM_PROMPT.format(audience=audience)


def build_user_message(question: str, context_text: str) -> str:
    return (
        f"User question:\n{question}\n\n"
        f"Context from trusted sources:\n{context_text}"
    )


# ---------------------------------------------------------------------------
# Context & Citations
# ---------------------------------------------------------------------------


def format_context(matches: Sequence[RetrievalMatch]) -> str:
    """
    Label each match "Source N" (1-indexed by rank) and join them.

    Example output:
        Source 1:
        An ETF is a basket of securities that trades on an exchange...

        Source 2:
        Expense ratios are charged as a percentage of assets...
    """
    return "\n\n".join(
        f"Source {rank}:\n{match.content}"
        for rank, match in enumerate(matches, 1)
    )


def distinct_document_ids(matches: Sequence[RetrievalMatch]) -> list[int]:
    """Document ids in first-seen rank order, without repeats."""
    return list(dict.fromkeys(match.document_id for match in matches))


def build_citations(
    matches: Sequence[RetrievalMatch],
    documents: Mapping[int, DocumentRecord],
    max_citations: int = 3,
) -> list[Citation]:
    """
    Cite the top `max_citations` matches by their document URL.

    Labels keep the match's rank, so they line up with the "Source N"
    labels in the context block. A match whose document no longer exists
    (deleted between retrieval and lookup) is left out rather than cited
    with an empty URL.
    """
    citations: list[Citation] = []
    for rank, match in enumerate(matches[:max_citations], 1):
        document = documents.get(match.document_id)
        if document is None:
            logger.warning(
                "No document found for match rank=%d document_id=%d; "
                "omitting citation",
                rank, match.document_id,
            )
            continue
        citations.append(Citation(label=f"Source {rank}", url=document.url))
    return citations
