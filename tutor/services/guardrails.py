# =============================================================================
# Guardrails — Advice-Seeking Detection and Follow-Up Suggestions
# =============================================================================
#
# The tutor explains concepts; it does not tell anyone what to buy, sell
# or how much to invest. Queries matching an advice pattern are refused
# before any embedding, retrieval or generation happens.
#
# Classification is rule-based: case-insensitive substring matching
# against a fixed phrase list. Pure, deterministic, no I/O, safe to share
# across concurrent requests.
#
# The orchestrator depends on the AdviceClassifier protocol only, so a
# model-based classifier can replace KeywordAdviceClassifier without
# changes to the query pipeline.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

ADVICE_PATTERNS: tuple[str, ...] = (
    "should i buy",
    "should i sell",
    "should i invest",
    "how much should i invest",
    "best stock",
    "best etf",
    "multibagger",
    "target price",
    "price target",
    "guaranteed return",
    "will this go up",
)

ETF_FOLLOW_UPS: tuple[str, ...] = (
    "What are the risks of investing in ETFs?",
    "How are ETFs different from mutual funds?",
    "What costs do I pay when buying an ETF?",
)

MUTUAL_FUND_FOLLOW_UPS: tuple[str, ...] = (
    "What is an expense ratio in mutual funds?",
    "What is the difference between debt and equity mutual funds?",
    "How does SIP work in mutual funds?",
)

STOCK_FOLLOW_UPS: tuple[str, ...] = (
    "What factors affect a stock's price?",
    "What is the difference between trading and investing?",
    "What is market capitalization?",
)

GENERIC_FOLLOW_UPS: tuple[str, ...] = (
    "What is diversification in investing?",
    "What is the difference between ETFs and mutual funds?",
    "What is the role of risk in investing?",
)


class AdviceClassifier(Protocol):
    """Decides whether a query asks for personalised financial advice."""

    def is_advice_query(self, query: str) -> bool:
        ...


class KeywordAdviceClassifier:
    """Substring matcher over a fixed list of advice-seeking phrases."""

    def __init__(self, patterns: Iterable[str] = ADVICE_PATTERNS) -> None:
        self._patterns = tuple(p.lower() for p in patterns)

    def is_advice_query(self, query: str) -> bool:
        lowered = query.lower()
        return any(pattern in lowered for pattern in self._patterns)


_default_classifier = KeywordAdviceClassifier()


def is_advice_query(query: str) -> bool:
    """True if the query matches any of ADVICE_PATTERNS (case-insensitive)."""
    return _default_classifier.is_advice_query(query)


def suggest_follow_ups(query: str) -> list[str]:
    """
    Return three follow-up questions for the query's topic.

    Keywords are checked in priority order, and the first hit decides:
    "etf", then "mutual fund", then "stock" / "share". Anything else gets
    the generic set.
    """
    lowered = query.lower()

    if "etf" in lowered:
        return list(ETF_FOLLOW_UPS)
    if "mutual fund" in lowered:
        return list(MUTUAL_FUND_FOLLOW_UPS)
    if "stock" in lowered or "share" in lowered:
        return list(STOCK_FOLLOW_UPS)
    return list(GENERIC_FOLLOW_UPS)
