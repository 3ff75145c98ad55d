# =============================================================================
# Page Fetcher — httpx
# =============================================================================
#
# Downloads one source page for ingestion. Sync, because ingestion runs
# serially in the CLI or a Celery worker.
#
# One httpx.Client is reused for the whole ingestion run so connections to
# the same host are pooled. Use the fetcher as a context manager, or call
# close() when done.
# =============================================================================

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class PageFetcher(Protocol):
    """Anything that can turn a URL into raw HTML."""

    def fetch(self, url: str) -> str:
        ...


class HttpFetcher:
    """
    httpx-backed fetcher with a fixed timeout and bot User-Agent.

    Non-2xx responses raise httpx.HTTPStatusError; network failures raise
    httpx.RequestError. The ingestion orchestrator records both as a failed
    URL and moves on.
    """

    def __init__(
        self,
        timeout_seconds: float,
        user_agent: str,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def fetch(self, url: str) -> str:
        logger.info("[fetch] %s", url)
        response = self._client.get(url)
        response.raise_for_status()
        return response.text

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
