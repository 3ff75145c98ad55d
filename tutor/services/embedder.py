# =============================================================================
# Embedding Client — OpenAI-Compatible API
# =============================================================================
#
# Turns text into a fixed-length vector. Any provider exposing the OpenAI
# embeddings endpoint works (OpenAI, Gemini's OpenAI-compatible endpoint,
# DashScope, ...) by setting EMBEDDING_BASE_URL.
#
# The client is constructed explicitly and handed to the orchestrators, so
# tests substitute a fake without patching module globals.
#
# Two entry points over the same validation:
# - embed() / embed_batch(): sync, for ingestion (CLI, Celery worker)
# - aembed(): async, for the query path, so cancelling the request on
#   timeout cancels the HTTP call too
#
# No retries: both SDK clients are built with max_retries=0 and an explicit
# timeout. A failed call fails the current URL or request. Every failure,
# including a response with the wrong shape, surfaces as
# UpstreamServiceError("embedding", ...).
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import httpx
import openai
from openai import AsyncOpenAI, OpenAI

from tutor.config import Settings
from tutor.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Text → vector. Dimensionality is fixed per instance."""

    def embed(self, text: str) -> list[float]:
        ...


class QueryEmbedder(Protocol):
    """Async embedding used while answering a request."""

    async def aembed(self, text: str) -> list[float]:
        ...


class OpenAIEmbedder:
    """Embedding client backed by the OpenAI SDK."""

    def __init__(
        self,
        api_key: str,
        model: str,
        dimensions: int | None = None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        client: OpenAI | None = None,
        async_client: AsyncOpenAI | None = None,
        http_client: httpx.Client | None = None,
        async_http_client: httpx.AsyncClient | None = None,
    ) -> None:
        client_kwargs: dict = {
            "api_key": api_key,
            "max_retries": 0,
            "timeout": timeout_seconds,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        if client is None:
            _require_key(api_key)
            client = OpenAI(**client_kwargs, http_client=http_client)
        if async_client is None and api_key:
            async_client = AsyncOpenAI(**client_kwargs, http_client=async_http_client)

        self._client = client
        self._async_client = async_client
        self._model = model
        self._dimensions = dimensions

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s, timeout=%ss)",
            model, base_url or "https://api.openai.com/v1", timeout_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIEmbedder:
        return cls(
            api_key=settings.resolved_embedding_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            base_url=settings.embedding_base_url,
            timeout_seconds=settings.embedding_timeout_seconds,
        )

    def embed(self, text: str) -> list[float]:
        """Embed a single text (a chunk during ingestion)."""
        return self.embed_batch([text])[0]

    async def aembed(self, text: str) -> list[float]:
        """Embed a question on the event loop. Cancellation aborts the call."""
        if self._async_client is None:
            raise ValueError("No async embedding client configured")

        try:
            response = await self._async_client.embeddings.create(
                **self._create_kwargs([text]),
            )
        except openai.OpenAIError as e:
            raise UpstreamServiceError("embedding", str(e)) from e

        return self._parse(response, 1)[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed several texts in one API call.

        Returns vectors in the same order as `texts`.

        Raises:
            UpstreamServiceError: The call failed, or the response has the
                wrong number of vectors or the wrong dimensionality.
        """
        if not texts:
            return []

        try:
            response = self._client.embeddings.create(**self._create_kwargs(texts))
        except openai.OpenAIError as e:
            raise UpstreamServiceError("embedding", str(e)) from e

        return self._parse(response, len(texts))

    def _create_kwargs(self, texts: Sequence[str]) -> dict:
        create_kwargs: dict = {"model": self._model, "input": list(texts)}
        if self._dimensions:
            create_kwargs["dimensions"] = self._dimensions
        return create_kwargs

    def _parse(self, response, expected: int) -> list[list[float]]:
        items = sorted(response.data or [], key=lambda item: item.index)
        if len(items) != expected:
            raise UpstreamServiceError(
                "embedding",
                f"expected {expected} vectors, got {len(items)}",
            )

        vectors = [self._validate(item.embedding) for item in items]

        logger.debug(
            "Embedded %d texts (model=%s, prompt_tokens=%d)",
            expected,
            self._model,
            response.usage.prompt_tokens if response.usage else 0,
        )
        return vectors

    def _validate(self, vector: object) -> list[float]:
        if not isinstance(vector, list) or not vector:
            raise UpstreamServiceError("embedding", "response vector is empty")
        if not all(
            isinstance(v, (int, float)) and not isinstance(v, bool)
            for v in vector
        ):
            raise UpstreamServiceError(
                "embedding", "response vector contains non-numeric values",
            )
        if self._dimensions and len(vector) != self._dimensions:
            raise UpstreamServiceError(
                "embedding",
                f"expected {self._dimensions} dimensions, got {len(vector)}",
            )
        return [float(v) for v in vector]


def _require_key(api_key: str) -> None:
    if not api_key:
        raise ValueError(
            "No API key configured for embeddings. "
            "Set EMBEDDING_API_KEY or LLM_API_KEY in .env"
        )
