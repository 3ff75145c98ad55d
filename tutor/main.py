# =============================================================================
# FastAPI Application — Investment Concepts Tutor
# =============================================================================
#
# Run with:
#   uvicorn tutor.main:app --reload
#
# STARTUP: the lifespan configures logging, checks that both API keys are
# present (ConfigurationError aborts startup), and builds one
# QueryOrchestrator shared by every request. Shutdown disposes the async
# database pool.
#
# ERROR BODIES: every non-2xx response is {"error": "<generic message>"}.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tutor.agents.orchestrator import QueryOrchestrator
from tutor.api import ask, health
from tutor.config import Settings, configure_logging, get_settings
from tutor.services.embedder import OpenAIEmbedder
from tutor.services.llm import build_llm_provider
from tutor.services.vectorstore import PgVectorStore

logger = logging.getLogger(__name__)

MISSING_QUERY_MESSAGE = "Missing 'query' in body"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)
    settings.require("llm_api_key", "embedding_api_key")

    store = PgVectorStore.from_settings(settings)
    app.state.query_orchestrator = QueryOrchestrator.from_settings(
        settings,
        embedder=OpenAIEmbedder.from_settings(settings),
        store=store,
        llm=build_llm_provider(settings),
    )
    logger.info(
        "%s %s ready (llm=%s/%s, embedding=%s)",
        settings.app_name, settings.app_version,
        settings.llm_provider, settings.llm_model, settings.embedding_model,
    )

    yield

    await store.aclose()
    logger.info("Database pool closed")


# ---------------------------------------------------------------------------
# Exception Handlers
# ---------------------------------------------------------------------------


async def _validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    logger.info("Rejected request body: %s", exc.errors())
    return JSONResponse(status_code=400, content={"error": MISSING_QUERY_MESSAGE})


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Explains investment concepts from a curated set of trusted "
            "sources, with citations. Does not give investment advice."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)

    app.include_router(health.router)
    app.include_router(ask.router)

    return app


app = create_app()
