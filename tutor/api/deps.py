# =============================================================================
# API Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# The query orchestrator and settings are built once in the application
# lifespan (tutor/main.py) and stored on `app.state`. Route handlers get
# them through these dependencies, so tests swap them with
# `app.dependency_overrides[...]` without touching the network or a
# database.
# =============================================================================

from __future__ import annotations

from fastapi import Request

from tutor.agents.orchestrator import QueryOrchestrator
from tutor.config import Settings


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_query_orchestrator(request: Request) -> QueryOrchestrator:
    """The process-wide orchestrator built at startup."""
    return request.app.state.query_orchestrator
