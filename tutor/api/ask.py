# =============================================================================
# Ask API — Investment Concept Q&A Endpoint
# =============================================================================
#
# POST /api/ask runs one question through the query orchestrator:
#   classify → embed → retrieve → assemble → generate → cite
#
# Refusals and "not enough verified information" are 200 responses.
# Failures map to a generic error body; the detail goes to the log only:
#   - upstream timeout            → 504
#   - embedding/generation/store  → 502
#   - anything else               → 500
# A missing or non-string `query` is rejected with 400 by the validation
# handler in tutor/main.py.
#
# This endpoint is thin: request validation, error mapping, and response
# mapping. The pipeline lives in tutor/agents/orchestrator.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from tutor.agents.orchestrator import QueryOrchestrator
from tutor.api.deps import get_query_orchestrator
from tutor.errors import UpstreamServiceError, UpstreamTimeoutError
from tutor.models.requests import AskRequest
from tutor.models.responses import AskResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


@router.post(
    "/api/ask",
    response_model=AskResponse,
    summary="Ask about an investment concept",
    description=(
        "Explain an investment concept using only the ingested trusted "
        "sources. Requests for personalised advice are refused."
    ),
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def ask_endpoint(
    request: AskRequest,
    orchestrator: QueryOrchestrator = Depends(get_query_orchestrator),
) -> AskResponse:
    logger.info("Ask request: query='%s'", request.query[:80])

    try:
        result = await orchestrator.answer(request.query)
    except UpstreamTimeoutError as e:
        logger.error("Ask timed out: %s", e)
        raise HTTPException(
            status_code=504, detail="Upstream service timed out",
        ) from e
    except UpstreamServiceError as e:
        logger.exception("Upstream %s failure: %s", e.service, e.message)
        raise HTTPException(
            status_code=502, detail="Upstream service error",
        ) from e
    except Exception as e:
        logger.exception("Ask pipeline failed: %s", e)
        raise HTTPException(
            status_code=500, detail="Internal server error",
        ) from e

    return AskResponse(
        answer=result.answer,
        safe=result.safe,
        citations=result.citations,
        follow_ups=result.follow_ups,
    )
