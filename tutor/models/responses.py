# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The chat UI consumes camelCase `followUps`, so AskResponse serialises by
# alias. Python code uses the snake_case attribute names.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field

from tutor.models.records import Citation


class HealthResponse(BaseModel):
    """Response for GET /health, confirming the API is running."""

    status: str = "ok"
    version: str
    service: str


class AskResponse(BaseModel):
    """
    Response for POST /api/ask.

    `safe` is False only when the question was refused as a request for
    personalised advice. An "I don't have enough verified information"
    answer is still safe.
    """

    answer: str = Field(description="Answer text, refusal or fallback message")
    safe: bool = Field(description="False when the guardrail refused the query")
    citations: list[Citation] = Field(
        default_factory=list,
        description="At most three sources, labelled 'Source <rank>'",
    )
    follow_ups: list[str] = Field(
        default_factory=list,
        alias="followUps",
        description="Suggested next questions on the same topic",
    )

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """Body of every non-2xx response. Never carries internal detail."""

    error: str
