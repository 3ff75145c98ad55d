# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# `query` is a StrictStr so a number or a list in the body is rejected
# rather than coerced. Validation failures are mapped to HTTP 400 by the
# exception handler in tutor/main.py.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class AskRequest(BaseModel):
    """
    Request body for POST /api/ask.

    Example:
        {"query": "What is an expense ratio?"}
    """

    query: StrictStr = Field(
        ...,
        min_length=1,
        description="A question about an investment concept",
        examples=["How are ETFs different from mutual funds?"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"query": "What is diversification in investing?"},
                {"query": "How does SIP work in mutual funds?"},
            ]
        }
    )
