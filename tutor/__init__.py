# =============================================================================
# Investment Concepts Tutor
# =============================================================================
# Answers questions about investment concepts from verified, previously
# ingested sources, with citations. Refuses personalised financial advice.
#
# Package structure:
#   tutor/
#   ├── agents/       → ingestion pipeline, context assembly, LangGraph
#   │                    query orchestration
#   ├── api/          → FastAPI route handlers and dependencies
#   ├── db/           → SQLAlchemy engines, sessions and ORM models
#   ├── models/       → Pydantic records and request/response schemas
#   ├── services/     → extraction, chunking, embedding, LLM, guardrails,
#   │                    rate limiting, vector store
#   └── workers/      → Celery ingestion task
# =============================================================================
