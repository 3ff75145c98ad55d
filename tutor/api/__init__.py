# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - ask.py:    POST /api/ask
#   - health.py: GET /health
#   - deps.py:   dependency providers (settings, query orchestrator)
# =============================================================================
