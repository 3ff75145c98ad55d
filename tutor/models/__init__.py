# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - records.py:   typed records exchanged with the store and services
#   - requests.py:  API request bodies
#   - responses.py: API response bodies
#
# These are separate from the ORM models in tutor/db/models.py so that
# embeddings and internal ids never leak into API responses.
# =============================================================================
