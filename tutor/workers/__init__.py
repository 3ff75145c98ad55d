# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py:      ingest_sources task (one full ingestion pass)
# =============================================================================
