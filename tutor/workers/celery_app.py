# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Ingestion can run in the foreground (`tutor-ingest`) or be queued to a
# Celery worker (`tutor-ingest --queue`). The worker runs the same
# IngestionOrchestrator as the CLI.
#
# ARCHITECTURE:
# ┌────────────┐     ┌───────┐     ┌──────────────┐     ┌───────┐
# │ tutor-ingest│───▶│ Redis │────▶│ Celery Worker│────▶│ Redis │
# │ (producer)  │    │(broker)│    │ (consumer)    │    │(result)│
# └────────────┘     └───────┘     └──────────────┘     └───────┘
#    db 0 ──────────┘                                    └── db 1
#
# Run a worker with:
#   celery -A tutor.workers.celery_app worker --loglevel=info
# =============================================================================

from celery import Celery

from tutor.config import get_settings

settings = get_settings()

celery_app = Celery(
    "tutor.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: task arguments are URL lists, results are report dicts.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after completion so a crashed worker's run is re-queued.
    # Re-running is safe: ingestion replaces each document's chunk set.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # One run walks the whole source list with paced embedding calls.
    task_soft_time_limit=1800,
    task_time_limit=3600,

    # --- Results ---
    result_expires=86400,

    include=["tutor.workers.tasks"],
)
