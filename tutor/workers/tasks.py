# =============================================================================
# Celery Task Definitions — Source Ingestion
# =============================================================================
#
# IMPORTANT: Celery workers are SYNCHRONOUS. The task uses the sync
# (psycopg2) side of the document store and the sync embedding client.
#
# RETRY STRATEGY: none at the task level. Per-URL failures are already
# isolated and reported by the orchestrator; re-running the whole task is
# a manual decision.
# =============================================================================

import logging

from tutor.agents.ingestion import read_source_urls, run_ingestion
from tutor.config import get_settings
from tutor.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="ingest_sources", max_retries=0)
def ingest_sources(self, urls: list[str] | None = None) -> dict:
    """
    Ingest `urls`, or every URL in the configured sources file when None.

    Returns:
        IngestionReport.to_dict(): counts plus one entry per URL.
    """
    settings = get_settings()
    settings.require("embedding_api_key")

    if urls is None:
        urls = read_source_urls(settings.sources_file)

    logger.info(
        "Starting ingestion task: task_id=%s, urls=%d",
        self.request.id, len(urls),
    )
    report = run_ingestion(settings, urls)
    return report.to_dict()
