# =============================================================================
# tutor-ingest — Command-Line Ingestion
# =============================================================================
#
#   tutor-ingest                       # ingest sources/urls.txt in-process
#   tutor-ingest --sources my.txt      # a different source list
#   tutor-ingest --init-db             # create extension + tables first
#   tutor-ingest --queue               # hand the run to a Celery worker
#
# Exit codes: 0 when every URL was ingested or skipped, 1 when any URL
# failed, 2 on configuration or source-file errors.
# =============================================================================

from __future__ import annotations

import argparse
import logging
import sys

from tutor.agents.ingestion import read_source_urls, run_ingestion
from tutor.config import configure_logging, get_settings
from tutor.errors import ConfigurationError
from tutor.services.vectorstore import PgVectorStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tutor-ingest",
        description="Fetch trusted source pages and index them for the tutor.",
    )
    parser.add_argument(
        "--sources",
        help="File with one URL per line (default: SOURCES_FILE setting)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the pgvector extension and tables before ingesting",
    )
    parser.add_argument(
        "--queue",
        action="store_true",
        help="Queue the run on a Celery worker instead of running it here",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    sources = args.sources or settings.sources_file
    try:
        urls = read_source_urls(sources)
    except OSError as e:
        logger.error("Cannot read sources file %s: %s", sources, e)
        return 2

    if not urls:
        logger.warning("No URLs found in %s", sources)
        return 0

    if args.init_db:
        store = PgVectorStore.from_settings(settings)
        try:
            store.init_schema()
        finally:
            store.close()

    if args.queue:
        from tutor.workers.tasks import ingest_sources

        result = ingest_sources.delay(urls)
        logger.info("Queued ingestion of %d URLs: task_id=%s", len(urls), result.id)
        return 0

    try:
        settings.require("embedding_api_key")
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2

    report = run_ingestion(settings, urls)
    print(
        f"Ingestion complete: {report.ingested} ingested, "
        f"{report.skipped} skipped, {report.failed} failed"
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
