"""
Catalog ingestion job.

Fetches Jamendo tracks page by page and upserts them into the songs
table until --target tracks have been written.

Usage:
    music-pipeline-worker ingest_catalog --target 300 --limit 100 --genres rock,pop

Exit code is 0 when the target was reached and 1 otherwise (including
setup failures such as a missing JAMENDO_CLIENT_ID).
"""

import argparse
import asyncio
import sys

from music_pipeline.config import ConfigurationError, Settings, load_settings
from music_pipeline.db.helpers import DatabaseError
from music_pipeline.db.pool import DatabasePoolManager
from music_pipeline.features.catalog_ingestion import (
    CatalogIngestionService,
    IngestionOptions,
    JamendoCatalogClient,
    RetryPolicy,
    TrackRepository,
)
from music_pipeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

MAX_PAGE_SIZE = 200
MAX_BATCH_SIZE = 200


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ingest_catalog", description="Ingest Jamendo tracks into the songs table."
    )
    parser.add_argument("--target", type=int, help="stop once this many tracks are upserted")
    parser.add_argument("--limit", type=int, help="tracks per catalog page (1-200)")
    parser.add_argument("--offset", type=int, help="catalog offset to start each genre at")
    parser.add_argument("--batch-size", type=int, help="tracks per upsert (1-200)")
    parser.add_argument("--genres", help="comma-separated Jamendo tags, e.g. rock,pop,jazz")
    return parser


def _clamp(value: int, low: int, high: int | None = None) -> int:
    value = max(value, low)
    return min(value, high) if high is not None else value


def resolve_options(args: argparse.Namespace, settings: Settings) -> IngestionOptions:
    """Merge CLI flags over settings defaults and clamp them to safe bounds."""
    page_size = args.limit if args.limit is not None else settings.INGEST_PAGE_SIZE
    batch_size = args.batch_size if args.batch_size is not None else settings.INGEST_BATCH_SIZE
    target = args.target if args.target is not None else settings.INGEST_TARGET
    offset = args.offset if args.offset is not None else 0

    if args.genres is not None:
        tags = [genre.strip() for genre in args.genres.split(",") if genre.strip()]
    else:
        tags = settings.genre_list()

    return IngestionOptions(
        target=_clamp(target, 1),
        page_size=_clamp(page_size, 1, MAX_PAGE_SIZE),
        batch_size=_clamp(batch_size, 1, MAX_BATCH_SIZE),
        start_offset=_clamp(offset, 0),
        tags=tags,
    )


async def run_ingest_catalog(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    args = build_parser().parse_args(argv if argv is not None else [])

    try:
        settings = settings or load_settings()
        client_id = settings.require_jamendo_client_id()
    except ConfigurationError as e:
        logger.error("Catalog ingestion setup failed", error=str(e), missing=e.missing)
        return EXIT_FAILURE

    options = resolve_options(args, settings)
    db = DatabasePoolManager(
        settings.SUPABASE_DB_URL,
        settings.get_db_pool_config(),
        application_name=f"music-pipeline-ingest-{settings.environment}",
        statement_timeout=settings.DB_STATEMENT_TIMEOUT,
    )
    client = JamendoCatalogClient(
        client_id,
        base_url=settings.JAMENDO_API_BASE_URL,
        retry_policy=RetryPolicy(
            max_attempts=settings.FETCH_MAX_ATTEMPTS,
            base_delay=settings.FETCH_BASE_DELAY_SECONDS,
            max_delay=settings.FETCH_MAX_DELAY_SECONDS,
            max_jitter=settings.FETCH_MAX_JITTER_SECONDS,
        ),
        timeout=settings.JAMENDO_REQUEST_TIMEOUT,
    )

    try:
        await db.initialize()
        service = CatalogIngestionService(client, TrackRepository(db))
        result = await service.ingest(options)
    except (DatabaseError, RuntimeError) as e:
        logger.error("Catalog ingestion aborted", error=str(e))
        return EXIT_FAILURE
    finally:
        await client.close()
        await db.close()

    if not result.target_reached:
        logger.warning(
            "Catalog ingestion target not reached",
            total_upserted=result.total_upserted,
            target=result.target,
        )
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(asyncio.run(run_ingest_catalog(sys.argv[1:])))
