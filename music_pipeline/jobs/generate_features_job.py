"""
User/item feature generation job.

Streams the events table in (user_id, song_id, time) order and upserts
one user_song_features row per pair. Each run recomputes everything.

Usage:
    music-pipeline-worker generate_features
    music-pipeline-worker generate_features --limit 100000

Exit code is 0 on completion and 1 when setup fails (bad configuration,
store unreachable).
"""

import argparse
import asyncio
import sys

from music_pipeline.config import ConfigurationError, Settings, load_settings
from music_pipeline.db.helpers import DatabaseError
from music_pipeline.db.pool import DatabasePoolManager
from music_pipeline.features.user_features import (
    DurationCache,
    EventReader,
    EventRepository,
    FeatureAggregationService,
    FeatureRepository,
)
from music_pipeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="generate_features", description="Aggregate events into user_song_features."
    )
    parser.add_argument("--limit", type=int, help="only read the first N events (in key order)")
    return parser


async def run_generate_features(
    argv: list[str] | None = None, settings: Settings | None = None
) -> int:
    args = build_parser().parse_args(argv if argv is not None else [])
    limit = max(0, args.limit) if args.limit is not None else None

    try:
        settings = settings or load_settings()
        db = DatabasePoolManager(
            settings.SUPABASE_DB_URL,
            settings.get_db_pool_config(),
            application_name=f"music-pipeline-features-{settings.environment}",
            statement_timeout=settings.DB_STATEMENT_TIMEOUT,
        )
        event_repository = EventRepository(db, timestamp_column=settings.EVENTS_TIMESTAMP_COLUMN)
    except ConfigurationError as e:
        logger.error("Feature generation setup failed", error=str(e), missing=e.missing)
        return EXIT_FAILURE

    logger.info("Using events timestamp column", column=event_repository.timestamp_column)

    try:
        await db.initialize()
        service = FeatureAggregationService(
            EventReader(event_repository, page_size=settings.FEATURES_PAGE_SIZE, limit=limit),
            DurationCache(event_repository, chunk_size=settings.DURATION_LOOKUP_CHUNK_SIZE),
            FeatureRepository(db),
            batch_size=settings.FEATURES_BATCH_SIZE,
        )
        await service.run()
    except (DatabaseError, RuntimeError) as e:
        logger.error("Feature generation aborted", error=str(e))
        return EXIT_FAILURE
    finally:
        await db.close()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(asyncio.run(run_generate_features(sys.argv[1:])))
