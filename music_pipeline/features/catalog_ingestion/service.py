"""
Catalog ingestion service.

Pages through the Jamendo catalog one tag partition at a time, normalizes
and de-duplicates the records, and upserts them in batches until the
requested number of tracks has been written or every partition runs dry.
"""

from __future__ import annotations

from music_pipeline.db.helpers import DatabaseError
from music_pipeline.infrastructure.observability.logging import get_logger
from music_pipeline.utils.batching import chunked

from .client import CatalogClientError, JamendoCatalogClient
from .domain.models import IngestionOptions, IngestionResult, Track
from .normalizer import normalize_track
from .repository import TrackRepository

logger = get_logger(__name__)


class CatalogIngestionService:
    # A partition is finished after this many empty pages in a row
    MAX_CONSECUTIVE_EMPTY_PAGES = 2

    def __init__(self, client: JamendoCatalogClient, repository: TrackRepository):
        self._client = client
        self._repository = repository

    async def ingest(self, options: IngestionOptions) -> IngestionResult:
        result = IngestionResult(target=options.target)
        # External IDs already handled in this run, across pages and partitions
        seen_ids: set[str] = set()

        logger.info(
            "Starting catalog ingestion",
            target=options.target,
            page_size=options.page_size,
            batch_size=options.batch_size,
            start_offset=options.start_offset,
            tags=options.tags or "(none)",
        )

        for tag in options.partitions():
            if result.target_reached:
                break
            await self._ingest_partition(tag, options, seen_ids, result)

        log = logger.info if result.target_reached else logger.warning
        log("Catalog ingestion finished", **result.to_dict())
        return result

    async def _ingest_partition(
        self,
        tag: str | None,
        options: IngestionOptions,
        seen_ids: set[str],
        result: IngestionResult,
    ) -> None:
        offset = options.start_offset
        empty_pages_in_a_row = 0

        logger.info("Ingesting partition", tag=tag or "(none)", offset=offset)

        while not result.target_reached:
            records = await self._fetch_page(tag, offset, options.page_size, result)

            if not records:
                empty_pages_in_a_row += 1
                if empty_pages_in_a_row >= self.MAX_CONSECUTIVE_EMPTY_PAGES:
                    result.partitions_exhausted += 1
                    logger.info("No more results for partition", tag=tag or "(none)", offset=offset)
                    return
            else:
                empty_pages_in_a_row = 0

            tracks = self._select_new_tracks(records, seen_ids, result)
            for batch in chunked(tracks, options.batch_size):
                if result.target_reached:
                    break
                await self._write_batch(batch, offset, result)

            # Advance regardless of how the page went
            offset += options.page_size

    async def _fetch_page(
        self, tag: str | None, offset: int, page_size: int, result: IngestionResult
    ) -> list[dict]:
        try:
            records = await self._client.fetch_tracks(page_size, offset=offset, tag=tag)
        except CatalogClientError as e:
            result.pages_failed += 1
            logger.error(
                "Catalog page failed after retries, skipping",
                tag=tag or "(none)",
                offset=offset,
                page_size=page_size,
                status_code=e.status_code,
                error=str(e),
            )
            return []

        result.pages_fetched += 1
        return records

    def _select_new_tracks(
        self, records: list[dict], seen_ids: set[str], result: IngestionResult
    ) -> list[Track]:
        tracks: list[Track] = []
        for record in records:
            track = normalize_track(record)
            if track is None:
                result.records_rejected += 1
                continue
            if track.external_id in seen_ids:
                result.duplicates_skipped += 1
                continue
            seen_ids.add(track.external_id)
            tracks.append(track)
        return tracks

    async def _write_batch(self, batch: list[Track], offset: int, result: IngestionResult) -> None:
        try:
            upserted = await self._repository.upsert_tracks(batch)
        except DatabaseError as e:
            # One bad batch must not stop the run; it is not retried
            result.batches_failed += 1
            logger.error(
                "Track batch failed; continuing",
                offset=offset,
                batch_size=len(batch),
                first_external_id=batch[0].external_id,
                error=str(e),
            )
            return

        result.batches_written += 1
        result.total_upserted += upserted
        logger.info(
            "Track batch upserted",
            batch_size=len(batch),
            upserted=upserted,
            total=result.total_upserted,
            target=result.target,
        )
