"""
User/item feature aggregation service.

Turns the raw events log into one user_song_features row per
(user_id, song_id) pair. Events arrive sorted by that key, so only one
group is ever open: when the key changes the open group is finished,
buffered, and written out in batches. Memory use is bounded by one page
of events plus one batch of feature rows.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from music_pipeline.db.helpers import DatabaseError
from music_pipeline.infrastructure.observability.logging import get_logger
from music_pipeline.utils.coercion import normalize_id, parse_timestamp, to_non_negative_number

from .domain.models import AggregationResult, EventRow, UserItemFeature
from .duration_cache import DurationCache
from .event_reader import EventReader
from .repository import FeatureRepository

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 500
PROGRESS_LOG_EVERY = 50_000


@dataclass
class _PairWorkingSet:
    user_id: str
    item_id: str
    play_count: int = 0
    skip_count: int = 0
    complete_count: int = 0
    total_play_duration: float = 0
    last_played_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.item_id)

    def add(self, event_type: str, play_duration: float, occurred_at: datetime | None) -> None:
        if event_type == "play":
            self.play_count += 1
        elif event_type == "skip":
            self.skip_count += 1
        elif event_type == "complete":
            self.complete_count += 1

        # Every kind contributes listening time, null durations count as 0
        self.total_play_duration += play_duration

        if occurred_at is not None and (
            self.last_played_at is None or occurred_at > self.last_played_at
        ):
            self.last_played_at = occurred_at


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp01(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return value


def build_feature(
    working: _PairWorkingSet, reference_duration: float, updated_at: datetime
) -> UserItemFeature:
    avg_play_duration = (
        _round_half_up(working.total_play_duration / working.play_count)
        if working.play_count > 0
        else 0
    )
    completion_rate = (
        _clamp01(working.total_play_duration / reference_duration)
        if reference_duration > 0
        else 0.0
    )
    return UserItemFeature(
        user_id=working.user_id,
        item_id=working.item_id,
        play_count=working.play_count,
        skip_count=working.skip_count,
        complete_count=working.complete_count,
        total_play_duration=working.total_play_duration,
        avg_play_duration=avg_play_duration,
        completion_rate=completion_rate,
        last_played_at=working.last_played_at or updated_at,
        updated_at=updated_at,
    )


class FeatureAggregationService:
    def __init__(
        self,
        event_reader: EventReader,
        duration_cache: DurationCache,
        repository: FeatureRepository,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] | None = None,
    ):
        self._event_reader = event_reader
        self._duration_cache = duration_cache
        self._repository = repository
        self._batch_size = max(1, batch_size)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(self) -> AggregationResult:
        """
        Recompute features for every (user, item) pair in the events log.

        Existing rows are overwritten, never incremented, so running twice
        over the same log stores the same features.
        """
        result = AggregationResult()
        updated_at = self._clock()
        buffer: list[UserItemFeature] = []
        current: _PairWorkingSet | None = None

        logger.info(
            "Starting feature aggregation",
            page_size=self._event_reader.page_size,
            limit=self._event_reader.limit,
            batch_size=self._batch_size,
        )

        async for page in self._event_reader.pages():
            # One duration lookup per page instead of one per pair
            await self._duration_cache.hydrate(event.item_id for event in page)

            for event in page:
                user_id = normalize_id(event.user_id)
                item_id = normalize_id(event.item_id)
                if not user_id or not item_id:
                    result.skipped_events += 1
                    logger.debug("Skipping event without user or item", event_id=event.event_id)
                    continue

                result.processed_events += 1
                if result.processed_events % PROGRESS_LOG_EVERY == 0:
                    logger.info("Aggregation progress", processed_events=result.processed_events)

                if current is not None and current.key != (user_id, item_id):
                    await self._finish_group(current, updated_at, buffer, result)
                    current = None

                if current is None:
                    current = _PairWorkingSet(user_id=user_id, item_id=item_id)

                current.add(
                    self._event_type(event),
                    to_non_negative_number(event.play_duration),
                    parse_timestamp(event.occurred_at),
                )

        if current is not None:
            await self._finish_group(current, updated_at, buffer, result)
        if buffer:
            await self._write_batch(buffer.copy(), result)
            buffer.clear()

        logger.info("Feature aggregation finished", **result.to_dict())
        return result

    @staticmethod
    def _event_type(event: EventRow) -> str:
        if not isinstance(event.event_type, str):
            return ""
        return event.event_type.strip().lower()

    async def _finish_group(
        self,
        working: _PairWorkingSet,
        updated_at: datetime,
        buffer: list[UserItemFeature],
        result: AggregationResult,
    ) -> None:
        reference_duration = self._duration_cache.get(working.item_id)
        buffer.append(build_feature(working, reference_duration, updated_at))
        result.aggregated_records += 1

        if len(buffer) >= self._batch_size:
            batch = buffer.copy()
            buffer.clear()
            await self._write_batch(batch, result)

    async def _write_batch(self, batch: list[UserItemFeature], result: AggregationResult) -> None:
        try:
            upserted = await self._repository.upsert_features(batch)
        except DatabaseError as e:
            result.failed_batches += 1
            logger.error(
                "Feature batch failed; continuing",
                batch_size=len(batch),
                first_key=f"{batch[0].user_id}:{batch[0].item_id}",
                last_key=f"{batch[-1].user_id}:{batch[-1].item_id}",
                error=str(e),
            )
            return

        result.batches_written += 1
        result.upserted_rows += upserted
        logger.info(
            "Feature batch upserted",
            batch_size=len(batch),
            upserted=upserted,
            total_upserted=result.upserted_rows,
        )
