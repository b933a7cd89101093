"""
Domain models for user/item feature generation.

EventRow mirrors a raw events row as read from the store, before any
validation; the aggregation service decides what to keep.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class EventRow:
    """One logged playback interaction, unvalidated."""

    user_id: Any
    item_id: Any
    event_type: Any
    play_duration: Any
    occurred_at: Any
    event_id: Any = None


@dataclass(slots=True)
class UserItemFeature:
    """Aggregated listening features for one (user, item) pair."""

    user_id: str
    item_id: str
    play_count: int
    skip_count: int
    complete_count: int
    total_play_duration: float
    avg_play_duration: int
    completion_rate: float
    last_played_at: datetime | None
    updated_at: datetime


@dataclass(slots=True)
class AggregationResult:
    processed_events: int = 0
    skipped_events: int = 0
    aggregated_records: int = 0
    upserted_rows: int = 0
    batches_written: int = 0
    failed_batches: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
