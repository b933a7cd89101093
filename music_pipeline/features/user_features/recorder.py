"""
Event recording for the playback layer.

Validates one playback interaction and appends it to the events table.
Validation failures are raised before anything touches the store.
"""

import math
import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from music_pipeline.infrastructure.observability.logging import get_logger
from music_pipeline.utils.coercion import parse_timestamp

from .repository import EventRepository

logger = get_logger(__name__)

# UUID versions 1-5
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class EventValidationError(Exception):
    """Raised when an event payload is rejected."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def is_valid_uuid(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(UUID_PATTERN.match(value.strip()))


class EventRecorder:
    def __init__(self, repository: EventRepository):
        self._repository = repository

    def build_row(
        self,
        user_id: Any,
        item_id: Any,
        event_type: Any,
        occurred_at: Any = None,
        play_duration: Any = None,
    ) -> dict[str, Any]:
        """Validate and shape an events row. Optional columns are only set when given."""
        if not is_valid_uuid(user_id):
            raise EventValidationError("Invalid user_id (expected a UUID)", field="user_id")
        if not is_valid_uuid(item_id):
            raise EventValidationError("Invalid song_id (expected a UUID)", field="song_id")
        if not isinstance(event_type, str) or not event_type.strip():
            raise EventValidationError("Missing event_type", field="event_type")

        row: dict[str, Any] = {
            "user_id": user_id.strip(),
            "song_id": item_id.strip(),
            "event_type": event_type.strip().lower(),
        }

        if occurred_at is not None and occurred_at != "":
            timestamp = parse_timestamp(occurred_at)
            if timestamp is None:
                raise EventValidationError("Invalid timestamp", field="timestamp")
            row[self._repository.timestamp_column] = timestamp

        if play_duration is not None:
            if isinstance(play_duration, bool) or not isinstance(
                play_duration, (int, float, Decimal)
            ):
                raise EventValidationError(
                    "Invalid play_duration (expected a non-negative number)",
                    field="play_duration",
                )
            if not math.isfinite(float(play_duration)) or play_duration < 0:
                raise EventValidationError(
                    "Invalid play_duration (must be >= 0)", field="play_duration"
                )
            # Stored as whole seconds
            row["play_duration"] = math.floor(play_duration)

        return row

    async def record(
        self,
        user_id: Any,
        item_id: Any,
        event_type: Any,
        occurred_at: str | datetime | None = None,
        play_duration: float | None = None,
    ) -> str:
        """
        Append one event.

        Returns:
            The new event id

        Raises:
            EventValidationError: if any field is invalid
        """
        row = self.build_row(user_id, item_id, event_type, occurred_at, play_duration)
        event_id = await self._repository.insert_event(row)
        logger.debug(
            "Event recorded",
            event_id=event_id,
            user_id=row["user_id"],
            song_id=row["song_id"],
            event_type=row["event_type"],
        )
        return event_id
