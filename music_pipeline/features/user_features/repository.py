"""
Repository helpers for user/item feature generation.

Reads the append-only events table in (user_id, song_id, time) order,
looks up reference durations from songs, and writes the per-pair
statistics into user_song_features.
"""

from collections.abc import Iterable
from typing import Any

from psycopg import sql

from music_pipeline.config import ALLOWED_EVENT_TIMESTAMP_COLUMNS, ConfigurationError
from music_pipeline.db.helpers import execute_many, fetch_all, fetch_one
from music_pipeline.db.pool import DatabasePoolManager
from music_pipeline.infrastructure.observability.logging import get_logger
from music_pipeline.utils.coercion import normalize_id, to_non_negative_number

from .domain.models import EventRow, UserItemFeature

logger = get_logger(__name__)


class EventRepository:
    """Raw SQL helpers for the events table."""

    def __init__(self, db: DatabasePoolManager, timestamp_column: str = "created_at"):
        if timestamp_column not in ALLOWED_EVENT_TIMESTAMP_COLUMNS:
            raise ConfigurationError(
                f"Unsupported events timestamp column '{timestamp_column}'",
            )
        self._db = db
        self.timestamp_column = timestamp_column

    def _page_query(self) -> sql.Composed:
        # id is the final tiebreaker so equal timestamps still page deterministically
        return sql.SQL(
            """
            SELECT
                id,
                user_id,
                song_id,
                event_type,
                play_duration,
                {ts} AS occurred_at
            FROM events
            ORDER BY user_id ASC, song_id ASC, {ts} ASC, id ASC
            OFFSET %s
            LIMIT %s
            """
        ).format(ts=sql.Identifier(self.timestamp_column))

    async def fetch_page(self, offset: int, limit: int) -> list[EventRow]:
        async with self._db.connection() as conn:
            rows = await fetch_all(self._page_query(), (offset, limit), connection=conn)

        return [
            EventRow(
                event_id=row.get("id"),
                user_id=row.get("user_id"),
                item_id=row.get("song_id"),
                event_type=row.get("event_type"),
                play_duration=row.get("play_duration"),
                occurred_at=row.get("occurred_at"),
            )
            for row in rows
        ]

    async def fetch_durations(self, item_ids: list[str]) -> dict[str, float]:
        """Reference duration (seconds) for each song id found in the catalog."""
        if not item_ids:
            return {}

        query = """
            SELECT id::text AS id, duration
            FROM songs
            WHERE id::text = ANY(%s)
        """

        async with self._db.connection() as conn:
            rows = await fetch_all(query, (list(item_ids),), connection=conn)

        durations: dict[str, float] = {}
        for row in rows:
            item_id = normalize_id(row.get("id"))
            if item_id:
                durations[item_id] = to_non_negative_number(row.get("duration"))
        return durations

    async def insert_event(self, event: dict[str, Any]) -> str:
        """Insert one event row and return its id. Omitted columns use the table defaults."""
        columns = list(event.keys())
        query = sql.SQL("INSERT INTO events ({columns}) VALUES ({values}) RETURNING id").format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            values=sql.SQL(", ").join(sql.Placeholder(column) for column in columns),
        )

        async with self._db.connection() as conn:
            row = await fetch_one(query, event, connection=conn)

        if not row or not row.get("id"):
            raise RuntimeError("Event insert succeeded but no id was returned")
        return str(row["id"])


class FeatureRepository:
    """Raw SQL helpers for the user_song_features table."""

    UPSERT_QUERY = """
        INSERT INTO user_song_features (
            user_id, song_id, play_count, skip_count, complete_count,
            total_play_duration, avg_play_duration, completion_rate,
            last_played_at, updated_at
        )
        VALUES (
            %(user_id)s, %(item_id)s, %(play_count)s, %(skip_count)s, %(complete_count)s,
            %(total_play_duration)s, %(avg_play_duration)s, %(completion_rate)s,
            %(last_played_at)s, %(updated_at)s
        )
        ON CONFLICT (user_id, song_id)
        DO UPDATE SET
            play_count = EXCLUDED.play_count,
            skip_count = EXCLUDED.skip_count,
            complete_count = EXCLUDED.complete_count,
            total_play_duration = EXCLUDED.total_play_duration,
            avg_play_duration = EXCLUDED.avg_play_duration,
            completion_rate = EXCLUDED.completion_rate,
            last_played_at = EXCLUDED.last_played_at,
            updated_at = EXCLUDED.updated_at
    """

    def __init__(self, db: DatabasePoolManager):
        self._db = db

    async def upsert_features(self, features: Iterable[UserItemFeature]) -> int:
        """
        Overwrite the stored rows for each (user, item) key in one transaction.

        Raises:
            DatabaseError: if the store rejects the batch
        """
        payload = [
            {
                "user_id": feature.user_id,
                "item_id": feature.item_id,
                "play_count": feature.play_count,
                "skip_count": feature.skip_count,
                "complete_count": feature.complete_count,
                "total_play_duration": feature.total_play_duration,
                "avg_play_duration": feature.avg_play_duration,
                "completion_rate": feature.completion_rate,
                "last_played_at": feature.last_played_at,
                "updated_at": feature.updated_at,
            }
            for feature in features
        ]
        if not payload:
            return 0

        async with self._db.transaction() as conn:
            return await execute_many(self.UPSERT_QUERY, payload, connection=conn)

    async def fetch_features(self, user_id: str | None = None, limit: int = 1000) -> list[dict]:
        query = """
            SELECT
                user_id,
                song_id,
                play_count,
                skip_count,
                complete_count,
                total_play_duration,
                avg_play_duration,
                completion_rate,
                last_played_at,
                updated_at
            FROM user_song_features
            WHERE (%s::text IS NULL OR user_id::text = %s::text)
            ORDER BY user_id ASC, song_id ASC
            LIMIT %s
        """

        async with self._db.connection() as conn:
            return await fetch_all(query, (user_id, user_id, limit), connection=conn)
