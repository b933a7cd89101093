"""
Repository for the songs catalog table.

Tracks are keyed by jamendo_id. The internal id and created_at are only
set on first insert; re-ingesting a track updates its metadata in place
so rows referenced by the events table keep their id.
"""

from collections.abc import Iterable

from music_pipeline.db.helpers import execute_many, fetch_all, fetch_one
from music_pipeline.db.pool import DatabasePoolManager
from music_pipeline.infrastructure.observability.logging import get_logger

from .domain.models import Track

logger = get_logger(__name__)


class TrackRepository:
    """Raw SQL helpers for the songs table."""

    UPSERT_QUERY = """
        INSERT INTO songs (
            id, jamendo_id, title, artist, audio_url, image_url,
            duration, popularity, created_at
        )
        VALUES (
            gen_random_uuid(), %(external_id)s, %(title)s, %(artist)s, %(audio_url)s,
            %(image_url)s, %(duration_seconds)s, %(popularity)s, NOW()
        )
        ON CONFLICT (jamendo_id)
        DO UPDATE SET
            title = EXCLUDED.title,
            artist = EXCLUDED.artist,
            audio_url = EXCLUDED.audio_url,
            image_url = EXCLUDED.image_url,
            duration = EXCLUDED.duration,
            popularity = EXCLUDED.popularity
    """

    def __init__(self, db: DatabasePoolManager):
        self._db = db

    async def upsert_tracks(self, tracks: Iterable[Track]) -> int:
        """
        Upsert a batch atomically.

        Returns:
            Number of rows inserted or updated

        Raises:
            DatabaseError: if the store rejects the batch (nothing is written)
        """
        payload = [
            {
                "external_id": track.external_id,
                "title": track.title,
                "artist": track.artist,
                "audio_url": track.audio_url,
                "image_url": track.image_url or "",
                "duration_seconds": track.duration_seconds,
                "popularity": track.popularity,
            }
            for track in tracks
        ]
        if not payload:
            return 0

        async with self._db.transaction() as conn:
            return await execute_many(self.UPSERT_QUERY, payload, connection=conn)

    async def list_tracks(self, limit: int = 200) -> list[dict]:
        """Playable tracks, most popular first. Rows missing required fields are dropped."""
        query = """
            SELECT id, jamendo_id, title, artist, audio_url, image_url, popularity
            FROM songs
            ORDER BY popularity DESC
            LIMIT %s
        """

        async with self._db.connection() as conn:
            rows = await fetch_all(query, (limit,), connection=conn)

        tracks: list[dict] = []
        for row in rows:
            if not all(row.get(key) for key in ("id", "title", "artist", "audio_url")):
                continue
            tracks.append(
                {
                    "id": str(row["id"]),
                    "title": str(row["title"]),
                    "artist": str(row["artist"]),
                    "audio_url": str(row["audio_url"]),
                    "cover_url": str(row["image_url"]) if row.get("image_url") else "",
                    "jamendo_id": str(row["jamendo_id"]) if row.get("jamendo_id") else None,
                }
            )
        return tracks

    async def count_tracks(self) -> int:
        query = "SELECT COUNT(*) AS total FROM songs"

        async with self._db.connection() as conn:
            row = await fetch_one(query, connection=conn)
        if not row:
            return 0
        return row["total"]
