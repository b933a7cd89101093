from collections.abc import Iterable

from music_pipeline.infrastructure.observability.logging import get_logger
from music_pipeline.utils.batching import chunked
from music_pipeline.utils.coercion import normalize_id

from .repository import EventRepository

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 500


class DurationCache:
    """
    Memoized song id -> reference duration (seconds).

    hydrate() looks up every id not already cached in chunked queries and
    caches 0 for ids the catalog doesn't know, so they are never re-queried.
    """

    def __init__(self, repository: EventRepository, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._repository = repository
        self._chunk_size = max(1, chunk_size)
        self._durations: dict[str, float] = {}

    def get(self, item_id: str) -> float:
        return self._durations.get(item_id, 0)

    async def hydrate(self, item_ids: Iterable) -> int:
        """
        Cache durations for the given ids.

        Returns:
            Number of ids that had to be looked up
        """
        missing: list[str] = []
        queued: set[str] = set()
        for raw_id in item_ids:
            item_id = normalize_id(raw_id)
            if not item_id or item_id in self._durations or item_id in queued:
                continue
            queued.add(item_id)
            missing.append(item_id)

        if not missing:
            return 0

        for ids in chunked(missing, self._chunk_size):
            found = await self._repository.fetch_durations(ids)
            for item_id in ids:
                self._durations[item_id] = found.get(item_id, 0)

        logger.debug("Hydrated song durations", looked_up=len(missing), cached=len(self._durations))
        return len(missing)
