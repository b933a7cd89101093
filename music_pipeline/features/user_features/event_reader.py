"""
Paged, ordered reads of the events table.

Pages come back sorted by (user_id, song_id, time, id), which is the
order the feature aggregation relies on. Each call to pages() starts a
fresh scan from offset 0.
"""

from collections.abc import AsyncIterator

from music_pipeline.infrastructure.observability.logging import get_logger

from .domain.models import EventRow
from .repository import EventRepository

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 5000


class EventReader:
    def __init__(
        self,
        repository: EventRepository,
        page_size: int = DEFAULT_PAGE_SIZE,
        limit: int | None = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._repository = repository
        self.page_size = page_size
        # Overall ceiling on events read; None reads the whole log
        self.limit = None if limit is None else max(0, int(limit))

    async def pages(self) -> AsyncIterator[list[EventRow]]:
        offset = 0
        fetched = 0

        while True:
            remaining = None if self.limit is None else self.limit - fetched
            if remaining is not None and remaining <= 0:
                break

            take = self.page_size if remaining is None else min(self.page_size, remaining)
            rows = await self._repository.fetch_page(offset, take)
            if not rows:
                break

            fetched += len(rows)
            offset += len(rows)
            logger.debug("Fetched event page", offset=offset - len(rows), rows=len(rows))

            yield rows

            # A short page means the log is exhausted
            if len(rows) < take:
                break
