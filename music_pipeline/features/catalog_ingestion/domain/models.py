"""
Domain models for catalog ingestion.

Plain dataclasses shared by the normalizer, the repository and the
ingestion service. They carry no I/O.
"""

from dataclasses import asdict, dataclass, field


@dataclass(slots=True)
class Track:
    """A normalized catalog record, keyed by the catalog's own ID."""

    external_id: str
    title: str
    artist: str
    audio_url: str
    image_url: str | None = None
    duration_seconds: float = 0
    popularity: float = 0


@dataclass(slots=True)
class IngestionOptions:
    target: int
    page_size: int
    batch_size: int
    start_offset: int = 0
    tags: list[str] = field(default_factory=list)

    def partitions(self) -> list[str | None]:
        # An empty tag list is a single unfiltered partition
        return list(self.tags) if self.tags else [None]


@dataclass(slots=True)
class IngestionResult:
    target: int
    total_upserted: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    records_rejected: int = 0
    duplicates_skipped: int = 0
    batches_written: int = 0
    batches_failed: int = 0
    partitions_exhausted: int = 0

    @property
    def target_reached(self) -> bool:
        return self.total_upserted >= self.target

    def to_dict(self) -> dict:
        data = asdict(self)
        data["target_reached"] = self.target_reached
        return data
