"""
Catalog ingestion feature package.

Pulls track metadata from the Jamendo catalog into the songs table:
client (HTTP + retry), normalizer, repository and the ingestion service.
"""

from .client import CatalogClientError, JamendoCatalogClient, RetryPolicy
from .domain.models import IngestionOptions, IngestionResult, Track
from .normalizer import normalize_track
from .repository import TrackRepository
from .service import CatalogIngestionService

__all__ = [
    "CatalogClientError",
    "CatalogIngestionService",
    "IngestionOptions",
    "IngestionResult",
    "JamendoCatalogClient",
    "RetryPolicy",
    "Track",
    "TrackRepository",
    "normalize_track",
]
