"""
User/item feature package.

Reads the playback events log in key order and maintains one
user_song_features row per (user, song): event reader, duration cache,
aggregation service, plus the recorder the playback layer writes through.
"""

from .domain.models import AggregationResult, EventRow, UserItemFeature
from .duration_cache import DurationCache
from .event_reader import EventReader
from .recorder import EventRecorder, EventValidationError
from .repository import EventRepository, FeatureRepository
from .service import FeatureAggregationService

__all__ = [
    "AggregationResult",
    "DurationCache",
    "EventReader",
    "EventRecorder",
    "EventRepository",
    "EventRow",
    "EventValidationError",
    "FeatureAggregationService",
    "FeatureRepository",
    "UserItemFeature",
]
