from .models import AggregationResult, EventRow, UserItemFeature

__all__ = ["AggregationResult", "EventRow", "UserItemFeature"]
