from .models import IngestionOptions, IngestionResult, Track

__all__ = ["IngestionOptions", "IngestionResult", "Track"]
