"""
Raw catalog record -> Track.

Jamendo payloads (and rows re-exported from our own songs table) name the
same field in more than one way. Each field's accepted names are listed
below in priority order; the first non-blank value wins.
"""

from collections.abc import Mapping
from typing import Any

from music_pipeline.utils.coercion import to_non_negative_number

from .domain.models import Track

EXTERNAL_ID_FIELDS = ("id", "jamendo_id")
TITLE_FIELDS = ("name", "title")
ARTIST_FIELDS = ("artist_name", "artist")
AUDIO_URL_FIELDS = ("audio", "audio_url")
IMAGE_URL_FIELDS = ("image", "image_url")
DURATION_FIELDS = ("duration",)
POPULARITY_FIELDS = ("popularity", "popularity_total", "popularity_week", "popularity_month")


def _first_text(record: Mapping[str, Any], fields: tuple[str, ...]) -> str | None:
    for name in fields:
        value = record.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _first_value(record: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = record.get(name)
        if value is not None:
            return value
    return None


def normalize_track(record: Any) -> Track | None:
    """
    Map a raw catalog record to a Track.

    Returns None when the record lacks an external ID, title, artist or
    audio URL. Duration and popularity fall back to 0 when missing,
    non-numeric or negative.
    """
    if not isinstance(record, Mapping):
        return None

    external_id = _first_text(record, EXTERNAL_ID_FIELDS)
    title = _first_text(record, TITLE_FIELDS)
    artist = _first_text(record, ARTIST_FIELDS)
    audio_url = _first_text(record, AUDIO_URL_FIELDS)

    if not external_id or not title or not artist or not audio_url:
        return None

    return Track(
        external_id=external_id,
        title=title,
        artist=artist,
        audio_url=audio_url,
        image_url=_first_text(record, IMAGE_URL_FIELDS),
        duration_seconds=to_non_negative_number(_first_value(record, DURATION_FIELDS)),
        popularity=to_non_negative_number(_first_value(record, POPULARITY_FIELDS)),
    )
