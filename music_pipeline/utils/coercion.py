"""
Lenient value coercion for data coming from outside the pipeline
(catalog payloads, event rows). Bad values map to a safe default
instead of raising.
"""

import math
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any


def normalize_id(value: Any) -> str | None:
    """Trimmed string form of an identifier, or None when missing/blank."""
    if value is None:
        return None
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or None


def to_non_negative_number(value: Any) -> float:
    """Coerce to a finite number >= 0; anything else becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number) if number.is_integer() else number


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a datetime or ISO-8601 string into an aware UTC datetime.

    Naive values are assumed to be UTC. Unparseable values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
