"""Display helpers for answer text."""

from __future__ import annotations

import re
from datetime import date

_RAINFALL_AMOUNT_RE = re.compile(r"(\d+(?:\.\d+)?(?:-\d+(?:\.\d+)?)?)")

FIELD_LABELS = {
    "min_temp": "minimum temperature",
    "max_temp": "maximum temperature",
    "wind_speed": "wind speed",
    "wind_direction": "wind direction",
    "rainfall": "rainfall",
    "visibility": "visibility",
    "description": "description",
}


def format_rainfall(value: str | None) -> str | None:
    """Append mm to every amount: '15-20, 25-40 on hills' -> '15-20mm, 25-40mm on hills'."""
    if not value:
        return value
    return _RAINFALL_AMOUNT_RE.sub(r"\1mm", value)


def _as_date(value: str | date) -> date:
    return value if isinstance(value, date) else date.fromisoformat(str(value)[:10])


def format_date_long(value: str | date) -> str:
    """'2025-01-15' -> 'Wednesday, 15 January 2025'."""
    day = _as_date(value)
    return f"{day:%A}, {day.day} {day:%B %Y}"


def format_date_short(value: str | date) -> str:
    """'2025-01-15' -> 'Wed, 15 Jan'."""
    day = _as_date(value)
    return f"{day:%a}, {day.day} {day:%b}"


def format_field_name(field: str) -> str:
    return FIELD_LABELS.get(field, field)


def field_unit(field: str) -> str:
    if "temp" in field:
        return "°C"
    if field == "wind_speed":
        return "mph"
    if field == "rainfall":
        return "mm"
    return ""


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"
