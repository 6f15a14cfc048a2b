"""Forecast record model and derived-field normalization for pre-parsed feed items."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .dates import parse_forecast_date
from .exceptions import DateParseError

VisibilityCode = Literal["good", "moderate", "poor"]

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def parse_rainfall_range(value: str | None) -> tuple[float | None, float | None]:
    """Absolute min/max over every number in a rainfall string.

    Qualified amounts such as "risk of 15 on hills" count towards the max.
    """
    if not value or not isinstance(value, str):
        return None, None
    numbers = [float(match) for match in _NUMBER_RE.findall(value)]
    if not numbers:
        return None, None
    return min(numbers), max(numbers)


def parse_visibility_code(value: str | None) -> VisibilityCode | None:
    """Normalize a visibility description to its primary state."""
    if not value or not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    if lowered.startswith(("good", "mostly good")):
        return "good"
    if lowered.startswith("moderate"):
        return "moderate"
    if lowered.startswith("poor"):
        return "poor"
    for code in ("good", "moderate", "poor"):
        if code in lowered:
            return code  # type: ignore[return-value]
    return None


def format_published_at(value: datetime) -> str:
    """Storage form of a publish timestamp: UTC ISO-8601 with milliseconds and Z."""
    utc = value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class ForecastRecord(BaseModel):
    """One forecast issuance for one calendar date."""

    model_config = ConfigDict(frozen=True)

    guid: str = Field(min_length=1)
    published_at: datetime
    forecast_date: date
    min_temp: int | None = None
    max_temp: int | None = None
    wind_speed: int | None = None
    wind_direction: str | None = None
    description: str = ""
    wind_details: str = ""
    rainfall: str | None = None
    rainfall_min: float | None = None
    rainfall_max: float | None = None
    visibility: str = ""
    visibility_code: VisibilityCode | None = None
    comments: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Column mapping for insertion into forecast_items."""
        row = self.model_dump()
        row["published_at"] = format_published_at(self.published_at)
        row["forecast_date"] = self.forecast_date.isoformat()
        return row


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+", value)
        return int(match.group(0)) if match else None
    return None


def build_record(item: dict[str, Any], published_at: datetime) -> ForecastRecord:
    """Build a record from one pre-parsed feed item, deriving rainfall and visibility."""
    label = item.get("date_label") or item.get("forecast_date")
    if not isinstance(label, str):
        raise DateParseError("Feed item has no date label")
    forecast_date = parse_forecast_date(label, published_at)

    rainfall = item.get("rainfall")
    rainfall_text = str(rainfall).strip() if rainfall is not None else None
    rainfall_min, rainfall_max = parse_rainfall_range(rainfall_text)
    visibility = str(item.get("visibility") or "")

    guid_prefix = str(item.get("guid") or "").strip()
    return ForecastRecord(
        guid=f"{guid_prefix}-{forecast_date.isoformat()}",
        published_at=published_at,
        forecast_date=forecast_date,
        min_temp=_as_int(item.get("min_temp")),
        max_temp=_as_int(item.get("max_temp")),
        wind_speed=_as_int(item.get("wind_speed")),
        wind_direction=item.get("wind_direction") or None,
        description=str(item.get("description") or "").strip(),
        wind_details=str(item.get("wind_details") or ""),
        rainfall=rainfall_text,
        rainfall_min=rainfall_min,
        rainfall_max=rainfall_max,
        visibility=visibility,
        visibility_code=parse_visibility_code(visibility),
        comments=item.get("comments") or None,
    )


def _parse_published_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str) and value.strip():
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def normalize_forecast_batch(
    items: Iterable[dict[str, Any]],
    logger: logging.Logger,
    *,
    now: datetime | None = None,
) -> tuple[list[ForecastRecord], int]:
    """Normalize feed items, skipping (and logging) any that cannot be resolved.

    Returns the records plus the number of skipped items. One bad item never
    aborts the batch.
    """
    records: list[ForecastRecord] = []
    skipped = 0
    fallback_published = now or datetime.now(UTC)
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Skipping feed item %d: expected object", index)
            skipped += 1
            continue
        published_at = _parse_published_at(item.get("published_at")) or fallback_published
        try:
            records.append(build_record(item, published_at))
        except (DateParseError, ValidationError) as exc:
            logger.warning("Skipping feed item %d: %s", index, exc)
            skipped += 1
    return records, skipped
