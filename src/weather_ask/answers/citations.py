"""Evidence records returned alongside answers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from ..intent.whitelist import AGGREGATE_QUERY_TYPES, MULTI_DATE_QUERY_TYPES

DEFAULT_MAX_CITATIONS = 10


class Citation(BaseModel):
    """Minimal pointer back to the forecast row an answer relies on."""

    forecast_date: str
    published_at: str
    description: str | None = None
    min_temp: int | None = None
    max_temp: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Citation:
        min_temp = row.get("min_temp")
        max_temp = row.get("max_temp")
        has_temps = min_temp is not None and max_temp is not None
        return cls(
            forecast_date=str(row.get("forecast_date")),
            published_at=str(row.get("published_at")),
            description=row.get("description"),
            min_temp=min_temp if has_temps else None,
            max_temp=max_temp if has_temps else None,
        )

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "forecast_date": self.forecast_date,
            "published_at": self.published_at,
            "description": self.description,
        }
        if self.min_temp is not None and self.max_temp is not None:
            payload["min_temp"] = self.min_temp
            payload["max_temp"] = self.max_temp
        return payload


def latest_per_date(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """One row per forecast_date, keeping the most recently published, in date order."""
    by_date: dict[str, dict[str, Any]] = {}
    for row in rows:
        key = str(row.get("forecast_date"))
        current = by_date.get(key)
        if current is None or str(row.get("published_at") or "") > str(
            current.get("published_at") or ""
        ):
            by_date[key] = row
    return [by_date[key] for key in sorted(by_date)]


def build_citations(
    query_type: str,
    rows: list[dict[str, Any]],
    *,
    max_citations: int = DEFAULT_MAX_CITATIONS,
) -> list[Citation]:
    """Citations for a result set; aggregate query types carry none."""
    if not rows or query_type in AGGREGATE_QUERY_TYPES:
        return []
    if query_type in MULTI_DATE_QUERY_TYPES:
        selected = latest_per_date(rows)
    else:
        selected = rows[:1]
    return [Citation.from_row(row) for row in selected[:max_citations]]
