"""Deterministic template answers used when answer generation fails."""

from __future__ import annotations

from typing import Any, assert_never

from ..intent.models import QueryIntent
from .citations import DEFAULT_MAX_CITATIONS, Citation, latest_per_date
from .formatting import (
    field_unit,
    format_date_long,
    format_date_short,
    format_field_name,
    format_rainfall,
    plural,
)

NO_DATA_ANSWER = (
    "I couldn't find any weather data matching your question. "
    "The data may not be available for that time period."
)


def _has_temps(row: dict[str, Any]) -> bool:
    return row.get("min_temp") is not None and row.get("max_temp") is not None


def _temperature_sentence(row: dict[str, Any]) -> str:
    if not _has_temps(row):
        return ""
    return f" Temperature: {row['min_temp']}°C to {row['max_temp']}°C."


def _forecast_sentence(row: dict[str, Any]) -> str:
    text = f"The forecast for {format_date_long(row['forecast_date'])}: {row.get('description')}."
    text += _temperature_sentence(row)
    wind_parts = [
        f"{row['wind_speed']}mph" if row.get("wind_speed") is not None else None,
        row.get("wind_direction"),
    ]
    wind = " ".join(part for part in wind_parts if part)
    if wind:
        text += f" Wind: {wind}."
    rainfall = row.get("rainfall")
    if rainfall and rainfall != "0":
        text += f" Rainfall: {format_rainfall(rainfall)}."
    if row.get("visibility"):
        text += f" Visibility: {row['visibility']}."
    return text


def _format_number(value: Any) -> str:
    rounded = round(float(value), 1)
    return f"{rounded:g}"


def _compare_sentence(rows: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    unique = latest_per_date(rows)
    if len(unique) >= 2:
        first, second = unique[0], unique[1]
        first_day = format_date_short(first["forecast_date"])
        second_day = format_date_short(second["forecast_date"])
        if _has_temps(first) and _has_temps(second):
            diff = second["max_temp"] - first["max_temp"]
            if diff > 0:
                comparison = f"{abs(diff)}°C warmer"
            elif diff < 0:
                comparison = f"{abs(diff)}°C cooler"
            else:
                comparison = "the same temperature"
            text = (
                f"Comparing {first_day} ({first['min_temp']}-{first['max_temp']}°C) "
                f"vs {second_day} ({second['min_temp']}-{second['max_temp']}°C). "
                f"{second_day} is {comparison}."
            )
        else:
            text = (
                f"Comparing {first_day}: {first.get('description')} "
                f"vs {second_day}: {second.get('description')}."
            )
        return text, [first, second]
    row = unique[0]
    temps = f": {row['min_temp']}-{row['max_temp']}°C" if _has_temps(row) else ""
    text = (
        f"Only found data for {format_date_short(row['forecast_date'])}{temps}. "
        f"{row.get('description')}"
    )
    return text, [row]


def build_fallback_answer(
    intent: QueryIntent,
    rows: list[dict[str, Any]],
    *,
    max_citations: int = DEFAULT_MAX_CITATIONS,
) -> tuple[str, list[Citation]]:
    """Template answer text plus citations, grouped the same way as build_citations."""
    if not rows:
        return NO_DATA_ANSWER, []

    query_type = intent.query_type
    cited: list[dict[str, Any]] = []
    first = rows[0]

    if query_type in ("current_conditions", "forecast_for_date"):
        answer = _forecast_sentence(first)
        cited = [first]

    elif query_type in ("last_day_with", "first_day_with"):
        qualifier = "most recent" if query_type == "last_day_with" else "next"
        answer = (
            f"The {qualifier} matching day was {format_date_long(first['forecast_date'])}. "
            f"The forecast was: {first.get('description')}."
        ) + _temperature_sentence(first)
        cited = [first]

    elif query_type == "last_day_without":
        answer = (
            "The most recent day without that condition was "
            f"{format_date_long(first['forecast_date'])}. "
            f"The forecast was: {first.get('description')}."
        ) + _temperature_sentence(first)
        cited = [first]

    elif query_type == "average_over_range":
        field = intent.primary_field
        if not first.get("count"):
            answer = "No data available for that time period."
        else:
            average = _format_number(first["result"]) if first.get("result") is not None else "N/A"
            answer = (
                f"The average {format_field_name(field)} was {average}{field_unit(field)} "
                f"over {first['count']} forecast(s) from {format_date_short(first['start_date'])} "
                f"to {format_date_short(first['end_date'])}."
            )

    elif query_type == "count_days_with":
        count = int(first.get("count") or 0)
        verb = "was" if count == 1 else "were"
        answer = f"There {verb} {plural(count, 'day')} matching your criteria."

    elif query_type == "compare_dates":
        answer, cited = _compare_sentence(rows)

    elif query_type == "extreme_value":
        field = intent.primary_field
        value = first.get(field)
        day = format_date_long(first["forecast_date"])
        if value is not None:
            direction = "lowest" if intent.extreme == "min" else "highest"
            shown = format_rainfall(value) if field == "rainfall" else f"{value}{field_unit(field)}"
            answer = f"The {direction} {format_field_name(field)} was {shown} on {day}."
        else:
            answer = f"Found a matching day on {day}: {first.get('description')}"
        cited = [first]

    elif query_type == "list_days_with":
        unique = latest_per_date(rows)
        days = ", ".join(format_date_short(row["forecast_date"]) for row in unique)
        answer = f"Found {plural(len(unique), 'matching day')}: {days}."
        cited = unique

    elif query_type == "period_summary":
        unique = latest_per_date(rows)
        summaries = []
        for row in unique:
            temps = f"{row['min_temp']}-{row['max_temp']}°C, " if _has_temps(row) else ""
            summaries.append(
                f"{format_date_short(row['forecast_date'])}: {temps}{row.get('description')}"
            )
        answer = ". ".join(summaries)
        cited = unique

    elif query_type == "max_streak":
        days = int(first.get("streak_length") or 0)
        if days == 0:
            answer = "No matching streak found."
        else:
            answer = (
                f"The longest streak was {plural(days, 'consecutive day')}, "
                f"from {format_date_short(first['start_date'])} "
                f"to {format_date_short(first['end_date'])}."
            )

    else:
        assert_never(query_type)

    return answer, [Citation.from_row(row) for row in cited[:max_citations]]
