"""Closed enumerations that bound what an LLM-produced intent may reference."""

from __future__ import annotations

from typing import Literal, get_args

QueryType = Literal[
    "forecast_for_date",
    "last_day_with",
    "last_day_without",
    "first_day_with",
    "average_over_range",
    "count_days_with",
    "compare_dates",
    "current_conditions",
    "extreme_value",
    "list_days_with",
    "period_summary",
    "max_streak",
]

AllowedField = Literal[
    "min_temp",
    "max_temp",
    "wind_speed",
    "wind_direction",
    "description",
    "rainfall",
    "visibility",
]

Operator = Literal[
    "eq",
    "ne",
    "gt",
    "gte",
    "lt",
    "lte",
    "contains",
    "is_null",
    "is_not_null",
]

DateKeyword = Literal["today", "first_record", "last_record"]
Extreme = Literal["max", "min"]
Aggregation = Literal["avg", "min", "max", "count", "sum"]

QUERY_TYPES: tuple[str, ...] = get_args(QueryType)
ALLOWED_FIELDS: tuple[str, ...] = get_args(AllowedField)
ALLOWED_OPERATORS: tuple[str, ...] = get_args(Operator)
DATE_KEYWORDS: tuple[str, ...] = get_args(DateKeyword)

NUMERIC_FIELDS: frozenset[str] = frozenset({"min_temp", "max_temp", "wind_speed"})
NUMERIC_OPERATORS: frozenset[str] = frozenset({"gt", "gte", "lt", "lte"})
NULL_OPERATORS: frozenset[str] = frozenset({"is_null", "is_not_null"})

# Whitelisted field -> column identifier. The only source of identifiers in compiled SQL.
FIELD_COLUMNS: dict[str, str] = {
    "min_temp": "min_temp",
    "max_temp": "max_temp",
    "wind_speed": "wind_speed",
    "wind_direction": "wind_direction",
    "description": "description",
    "rainfall": "rainfall",
    "visibility": "visibility",
}

# Query types whose result rows are aggregates rather than forecast records.
AGGREGATE_QUERY_TYPES: frozenset[str] = frozenset(
    {"average_over_range", "count_days_with", "max_streak"}
)
# Query types that may return several forecast dates.
MULTI_DATE_QUERY_TYPES: frozenset[str] = frozenset(
    {"compare_dates", "list_days_with", "period_summary"}
)
