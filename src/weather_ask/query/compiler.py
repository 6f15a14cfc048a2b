"""Compile validated intents into parameterized SQL over forecast_items.

Identifiers only ever come from FIELD_COLUMNS; every condition value, date
bound and limit is bound as a positional ``?`` parameter. The compiler trusts
its input: intents must come from ``validate_intent``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, assert_never

from ..dates import resolve_date_token, resolve_range_bound
from ..exceptions import CompileError
from ..intent.models import Condition, DateRange, QueryIntent
from ..intent.whitelist import FIELD_COLUMNS

DEFAULT_LIST_LIMIT = 7
MAX_LIST_LIMIT = 10

# Characters trimmed from both ends of a rainfall fragment: unit and qualifier
# words ("mm", "hills", "risk of ... on") plus separators.
_RAINFALL_TRIM_CHARS = " abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass(frozen=True, slots=True)
class QueryPlan:
    """SQL template plus positional parameters, in placeholder order."""

    sql: str
    params: tuple[Any, ...] = field(default_factory=tuple)


class _ParamList:
    """Collects parameters in the order their placeholders appear."""

    def __init__(self) -> None:
        self._values: list[Any] = []

    def bind(self, value: Any) -> str:
        self._values.append(value)
        return "?"

    def freeze(self) -> tuple[Any, ...]:
        return tuple(self._values)


def column_for(field_name: str) -> str:
    """Map a whitelisted field name to its column identifier."""
    try:
        return FIELD_COLUMNS[field_name]
    except KeyError as exc:
        raise CompileError(f"Field not in whitelist: {field_name!r}") from exc


def _strip_rainfall_words(expr: str) -> str:
    return f"TRIM({expr}, '{_RAINFALL_TRIM_CHARS}')"


def _rainfall_upper_bound(fragment: str) -> str:
    """Upper bound of one 'N' or 'N-M' fragment, already stripped of words."""
    return (
        f"CAST(CASE WHEN INSTR({fragment}, '-') > 0 "
        f"THEN SUBSTR({fragment}, INSTR({fragment}, '-') + 1) "
        f"ELSE {fragment} END AS REAL)"
    )


def rainfall_numeric_expr(column: str = "rainfall") -> str:
    """Pure scalar expression giving the worst-case rainfall amount of a row.

    Shapes: null/blank/'0' -> 0; bare number -> that number; 'N-M' -> M;
    'A-B, C-D hills' -> max of both upper bounds. Contains no subqueries or
    parameters so it nests inside MIN/MAX aggregates.
    """
    whole = _strip_rainfall_words(column)
    first_half = _strip_rainfall_words(f"SUBSTR({column}, 1, INSTR({column}, ',') - 1)")
    second_half = _strip_rainfall_words(f"SUBSTR({column}, INSTR({column}, ',') + 1)")
    return (
        "(CASE"
        f" WHEN {column} IS NULL OR TRIM({column}) = '' OR {column} = '0' THEN 0"
        f" WHEN {column} NOT LIKE '%-%' AND {column} NOT LIKE '%,%'"
        f" THEN CAST({whole} AS REAL)"
        f" WHEN {column} NOT LIKE '%,%' THEN {_rainfall_upper_bound(whole)}"
        f" ELSE MAX({_rainfall_upper_bound(first_half)}, {_rainfall_upper_bound(second_half)})"
        " END)"
    )


def numeric_field_expr(field_name: str) -> str:
    """Numeric view of a whitelisted field for comparisons and aggregates."""
    column = column_for(field_name)
    if field_name == "rainfall":
        return rainfall_numeric_expr(column)
    return f"CAST({column} AS REAL)"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards in a parameter value (used with ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _condition_sql(condition: Condition, params: _ParamList) -> str:
    column = column_for(condition.field)
    operator = condition.operator
    if operator == "eq":
        return f"{column} = {params.bind(condition.value)}"
    elif operator == "ne":
        return f"{column} != {params.bind(condition.value)}"
    elif operator == "gt":
        return f"CAST({column} AS REAL) > {params.bind(condition.value)}"
    elif operator == "gte":
        return f"CAST({column} AS REAL) >= {params.bind(condition.value)}"
    elif operator == "lt":
        return f"CAST({column} AS REAL) < {params.bind(condition.value)}"
    elif operator == "lte":
        return f"CAST({column} AS REAL) <= {params.bind(condition.value)}"
    elif operator == "contains":
        pattern = f"%{escape_like(str(condition.value))}%"
        return f"{column} LIKE {params.bind(pattern)} ESCAPE '\\'"
    elif operator == "is_null":
        return f"{column} IS NULL"
    elif operator == "is_not_null":
        return f"{column} IS NOT NULL"
    else:
        assert_never(operator)


def condition_clause(
    conditions: list[Condition] | None,
    params: _ParamList,
    *,
    negate: bool = False,
) -> str:
    """AND-join conditions; ``negate`` wraps the whole conjunction in one NOT."""
    if not conditions:
        return "1=1"
    clause = " AND ".join(f"({_condition_sql(c, params)})" for c in conditions)
    return f"NOT ({clause})" if negate else clause


def date_range_clause(
    date_range: DateRange | None,
    params: _ParamList,
    today: date | None,
) -> str | None:
    """Filter on forecast_date; keyword bounds first_record/last_record are open."""
    if date_range is None:
        return None
    clauses: list[str] = []
    start = resolve_range_bound(date_range.start, today)
    if start is not None:
        clauses.append(f"forecast_date >= {params.bind(start)}")
    end = resolve_range_bound(date_range.end, today)
    if end is not None:
        clauses.append(f"forecast_date <= {params.bind(end)}")
    return " AND ".join(clauses) if clauses else None


def best_forecast_cte(date_clause: str | None) -> str:
    """CTE selecting one record per forecast_date.

    Prefers the latest same-day issuance, else the latest issuance strictly
    before the date. Issuances published after the date are never chosen.
    """
    where = f"WHERE {date_clause}" if date_clause else ""
    return f"""best_forecast AS (
        SELECT fc.*
        FROM forecast_items fc
        INNER JOIN (
            SELECT
                forecast_date,
                COALESCE(
                    MAX(CASE WHEN DATE(published_at) = forecast_date THEN published_at END),
                    MAX(CASE WHEN DATE(published_at) < forecast_date THEN published_at END)
                ) AS best_pub
            FROM forecast_items
            {where}
            GROUP BY forecast_date
        ) best ON fc.forecast_date = best.forecast_date AND fc.published_at = best.best_pub
    )"""


def _require(value: Any, name: str, query_type: str) -> Any:
    if value is None:
        raise CompileError(f"{query_type} intent reached the compiler without {name}")
    return value


def _day_match(
    intent: QueryIntent,
    today: date | None,
    *,
    negate: bool,
    order: str,
) -> QueryPlan:
    params = _ParamList()
    cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
    where = condition_clause(intent.conditions, params, negate=negate)
    sql = f"""
        WITH {cte}
        SELECT * FROM best_forecast
        WHERE {where}
        ORDER BY forecast_date {order}
        LIMIT 1
    """
    return QueryPlan(sql=sql, params=params.freeze())


def compile_intent(intent: QueryIntent, today: date | None = None) -> QueryPlan:
    """Translate a validated intent into a QueryPlan.

    ``today`` pins the date the 'today' keyword resolves to; it defaults to the
    current UTC date at call time.
    """
    query_type = intent.query_type

    if query_type == "current_conditions":
        params = _ParamList()
        sql = f"""
            SELECT * FROM forecast_items
            WHERE forecast_date = {params.bind(resolve_date_token("today", today))}
            ORDER BY published_at DESC
            LIMIT 1
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "forecast_for_date":
        target = _require(intent.target_date, "target_date", query_type)
        params = _ParamList()
        sql = f"""
            SELECT * FROM forecast_items
            WHERE forecast_date = {params.bind(resolve_date_token(target, today))}
            ORDER BY published_at DESC
            LIMIT 1
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "compare_dates":
        first, second = _require(intent.compare_dates, "compare_dates", query_type)
        params = _ParamList()
        first_param = params.bind(resolve_date_token(first, today))
        second_param = params.bind(resolve_date_token(second, today))
        sql = f"""
            SELECT fc.*
            FROM forecast_items fc
            INNER JOIN (
                SELECT forecast_date, MAX(published_at) AS max_pub
                FROM forecast_items
                WHERE forecast_date IN ({first_param}, {second_param})
                GROUP BY forecast_date
            ) latest ON fc.forecast_date = latest.forecast_date
                AND fc.published_at = latest.max_pub
            ORDER BY fc.forecast_date ASC
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "last_day_with":
        return _day_match(intent, today, negate=False, order="DESC")

    elif query_type == "last_day_without":
        return _day_match(intent, today, negate=True, order="DESC")

    elif query_type == "first_day_with":
        return _day_match(intent, today, negate=False, order="ASC")

    elif query_type == "average_over_range":
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        sql = f"""
            WITH {cte}
            SELECT
                AVG({numeric_field_expr(intent.primary_field)}) AS result,
                COUNT(*) AS count,
                MIN(forecast_date) AS start_date,
                MAX(forecast_date) AS end_date
            FROM best_forecast
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "count_days_with":
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        where = condition_clause(intent.conditions, params)
        sql = f"""
            WITH {cte}
            SELECT COUNT(*) AS count
            FROM best_forecast
            WHERE {where}
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "extreme_value":
        fields = _require(intent.fields, "fields", query_type)
        extreme = _require(intent.extreme, "extreme", query_type)
        aggregate = "MIN" if extreme == "min" else "MAX"
        expr = numeric_field_expr(fields[0])
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        sql = f"""
            WITH {cte}
            SELECT * FROM best_forecast
            WHERE {expr} = (
                SELECT {aggregate}({expr})
                FROM best_forecast
            )
            ORDER BY forecast_date DESC
            LIMIT 1
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "list_days_with":
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        where = condition_clause(intent.conditions, params)
        limit = min(intent.limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
        sql = f"""
            WITH {cte}
            SELECT * FROM best_forecast
            WHERE {where}
            ORDER BY forecast_date ASC
            LIMIT {params.bind(limit)}
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "period_summary":
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        sql = f"""
            WITH {cte}
            SELECT * FROM best_forecast
            ORDER BY forecast_date ASC
        """
        return QueryPlan(sql=sql, params=params.freeze())

    elif query_type == "max_streak":
        # Gaps and islands: day number minus rank is constant across a run of
        # consecutive dates and changes at every gap.
        params = _ParamList()
        cte = best_forecast_cte(date_range_clause(intent.date_range, params, today))
        where = condition_clause(intent.conditions, params)
        sql = f"""
            WITH {cte},
            matching_days AS (
                SELECT
                    forecast_date,
                    julianday(forecast_date) - ROW_NUMBER() OVER (ORDER BY forecast_date)
                        AS streak_group
                FROM best_forecast
                WHERE {where}
            ),
            streaks AS (
                SELECT
                    COUNT(*) AS streak_length,
                    MIN(forecast_date) AS start_date,
                    MAX(forecast_date) AS end_date
                FROM matching_days
                GROUP BY streak_group
            )
            SELECT streak_length, start_date, end_date
            FROM streaks
            ORDER BY streak_length DESC, start_date ASC
            LIMIT 1
        """
        return QueryPlan(sql=sql, params=params.freeze())

    else:
        assert_never(query_type)
