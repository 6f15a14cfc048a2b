"""Forecast store contract and its SQLAlchemy/SQLite implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .exceptions import DatabaseError
from .query.compiler import QueryPlan
from .records import ForecastRecord

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS forecast_items (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        published_at    TEXT NOT NULL,
        forecast_date   TEXT NOT NULL,
        min_temp        INTEGER,
        max_temp        INTEGER,
        wind_speed      INTEGER,
        wind_direction  TEXT,
        description     TEXT,
        wind_details    TEXT,
        visibility      TEXT,
        visibility_code TEXT,
        comments        TEXT,
        guid            TEXT UNIQUE NOT NULL,
        created_at      DATETIME DEFAULT CURRENT_TIMESTAMP,
        rainfall        TEXT,
        rainfall_min    REAL,
        rainfall_max    REAL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_forecast_published
        ON forecast_items (forecast_date, published_at)
    """,
)

_INSERT_COLUMNS = (
    "published_at",
    "forecast_date",
    "min_temp",
    "max_temp",
    "wind_speed",
    "wind_direction",
    "description",
    "wind_details",
    "visibility",
    "visibility_code",
    "comments",
    "guid",
    "rainfall",
    "rainfall_min",
    "rainfall_max",
)
_INSERT_SQL = (
    f"INSERT OR IGNORE INTO forecast_items ({', '.join(_INSERT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _INSERT_COLUMNS)})"
)
_COUNT_SQL = "SELECT COUNT(*) FROM forecast_items"


class ForecastStore(ABC):
    """Contract for the relational store that holds forecast_items."""

    @abstractmethod
    def execute(self, plan: QueryPlan) -> list[dict[str, Any]]:
        """Run a compiled plan and return rows as dictionaries."""

    @abstractmethod
    def insert_records(self, records: Iterable[ForecastRecord]) -> int:
        """Append records, ignoring guids already stored. Returns rows inserted."""

    @abstractmethod
    def close(self) -> None:
        """Release store resources."""


class SQLiteForecastStore(ForecastStore):
    """SQLite-backed store; needs SQLite >= 3.25 for window functions."""

    def __init__(self, database_url: str, logger: logging.Logger) -> None:
        self.logger = logger
        if not database_url.startswith("sqlite"):
            raise DatabaseError("SQLiteForecastStore requires a sqlite:// database URL.")
        engine_kwargs: dict[str, Any] = {}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so an in-memory database outlives each statement.
            engine_kwargs = {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        self._engine: Engine = create_engine(database_url, **engine_kwargs)

    def __enter__(self) -> SQLiteForecastStore:
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._engine.dispose()

    def create_schema(self) -> None:
        try:
            with self._engine.begin() as conn:
                for statement in SCHEMA_STATEMENTS:
                    conn.exec_driver_sql(statement)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed creating schema: {exc}") from exc

    def execute(self, plan: QueryPlan) -> list[dict[str, Any]]:
        try:
            with self._engine.connect() as conn:
                result = conn.exec_driver_sql(plan.sql, plan.params)
                return [dict(row) for row in result.mappings()]
        except (SQLAlchemyError, OverflowError) as exc:
            raise DatabaseError(f"Query execution failed: {exc}") from exc

    def insert_records(self, records: Iterable[ForecastRecord]) -> int:
        rows = [
            tuple(record.to_row()[column] for column in _INSERT_COLUMNS) for record in records
        ]
        if not rows:
            return 0
        try:
            with self._engine.begin() as conn:
                before = conn.exec_driver_sql(_COUNT_SQL).scalar_one()
                conn.exec_driver_sql(_INSERT_SQL, rows)
                inserted = conn.exec_driver_sql(_COUNT_SQL).scalar_one() - before
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed inserting forecasts: {exc}") from exc
        self.logger.info("Inserted %d/%d forecast records", inserted, len(rows))
        return inserted

    def latest_published_at(self) -> str | None:
        rows = self.execute(
            QueryPlan(sql="SELECT MAX(published_at) AS latest FROM forecast_items")
        )
        return rows[0]["latest"] if rows else None

    def future_forecasts(self, today: date) -> list[dict[str, Any]]:
        """Every issuance for today onward, newest issuance first within a date."""
        return self.execute(
            QueryPlan(
                sql=(
                    "SELECT * FROM forecast_items WHERE forecast_date >= ? "
                    "ORDER BY forecast_date ASC, published_at DESC"
                ),
                params=(today.isoformat(),),
            )
        )

    def forecasts_for_date(self, day: date) -> list[dict[str, Any]]:
        return self.execute(
            QueryPlan(
                sql=(
                    "SELECT * FROM forecast_items WHERE forecast_date = ? "
                    "ORDER BY published_at DESC"
                ),
                params=(day.isoformat(),),
            )
        )
