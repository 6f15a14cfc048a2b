"""Typed intent models validated at the LLM trust boundary."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator, model_validator

from .whitelist import (
    DATE_KEYWORDS,
    NULL_OPERATORS,
    NUMERIC_FIELDS,
    NUMERIC_OPERATORS,
    AllowedField,
    Aggregation,
    Extreme,
    Operator,
    QueryType,
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# SQLite binds integers as signed 64-bit.
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def is_concrete_date(value: str) -> bool:
    """True when value is a real calendar date in YYYY-MM-DD form."""
    if not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def check_date_token(value: str) -> str:
    """Accept YYYY-MM-DD dates or one of the date keywords."""
    if value in DATE_KEYWORDS or is_concrete_date(value):
        return value
    raise ValueError(
        "Date must be YYYY-MM-DD format or special keyword (today, first_record, last_record)"
    )


class Condition(BaseModel):
    """One whitelisted field/operator/value predicate."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    field: AllowedField
    operator: Operator
    value: StrictStr | StrictInt | StrictFloat | None

    @model_validator(mode="after")
    def check_combination(self) -> Condition:
        if isinstance(self.value, int) and not _INT_MIN <= self.value <= _INT_MAX:
            raise ValueError("Numeric value is out of range")
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise ValueError("Numeric value must be finite")
        if self.operator in NUMERIC_OPERATORS:
            if self.field not in NUMERIC_FIELDS or not isinstance(self.value, (int, float)):
                raise ValueError(
                    f"Operator '{self.operator}' requires a numeric field and a numeric value"
                )
        elif self.operator == "contains":
            if not isinstance(self.value, str):
                raise ValueError("Operator 'contains' requires a string value")
        elif self.operator in NULL_OPERATORS:
            if self.value is not None:
                raise ValueError(f"Operator '{self.operator}' requires a null value")
        return self


class DateRange(BaseModel):
    """Inclusive date range whose bounds may be keywords."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    start: StrictStr
    end: StrictStr

    @field_validator("start", "end")
    @classmethod
    def check_bound(cls, value: str) -> str:
        return check_date_token(value)

    @model_validator(mode="after")
    def check_order(self) -> DateRange:
        if is_concrete_date(self.start) and is_concrete_date(self.end):
            if date.fromisoformat(self.start) > date.fromisoformat(self.end):
                raise ValueError("Start date must not be after end date")
        return self


class QueryIntent(BaseModel):
    """Structured representation of a weather question."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    query_type: QueryType
    conditions: list[Condition] | None = Field(default=None, max_length=5)
    date_range: DateRange | None = None
    fields: list[AllowedField] | None = Field(default=None, max_length=3)
    aggregation: Aggregation | None = None
    target_date: StrictStr | None = None
    compare_dates: tuple[StrictStr, StrictStr] | None = None
    limit: StrictInt | None = Field(default=None, ge=1, le=10)
    extreme: Extreme | None = None

    @field_validator("target_date")
    @classmethod
    def check_target_date(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return check_date_token(value)

    @field_validator("compare_dates")
    @classmethod
    def check_compare_dates(cls, value: tuple[str, str] | None) -> tuple[str, str] | None:
        if value is None:
            return value
        return (check_date_token(value[0]), check_date_token(value[1]))

    @property
    def primary_field(self) -> str:
        """First requested field, defaulting to max_temp."""
        return self.fields[0] if self.fields else "max_temp"


class RejectedResponse(BaseModel):
    """Reserved LLM output for manipulation or injection attempts."""

    model_config = ConfigDict(extra="ignore")

    error: Literal["rejected"]
    reason: str | None = None


class UnanswerableResponse(BaseModel):
    """Reserved LLM output for questions outside the weather domain."""

    model_config = ConfigDict(extra="ignore")

    error: Literal["unanswerable"]
    reason: str | None = None
