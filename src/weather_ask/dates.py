"""Resolution of symbolic query dates and free-text feed dates."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from .exceptions import DateParseError

Clock = Callable[[], date]

OPEN_BOUND_KEYWORDS = frozenset({"first_record", "last_record"})

_TEXT_DATE_FORMATS = (
    "%d %B %Y",
    "%d %b %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d/%m/%Y",
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
)
_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return datetime.now(UTC).date()


def resolve_date_token(token: str, today: date | None = None) -> str:
    """Resolve 'today' to an ISO date; concrete dates pass through unchanged."""
    if token == "today":
        return (today or utc_today()).isoformat()
    return token


def resolve_range_bound(token: str, today: date | None = None) -> str | None:
    """Resolve a date-range bound; first_record/last_record mean an open bound."""
    if token in OPEN_BOUND_KEYWORDS:
        return None
    return resolve_date_token(token, today)


def _parse_direct(text: str) -> date | None:
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return parsed.astimezone(UTC).date() if parsed.tzinfo else parsed.date()


def _parse_text(text: str) -> date | None:
    normalized = " ".join(text.replace(",", " ").split()) if "," in text else text
    for fmt in _TEXT_DATE_FORMATS:
        for candidate in (text, normalized):
            try:
                parsed = datetime.strptime(candidate, fmt)
            except ValueError:
                continue
            return parsed.astimezone(UTC).date() if parsed.tzinfo else parsed.date()
    return None


def _strip_weekday(text: str) -> str | None:
    head, sep, tail = text.partition(",")
    if sep and head.strip().lower() in _WEEKDAYS:
        return tail.strip()
    first, _, rest = text.partition(" ")
    if first.lower() in _WEEKDAYS and rest:
        return rest.strip()
    return None


def parse_forecast_date(label: str, reference: datetime) -> date:
    """Turn a feed heading such as 'Tomorrow' or 'Thursday, 13 February 2025' into a date.

    Stages: direct ISO parse, relative keyword against ``reference``, weekday
    label stripped and retried, then a raw parse of the whole label.
    """
    text = label.strip()
    if not text:
        raise DateParseError("Invalid forecast date: empty label")

    direct = _parse_direct(text)
    if direct is not None:
        return direct

    ref_date = reference.astimezone(UTC).date() if reference.tzinfo else reference.date()
    lowered = text.lower()
    if lowered == "today":
        return ref_date
    if lowered == "tomorrow":
        return ref_date + timedelta(days=1)

    stripped = _strip_weekday(text)
    if stripped:
        parsed = _parse_direct(stripped) or _parse_text(stripped)
        if parsed is not None:
            return parsed

    parsed = _parse_text(text)
    if parsed is not None:
        return parsed
    raise DateParseError(f"Invalid forecast date: {label!r}")


def prompt_dates(today: date) -> dict[str, str]:
    """Calendar anchors substituted into the intent prompt's examples."""
    # Weeks run Sunday..Saturday.
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    week_end = week_start + timedelta(days=6)
    last_month_end = today.replace(day=1) - timedelta(days=1)
    last_month_start = last_month_end.replace(day=1)
    return {
        "TODAY_DATE": today.isoformat(),
        "TOMORROW_DATE": (today + timedelta(days=1)).isoformat(),
        "WEEK_START": week_start.isoformat(),
        "WEEK_END": week_end.isoformat(),
        "LAST_MONTH_START": last_month_start.isoformat(),
        "LAST_MONTH_END": last_month_end.isoformat(),
        "YEAR_START": today.replace(month=1, day=1).isoformat(),
    }
