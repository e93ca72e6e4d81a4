"""Timestamp parsing and date-bucket helpers."""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

_RELATIVE_RE = re.compile(r"^(\d+)\s*(minute|hour|day|week|month)s?\s*ago$", re.IGNORECASE)


def parse_timestamp(ts_value: Any) -> datetime | None:
    """Parse a transcript timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings ("2026-02-13T12:00:00.000Z") and epoch numbers
    in seconds or milliseconds. Returns None for anything unparseable.
    """
    if isinstance(ts_value, bool):
        return None
    if isinstance(ts_value, (int, float)):
        seconds = ts_value / 1000 if ts_value > 1e12 else ts_value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(ts_value, str) and ts_value:
        try:
            parsed = datetime.fromisoformat(ts_value.replace("Z", "+00:00"))
        except ValueError:
            try:
                return parse_timestamp(float(ts_value))
            except ValueError:
                return None
        return ensure_aware(parsed).astimezone(timezone.utc)
    return None


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as local time."""
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def to_date_key(dt: datetime) -> str:
    """UTC calendar date used as the daily bucket key."""
    return ensure_aware(dt).astimezone(timezone.utc).date().isoformat()


def local_hour(dt: datetime) -> str:
    """Hour of day (0-23) in local time, as the string key used in hourly maps."""
    return str(ensure_aware(dt).astimezone().hour)


def today_key(now: datetime | None = None) -> str:
    if now is None:
        now = datetime.now(timezone.utc)
    return to_date_key(now)


def days_since(dt: datetime, now: datetime | None = None) -> float:
    if now is None:
        now = datetime.now(timezone.utc)
    delta = ensure_aware(now) - ensure_aware(dt)
    return delta.total_seconds() / 86400


def parse_date(date_str: str, now: datetime | None = None) -> datetime:
    """Parse a human-friendly date.

    Supports "N minutes/hours/days/weeks/months ago", "today", "yesterday"
    (both at local midnight) and ISO dates. Raises ValueError otherwise.
    """
    if now is None:
        now = datetime.now().astimezone()
    now = ensure_aware(now)
    text = date_str.strip()

    match = _RELATIVE_RE.match(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        if unit == "minute":
            return now - timedelta(minutes=amount)
        if unit == "hour":
            return now - timedelta(hours=amount)
        if unit == "day":
            return now - timedelta(days=amount)
        if unit == "week":
            return now - timedelta(weeks=amount)
        return _subtract_months(now, amount)

    lowered = text.lower()
    if lowered == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if lowered == "yesterday":
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight - timedelta(days=1)

    parsed = parse_timestamp(text)
    if parsed is None:
        try:
            parsed = ensure_aware(datetime.combine(date.fromisoformat(text), datetime.min.time()))
        except ValueError:
            raise ValueError(f"Unrecognized date: {date_str!r}") from None
    return parsed


def _subtract_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last valid day, e.g. Mar 31 - 1 month -> Feb 28/29
    day = dt.day
    while day > 28:
        try:
            return dt.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1
    return dt.replace(year=year, month=month, day=day)
