from datetime import datetime, date, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_timezone(tz_name: str | None) -> bool:
    if not tz_name:
        return False
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def now_for_tz(tz_name: str | None, reference_utc: datetime | None = None) -> datetime:
    """Return the current wall-clock time in the user's timezone (UTC fallback)."""
    now = reference_utc or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if is_valid_timezone(tz_name):
        return now.astimezone(ZoneInfo(tz_name))
    return now.astimezone(timezone.utc)


def today_for_tz(tz_name: str | None, reference_utc: datetime | None = None) -> date:
    """Return today's date in the user's timezone."""
    return now_for_tz(tz_name, reference_utc).date()


def tomorrow_of(d: date) -> date:
    return d + timedelta(days=1)


def yesterday_of(d: date) -> date:
    return d - timedelta(days=1)


def as_date(value: date | datetime | str | None) -> date | None:
    """Day-truncate a date, datetime or ISO string; None stays None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def last_day_of_month(d: date) -> int:
    first_of_next = (d.replace(day=28) + timedelta(days=4)).replace(day=1)
    return (first_of_next - timedelta(days=1)).day
