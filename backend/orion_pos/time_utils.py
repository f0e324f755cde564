from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# Rolling windows used by list filters and the dashboard
PERIOD_DAYS = {
    "week": 7,
    "month": 30,
}


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def local_now(tz_name: str, now: Optional[datetime] = None) -> datetime:
    """Business-local wall clock (aware) for a UTC-naive instant."""
    now = now or utcnow()
    return now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))


def local_date(dt: datetime, tz_name: str) -> date:
    """Calendar date of a UTC-naive timestamp in the business timezone."""
    return local_now(tz_name, dt).date()


def local_day_start_utc(day: date, tz_name: str) -> datetime:
    """UTC-naive instant at which a business-local day begins."""
    start = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def period_start(period: Optional[str], tz_name: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Lower bound (UTC-naive, inclusive) for a named reporting period.

    - "today": start of the current local day
    - "week": start of the local day 7 days ago
    - "month": start of the local day 30 days ago
    - None / "" / "all": no bound

    Raises ValueError for anything else.
    """
    if period in (None, "", "all"):
        return None

    today = local_now(tz_name, now).date()
    if period == "today":
        return local_day_start_utc(today, tz_name)
    if period in PERIOD_DAYS:
        return local_day_start_utc(today - timedelta(days=PERIOD_DAYS[period]), tz_name)

    raise ValueError("period must be one of: today, week, month")
