from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from ..core.errors import InvalidInput

PRESETS = ("today", "yesterday", "this-week", "last-week", "this-month", "last-month", "this-year", "all")

def ensure_utc(dt: Optional[datetime], tz_name: str = "UTC") -> Optional[datetime]:
    """Aware UTC datetime; naive input is taken to be in ``tz_name``."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt.astimezone(timezone.utc)

def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise InvalidInput(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc

def noon_of(day: date, tz_name: str = "UTC") -> datetime:
    """Noon of ``day`` in the given zone, as aware UTC."""
    local = datetime.combine(day, time(12, 0), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)

def preset_range(preset: str, now: datetime, tz_name: str = "UTC") -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Resolve a named date preset into (from, to) UTC bounds relative to ``now``.
    Weeks start on Monday. Day boundaries are midnights in ``tz_name`` so the
    ranges follow the board's calendar, not UTC's. "all" is unbounded.
    """
    if preset not in PRESETS:
        raise InvalidInput(f"Unknown date preset {preset!r}")
    if preset == "all":
        return None, None

    tz = ZoneInfo(tz_name)
    local_now = now.astimezone(tz)

    def midnight(d: date) -> datetime:
        return datetime.combine(d, time(0, 0), tzinfo=tz).astimezone(timezone.utc)

    today = local_now.date()
    monday = today - timedelta(days=today.weekday())
    first_of_month = today.replace(day=1)
    now_utc = now.astimezone(timezone.utc)

    if preset == "today":
        return midnight(today), now_utc
    if preset == "yesterday":
        return midnight(today - timedelta(days=1)), midnight(today)
    if preset == "this-week":
        return midnight(monday), now_utc
    if preset == "last-week":
        return midnight(monday - timedelta(days=7)), midnight(monday)
    if preset == "this-month":
        return midnight(first_of_month), now_utc
    if preset == "last-month":
        last_month = (first_of_month - timedelta(days=1)).replace(day=1)
        return midnight(last_month), midnight(first_of_month)
    # this-year
    return midnight(today.replace(month=1, day=1)), now_utc

def day_range(start: Optional[str], end: Optional[str], tz_name: str = "UTC") -> Tuple[Optional[datetime], Optional[datetime]]:
    """Explicit YYYY-MM-DD bounds; both days are included in full."""
    tz = ZoneInfo(tz_name)
    lo = hi = None
    if start:
        lo = datetime.combine(parse_day(start), time(0, 0), tzinfo=tz).astimezone(timezone.utc)
    if end:
        hi = datetime.combine(parse_day(end) + timedelta(days=1), time(0, 0), tzinfo=tz).astimezone(timezone.utc)
        hi -= timedelta(microseconds=1)
    if lo and hi and lo > hi:
        raise InvalidInput("Report range ends before it starts")
    return lo, hi
