"""Helpers for formatting, parsing and computing tracked durations.

Durations are integer milliseconds everywhere. Formatting floors at zero, so
negative stored sums (manual corrections) display as "0m 0s".
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional

from ..core.errors import InvalidInput

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE

# "t" is the Norwegian "time" and is accepted as an hour suffix
_HOURS_RE = re.compile(r"(\d+)\s*[th]", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*m", re.IGNORECASE)
_SECONDS_RE = re.compile(r"(\d+)\s*s", re.IGNORECASE)


def _split(ms: int) -> tuple[int, int, int]:
    total_seconds = ms // MS_PER_SECOND
    return total_seconds // 3600, (total_seconds % 3600) // 60, total_seconds % 60


def format_duration(ms: Optional[int], short: bool = False) -> str:
    """Format milliseconds as a human-readable duration.

    Args:
        ms: Duration in milliseconds (None or non-positive renders as zero)
        short: Compact form with only the largest unit(s), e.g. "2h 34m"

    Returns:
        Formatted string like "1h 23m 4s", "45m" or "0m 0s"
    """
    if not ms or ms < 0:
        return "0m" if short else "0m 0s"

    hours, minutes, seconds = _split(int(ms))

    if short:
        if hours > 0:
            return f"{hours}h {minutes}m"
        if minutes > 0:
            return f"{minutes}m"
        return f"{seconds}s"

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if seconds > 0 or not parts:
        parts.append(f"{seconds}s")
    return " ".join(parts)


def format_timer(ms: Optional[int]) -> str:
    """Format milliseconds as HH:MM:SS for a running clock."""
    if not ms or ms < 0:
        return "00:00:00"
    hours, minutes, seconds = _split(int(ms))
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_duration(text: str) -> int:
    """Parse strings like "1h 30m", "90m" or "2t 5s" into milliseconds.

    Each unit is matched once, independently and case-insensitively; missing
    units contribute nothing. Returns 0 when nothing matches.
    """
    if not text:
        return 0
    ms = 0
    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    seconds = _SECONDS_RE.search(text)
    if hours:
        ms += int(hours.group(1)) * MS_PER_HOUR
    if minutes:
        ms += int(minutes.group(1)) * MS_PER_MINUTE
    if seconds:
        ms += int(seconds.group(1)) * MS_PER_SECOND
    return ms


def require_duration(text: str) -> int:
    """Like :func:`parse_duration` but rejects input that yields nothing."""
    ms = parse_duration(text)
    if ms <= 0:
        raise InvalidInput(f"Could not parse a duration from {text!r}")
    return ms


def elapsed_ms(start: datetime, end: datetime) -> int:
    return (end - start) // timedelta(milliseconds=1)


def live_total(total_ms: int, active_start: Optional[datetime], now: datetime) -> int:
    """Completed time plus the open interval, evaluated at ``now``."""
    total = total_ms or 0
    if active_start is not None:
        total += elapsed_ms(active_start, now)
    return total


def format_deviation(ms: int) -> str:
    if ms == 0:
        return "0m"
    prefix = "+" if ms > 0 else "-"
    return prefix + format_duration(abs(ms))


def format_pct(pct: Optional[float]) -> str:
    if pct is None:
        return "—"
    rounded = round(abs(pct))
    if rounded == 0:
        return "0%"
    prefix = "+" if pct > 0 else "-"
    return f"{prefix}{rounded}%"
