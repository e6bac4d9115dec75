"""UTC-normalised time spans used for coverage tracking and work scheduling."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

_ZERO = timedelta(0)
_MINUTE = timedelta(minutes=1)
_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"(Z|[+-]\d{2}:\d{2})$"
)


def _to_utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


def _format_offset(t: datetime) -> str:
    offset = t.utcoffset()
    if offset is None or offset == _ZERO:
        return "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def _format_date_minutes(t: datetime) -> str:
    return f"{t.year:04d}-{t.month:02d}-{t.day:02d}T{t.hour:02d}:{t.minute:02d}"


def _format_rfc3339(t: datetime) -> str:
    return f"{_format_date_minutes(t)}:{t.second:02d}{_format_offset(t)}"


def parse_flex_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp, with or without fractional seconds."""
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "")[:6].ljust(6, "0"))
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"invalid time zone offset in {text!r}")
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
    except ValueError as exc:
        raise ValueError(f"invalid RFC 3339 time: {text!r}") from exc


def format_window_start(t: datetime, dur: timedelta) -> str:
    """Format a start time with second precision for short windows, minutes otherwise."""
    if dur < _HOUR:
        return _format_rfc3339(t)
    return f"{_format_date_minutes(t)}{_format_offset(t)}"


def format_window_duration(dur: timedelta) -> str:
    """Format a duration compactly: s / XmYs / XhYm / XdYh, dropping zero parts."""
    if dur < _ZERO:
        dur = _ZERO
    secs = dur // timedelta(seconds=1)
    if dur < _MINUTE:
        return f"{secs}s"
    if dur < _HOUR:
        minutes, seconds = secs // 60, secs % 60
        return f"{minutes}m" if seconds == 0 else f"{minutes}m{seconds}s"
    if dur < _DAY:
        hours, minutes = secs // 3600, (secs // 60) % 60
        return f"{hours}h" if minutes == 0 else f"{hours}h{minutes}m"
    total_hours = secs // 3600
    days, hours = total_hours // 24, total_hours % 24
    return f"{days}d" if hours == 0 else f"{days}d{hours}h"


@dataclass(frozen=True)
class TimeWindow:
    """A UTC time span; ``end`` is None for an open, live-edge window."""

    start: datetime
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _to_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", _to_utc(self.end))

    def is_open(self) -> bool:
        """Whether the window has no fixed end."""
        return self.end is None

    def resolved_end(self, now: datetime) -> datetime:
        """The end if set, otherwise ``now``."""
        return now if self.end is None else self.end

    def duration(self) -> timedelta:
        """The span of a closed window; zero for an open one."""
        if self.end is None:
            return _ZERO
        return self.end - self.start

    def age(self, now: datetime) -> timedelta:
        """How long ago the window ended; zero for an open one."""
        if self.end is None:
            return _ZERO
        return now - self.end

    def contains(self, t: datetime) -> bool:
        """Whether ``t`` lies in [start, end); open windows are unbounded above."""
        t = _to_utc(t)
        if t < self.start:
            return False
        if self.end is not None and t >= self.end:
            return False
        return True

    def shift(self, delta: timedelta) -> TimeWindow:
        """A copy moved by ``delta``; only the start moves for open windows."""
        end = None if self.end is None else self.end + delta
        return TimeWindow(self.start + delta, end)

    def intersect(self, other: TimeWindow) -> Optional[TimeWindow]:
        """The overlap of two windows, or None when they do not overlap."""
        start = max(self.start, other.start)
        if self.end is not None and other.end is not None:
            end = min(self.end, other.end)
            if start >= end:
                return None
            return closed_window(start, end)
        return open_window(start)

    def extend(self, t: datetime) -> TimeWindow:
        """A copy whose end is moved out to ``t`` if that is later."""
        t = _to_utc(t)
        if self.end is None or t > self.end:
            return TimeWindow(self.start, t)
        return self

    def batch_key(self) -> str:
        """A canonical ``s=<start>,e=<end>`` key; open windows omit the end."""
        if self.end is None:
            return f"s={_format_rfc3339(self.start)}"
        return f"s={_format_rfc3339(self.start)},e={_format_rfc3339(self.end)}"

    def _span(self) -> timedelta:
        if self.end is None:
            return datetime.now(timezone.utc) - self.start
        return self.end - self.start

    def __str__(self) -> str:
        dur = self._span()
        return f"{format_window_start(self.start, dur)}+{format_window_duration(dur)}"


def closed_window(start: datetime, end: datetime) -> TimeWindow:
    """A closed window with both ends normalised to UTC."""
    return TimeWindow(start, end)


def open_window(start: datetime) -> TimeWindow:
    """A live-edge window with no fixed end."""
    return TimeWindow(start)


def _param_str(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name)
    return value if isinstance(value, str) else ""


def window_from_params(params: Mapping[str, Any]) -> Optional[TimeWindow]:
    """Build a window from work-item params (startDate/endDate or afterDate/beforeDate).

    Returns None when the start is missing or unparseable; an unusable end
    yields an open window.
    """
    start_text = _param_str(params, "startDate") or _param_str(params, "afterDate")
    if not start_text:
        return None
    try:
        start = parse_flex_time(start_text)
    except ValueError:
        return None
    end_text = _param_str(params, "endDate") or _param_str(params, "beforeDate")
    if not end_text:
        return open_window(start)
    try:
        end = parse_flex_time(end_text)
    except ValueError:
        return open_window(start)
    return closed_window(start, end)