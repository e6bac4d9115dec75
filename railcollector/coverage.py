"""Coverage intervals: which time ranges have been collected or checked empty."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Union

from .timewindow import TimeWindow, closed_window, parse_flex_time

COVERAGE_TYPE_METRIC = "metric"
COVERAGE_TYPE_SERVICE_METRIC = "service-metric"
COVERAGE_TYPE_REPLICA_METRIC = "replica-metric"
COVERAGE_TYPE_HTTP_METRIC = "http-metric"
COVERAGE_TYPE_LOG_ENV = "log:environment"
COVERAGE_TYPE_LOG_BUILD = "log:build"
COVERAGE_TYPE_LOG_HTTP = "log:http"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class CoverageKind(IntEnum):
    """Whether an interval holds collected data or was checked and found empty."""

    COLLECTED = 0
    EMPTY = 1


def _aware(t: datetime) -> datetime:
    return t.replace(tzinfo=timezone.utc) if t.tzinfo is None else t


def _format_json_time(t: datetime) -> str:
    base = (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
        f"T{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    )
    if t.microsecond:
        base += "." + f"{t.microsecond:06d}".rstrip("0")
    offset = t.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return base + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{base}{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def _parse_json_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected a time string, got {value!r}")
    return parse_flex_time(value)


@dataclass(frozen=True)
class CoverageInterval:
    """A time range that has been collected, or checked and found empty."""

    start: datetime
    end: datetime
    kind: Union[CoverageKind, int] = CoverageKind.COLLECTED
    resolution: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _aware(self.start))
        object.__setattr__(self, "end", _aware(self.end))

    def to_window(self) -> TimeWindow:
        """The interval's bounds as a closed TimeWindow."""
        return closed_window(self.start, self.end)

    def to_dict(self) -> dict:
        """The JSON-ready form; resolution is left out when zero."""
        data: dict = {
            "start": _format_json_time(self.start),
            "end": _format_json_time(self.end),
            "kind": int(self.kind),
        }
        if self.resolution:
            data["resolution"] = self.resolution
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CoverageInterval:
        """Build an interval from its JSON form; absent fields take zero values."""
        if not isinstance(data, Mapping):
            raise ValueError(f"expected an object, got {data!r}")
        start = _parse_json_time(data["start"]) if "start" in data else _ZERO_TIME
        end = _parse_json_time(data["end"]) if "end" in data else _ZERO_TIME
        raw_kind = data.get("kind", 0)
        if isinstance(raw_kind, bool) or not isinstance(raw_kind, int):
            raise ValueError(f"invalid coverage kind: {raw_kind!r}")
        try:
            kind: Union[CoverageKind, int] = CoverageKind(raw_kind)
        except ValueError:
            kind = raw_kind
        resolution = data.get("resolution", 0)
        if isinstance(resolution, bool) or not isinstance(resolution, int):
            raise ValueError(f"invalid resolution: {resolution!r}")
        return cls(start, end, kind, resolution)


def encode_intervals(intervals: Iterable[CoverageInterval]) -> bytes:
    """Serialise intervals to compact JSON bytes."""
    payload = [iv.to_dict() for iv in intervals]
    return json.dumps(payload, separators=(",", ":")).encode()


def decode_intervals(data: Union[bytes, str]) -> List[CoverageInterval]:
    """Parse JSON produced by :func:`encode_intervals`; raises ValueError if malformed."""
    payload = json.loads(data)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError("coverage data must be a JSON array")
    return [CoverageInterval.from_dict(item) for item in payload]


def merge_intervals(intervals: Iterable[CoverageInterval]) -> List[CoverageInterval]:
    """Combine adjacent or overlapping intervals of the same kind and resolution."""
    ordered = sorted(intervals, key=lambda iv: iv.start)
    merged: List[CoverageInterval] = []
    for iv in ordered:
        if merged:
            last = merged[-1]
            if (
                iv.kind == last.kind
                and iv.resolution == last.resolution
                and iv.start <= last.end
            ):
                if iv.end > last.end:
                    merged[-1] = replace(last, end=iv.end)
                continue
        merged.append(iv)
    return merged


def insert_interval(
    existing: Iterable[CoverageInterval], new_interval: CoverageInterval
) -> List[CoverageInterval]:
    """Add an interval to a list and merge."""
    return merge_intervals([*existing, new_interval])


def find_gaps(
    intervals: Iterable[CoverageInterval], window_start: datetime, window_end: datetime
) -> List[TimeWindow]:
    """Return the uncovered windows within [window_start, window_end]."""
    ordered = sorted(intervals, key=lambda iv: iv.start)
    if not ordered:
        return [closed_window(window_start, window_end)]

    gaps: List[TimeWindow] = []
    cursor = window_start
    for iv in ordered:
        if iv.start > cursor:
            gap_end = min(iv.start, window_end)
            if cursor < gap_end:
                gaps.append(closed_window(cursor, gap_end))
        if iv.end > cursor:
            cursor = iv.end
    if cursor < window_end:
        gaps.append(closed_window(cursor, window_end))
    return gaps


def prioritize_gaps(gaps: Iterable[TimeWindow], now: datetime) -> List[TimeWindow]:
    """Order gaps most recent first, scoring each as 1 / max(age in seconds, 1)."""

    def score(gap: TimeWindow) -> float:
        return 1.0 / max(gap.age(now).total_seconds(), 1.0)

    return sorted(gaps, key=score, reverse=True)


def coverage_key(*args: str) -> str:
    """Join key parts with colons, e.g. ``proj-1:metric``."""
    return ":".join(args)


class _CoverageSource(Protocol):
    def get_coverage(self, key: str) -> Optional[bytes]: ...


class _CoverageSink(Protocol):
    def set_coverage(self, key: str, data: bytes) -> None: ...


def load_coverage(store: _CoverageSource, key: str) -> Optional[List[CoverageInterval]]:
    """Load intervals for ``key``; None when the key has no stored data."""
    raw = store.get_coverage(key)
    if raw is None:
        return None
    return decode_intervals(raw)


def save_coverage(
    store: _CoverageSink, key: str, intervals: Iterable[CoverageInterval]
) -> None:
    """Serialise and store intervals under ``key``."""
    store.set_coverage(key, encode_intervals(intervals))