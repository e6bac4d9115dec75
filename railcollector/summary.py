"""Per-stream coverage summaries and the key handling behind the coverage report."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .coverage import (
    COVERAGE_TYPE_HTTP_METRIC,
    COVERAGE_TYPE_LOG_BUILD,
    COVERAGE_TYPE_LOG_ENV,
    COVERAGE_TYPE_LOG_HTTP,
    COVERAGE_TYPE_METRIC,
    COVERAGE_TYPE_REPLICA_METRIC,
    COVERAGE_TYPE_SERVICE_METRIC,
    CoverageKind,
    coverage_key,
    decode_intervals,
    find_gaps,
)

_ZERO = timedelta(0)

NameResolver = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class RawEntry:
    """A stored key together with its raw JSON value."""

    key: str
    value: Union[bytes, str]


@dataclass(frozen=True)
class ServiceTarget:
    """One discovered service deployment in a project environment."""

    project_id: str = ""
    project_name: str = ""
    service_id: str = ""
    service_name: str = ""
    environment_id: str = ""
    environment_name: str = ""
    deployment_id: str = ""
    region: str = ""

    def composite_key(self) -> str:
        """The ``serviceID:environmentID`` key used by service-level streams."""
        return f"{self.service_id}:{self.environment_id}"


@dataclass(frozen=True)
class CollectionSettings:
    """Which collection streams are enabled."""

    metrics_enabled: bool = True
    service_metrics_enabled: bool = True
    replica_metrics_enabled: bool = True
    http_metrics_enabled: bool = True
    logs_enabled: bool = True
    log_types: Tuple[str, ...] = ("deployment", "build", "http")


@dataclass
class CoverageSummary:
    """Coverage statistics for a single stream key."""

    key: str
    collected: timedelta = _ZERO
    empty: timedelta = _ZERO
    gaps: timedelta = _ZERO
    gap_count: int = 0
    largest_gap: timedelta = _ZERO
    percentage: float = 0.0


def build_coverage_summaries(
    entries: Iterable[RawEntry],
    window_start: datetime,
    window_end: datetime,
    name_resolver: NameResolver,
) -> List[CoverageSummary]:
    """Summarise each entry's coverage within the window; unparseable entries are skipped."""
    summaries: List[CoverageSummary] = []
    for entry in entries:
        try:
            intervals = decode_intervals(entry.value)
        except (ValueError, TypeError, KeyError):
            continue

        summary = CoverageSummary(key=resolve_key(entry.key, name_resolver))
        for iv in intervals:
            span = iv.end - iv.start
            if iv.kind == CoverageKind.COLLECTED:
                summary.collected += span
            elif iv.kind == CoverageKind.EMPTY:
                summary.empty += span

        gaps = find_gaps(intervals, window_start, window_end)
        summary.gap_count = len(gaps)
        for gap in gaps:
            d = gap.duration()
            summary.gaps += d
            summary.largest_gap = max(summary.largest_gap, d)

        total = summary.collected + summary.empty + summary.gaps
        if total > _ZERO:
            summary.percentage = summary.collected / total * 100
        summaries.append(summary)
    return summaries


def build_name_resolver(targets: Iterable[ServiceTarget]) -> Callable[[str], str]:
    """Map project, environment, deployment and composite IDs to readable names.

    The returned function gives an empty string for unknown IDs.
    """
    names: Dict[str, str] = {}
    for t in targets:
        names.setdefault(t.project_id, t.project_name)
        label = f"{t.project_name}/{t.service_name}" if t.service_name else t.project_name
        if t.environment_id:
            names[t.environment_id] = label
        if t.deployment_id:
            names[t.deployment_id] = label
        if t.service_id and t.environment_id:
            names[t.composite_key()] = label
    return lambda ident: names.get(ident, "")


# Longest first so ":metric" never claims a ":service-metric" key.
_TYPE_SUFFIXES = tuple(
    ":" + suffix
    for suffix in (
        COVERAGE_TYPE_SERVICE_METRIC,
        COVERAGE_TYPE_REPLICA_METRIC,
        COVERAGE_TYPE_HTTP_METRIC,
        COVERAGE_TYPE_LOG_ENV,
        COVERAGE_TYPE_LOG_BUILD,
        COVERAGE_TYPE_LOG_HTTP,
        COVERAGE_TYPE_METRIC,
    )
)


def resolve_key(key: str, name_resolver: NameResolver) -> str:
    """Replace the ID part of a coverage key with a readable name where one is known."""
    for suffix in _TYPE_SUFFIXES:
        if key.endswith(suffix):
            resolved = name_resolver(key[: -len(suffix)])
            return resolved + suffix if resolved else key

    ident, sep, rest = key.partition(":")
    resolved = name_resolver(ident)
    if not resolved:
        return key
    return resolved + sep + rest


def parse_coverage_segments(key: str) -> List[str]:
    """Split a resolved key into tree path segments, dropping ``log:`` and shortening ``environment``."""
    name, sep, type_str = key.partition(":")
    if not sep:
        return [key]
    if type_str.startswith("log:"):
        type_str = type_str[len("log:"):]
    if type_str == "environment":
        type_str = "env"
    return [*name.split("/"), type_str]


def expected_coverage_keys(
    settings: CollectionSettings, targets: Sequence[ServiceTarget]
) -> Set[str]:
    """The coverage keys that enabled streams should produce for the given targets."""
    projects: Set[str] = set()
    composites: Set[str] = set()
    environments: Set[str] = set()
    deployments: Set[str] = set()
    for t in targets:
        projects.add(t.project_id)
        if t.service_id and t.environment_id:
            composites.add(t.composite_key())
        if t.environment_id:
            environments.add(t.environment_id)
        if t.deployment_id:
            deployments.add(t.deployment_id)

    keys: Set[str] = set()
    if settings.metrics_enabled:
        keys.update(coverage_key(p, COVERAGE_TYPE_METRIC) for p in projects)
        for enabled, kind in (
            (settings.service_metrics_enabled, COVERAGE_TYPE_SERVICE_METRIC),
            (settings.replica_metrics_enabled, COVERAGE_TYPE_REPLICA_METRIC),
            (settings.http_metrics_enabled, COVERAGE_TYPE_HTTP_METRIC),
        ):
            if enabled:
                keys.update(coverage_key(c, kind) for c in composites)

    if settings.logs_enabled:
        log_types = set(settings.log_types)
        if "deployment" in log_types:
            keys.update(coverage_key(e, COVERAGE_TYPE_LOG_ENV) for e in environments)
        if "build" in log_types:
            keys.update(coverage_key(d, COVERAGE_TYPE_LOG_BUILD) for d in deployments)
        if "http" in log_types:
            keys.update(coverage_key(d, COVERAGE_TYPE_LOG_HTTP) for d in deployments)
    return keys


def is_log_coverage_key(key: str) -> bool:
    """Whether the key belongs to a log stream."""
    return ":log:" in key