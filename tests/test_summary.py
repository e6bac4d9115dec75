from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from railcollector.coverage import CoverageInterval, CoverageKind, encode_intervals
from railcollector.summary import (
    CollectionSettings,
    RawEntry,
    ServiceTarget,
    build_coverage_summaries,
    build_name_resolver,
    expected_coverage_keys,
    is_log_coverage_key,
    parse_coverage_segments,
    resolve_key,
)

WINDOW_START = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2025, 1, 1, 1, 0, tzinfo=timezone.utc)


def at(minute):
    return WINDOW_START + timedelta(minutes=minute)


def entry(key, intervals):
    return RawEntry(key, encode_intervals(intervals))


def collected(a, b):
    return CoverageInterval(at(a), at(b), CoverageKind.COLLECTED)


def empty(a, b):
    return CoverageInterval(at(a), at(b), CoverageKind.EMPTY)


def noop(ident):
    return ident


def summarize(entries, resolver=noop):
    return build_coverage_summaries(entries, WINDOW_START, WINDOW_END, resolver)


def test_gap_counting():
    (s,) = summarize([entry("proj-1:metric", [collected(10, 20), collected(40, 50)])])
    assert s.gap_count == 3
    assert s.gaps == timedelta(minutes=40)
    assert s.collected == timedelta(minutes=20)


def test_gap_counting_with_empty_intervals():
    (s,) = summarize([entry("proj-1:metric", [collected(0, 20), empty(20, 40)])])
    assert s.collected == timedelta(minutes=20)
    assert s.empty == timedelta(minutes=20)
    assert s.gaps == timedelta(minutes=20)
    assert s.gap_count == 1


@pytest.mark.parametrize(
    "intervals, count, largest, total",
    [
        ([collected(0, 60)], 0, timedelta(0), timedelta(0)),
        ([collected(10, 20), collected(40, 50)], 3, timedelta(minutes=20), timedelta(minutes=40)),
        ([], 1, timedelta(hours=1), timedelta(hours=1)),
    ],
)
def test_largest_gap(intervals, count, largest, total):
    (s,) = summarize([entry("proj-1:metric", intervals)])
    assert s.gap_count == count
    assert s.largest_gap == largest
    assert s.gaps == total


def test_key_resolution():
    names = {
        "uuid-1": "my-project",
        "uuid-2": "my-project/my-service",
        "uuid-3": "other-project/build-svc",
    }
    entries = [
        entry("uuid-1:metric", [collected(0, 60)]),
        entry("uuid-2:log:environment", [collected(0, 60)]),
        entry("uuid-3:log:build", [collected(0, 60)]),
    ]
    keys = {s.key for s in summarize(entries, lambda i: names.get(i, i))}
    assert keys == {
        "my-project:metric",
        "my-project/my-service:log:environment",
        "other-project/build-svc:log:build",
    }


def test_key_resolution_composite_keys():
    names = {"svc-1:env-1": "my-project/web", "svc-2:env-1": "my-project/api"}
    entries = [
        entry("svc-1:env-1:service-metric", [collected(0, 60)]),
        entry("svc-1:env-1:replica-metric", [collected(0, 60)]),
        entry("svc-2:env-1:http-metric", [collected(0, 60)]),
    ]
    keys = {s.key for s in summarize(entries, lambda i: names.get(i, ""))}
    assert keys == {
        "my-project/web:service-metric",
        "my-project/web:replica-metric",
        "my-project/api:http-metric",
    }


def test_key_resolution_unknown_id():
    (s,) = summarize([entry("unknown-uuid:metric", [collected(0, 60)])])
    assert s.key == "unknown-uuid:metric"


@pytest.mark.parametrize(
    "intervals, want",
    [
        ([collected(0, 60)], 100.0),
        ([], 0.0),
        ([collected(0, 30), empty(30, 60)], 50.0),
        ([collected(0, 20)], 33.33),
        ([collected(0, 15), empty(15, 30)], 25.0),
    ],
)
def test_percentage(intervals, want):
    (s,) = summarize([entry("proj-1:metric", intervals)])
    assert s.percentage == pytest.approx(want, abs=0.01)


def test_multiple_entries():
    summaries = summarize(
        [
            entry("proj-1:metric", [collected(0, 60)]),
            entry("proj-2:log:environment", []),
            entry("proj-3:log:build", [collected(0, 30)]),
        ]
    )
    assert len(summaries) == 3
    by_key = {s.key: s for s in summaries}

    full = by_key["proj-1:metric"]
    assert full.percentage == pytest.approx(100.0, abs=0.01)
    assert full.gap_count == 0
    assert full.largest_gap == timedelta(0)

    none = by_key["proj-2:log:environment"]
    assert none.percentage == pytest.approx(0.0, abs=0.01)
    assert none.gap_count == 1
    assert none.largest_gap == timedelta(hours=1)

    partial = by_key["proj-3:log:build"]
    assert partial.percentage == pytest.approx(50.0, abs=0.01)
    assert partial.gap_count == 1
    assert partial.largest_gap == timedelta(minutes=30)


def test_synthetic_entries_appear():
    summaries = summarize(
        [
            entry("proj-1:metric", [collected(0, 30)]),
            RawEntry("svc-1:env-1:service-metric", b"[]"),
        ]
    )
    by_key = {s.key: s for s in summaries}
    real = by_key["proj-1:metric"]
    assert real.percentage == pytest.approx(50.0, abs=0.01)
    assert real.collected > timedelta(0)
    synthetic = by_key["svc-1:env-1:service-metric"]
    assert synthetic.percentage == pytest.approx(0.0, abs=0.01)
    assert synthetic.gap_count == 1
    assert synthetic.largest_gap == timedelta(hours=1)


def test_unparseable_entries_are_skipped():
    summaries = summarize(
        [RawEntry("bad:metric", b"{not json"), entry("proj-1:metric", [collected(0, 60)])]
    )
    assert [s.key for s in summaries] == ["proj-1:metric"]


@pytest.mark.parametrize(
    "key, want",
    [
        ("banner:metric", ["banner", "metric"]),
        ("banner/banner:log:build", ["banner", "banner", "build"]),
        ("banner/banner:log:http", ["banner", "banner", "http"]),
        ("banner/banner:log:environment", ["banner", "banner", "env"]),
        ("banner/Postgres:log:environment", ["banner", "Postgres", "env"]),
        ("runnerspace:metric", ["runnerspace", "metric"]),
        ("bare-key", ["bare-key"]),
        ("proj:newtype", ["proj", "newtype"]),
        ("my-project/web:service-metric", ["my-project", "web", "service-metric"]),
        ("my-project/web:replica-metric", ["my-project", "web", "replica-metric"]),
        ("my-project/api:http-metric", ["my-project", "api", "http-metric"]),
    ],
)
def test_parse_coverage_segments(key, want):
    assert parse_coverage_segments(key) == want


def targets():
    return [
        ServiceTarget(project_id="proj-1", service_id="svc-1", environment_id="env-1", deployment_id="dep-1"),
        ServiceTarget(project_id="proj-1", service_id="svc-2", environment_id="env-1", deployment_id="dep-2"),
        ServiceTarget(project_id="proj-2", service_id="svc-3", environment_id="env-2", deployment_id=""),
    ]


def test_expected_keys_all_enabled():
    keys = expected_coverage_keys(CollectionSettings(), targets())
    assert keys == {
        "proj-1:metric",
        "proj-2:metric",
        "svc-1:env-1:service-metric",
        "svc-2:env-1:service-metric",
        "svc-3:env-2:service-metric",
        "svc-1:env-1:replica-metric",
        "svc-2:env-1:replica-metric",
        "svc-3:env-2:replica-metric",
        "svc-1:env-1:http-metric",
        "svc-2:env-1:http-metric",
        "svc-3:env-2:http-metric",
        "env-1:log:environment",
        "env-2:log:environment",
        "dep-1:log:build",
        "dep-2:log:build",
        "dep-1:log:http",
        "dep-2:log:http",
    }
    assert len(keys) == 17


def test_expected_keys_metrics_disabled():
    keys = expected_coverage_keys(replace(CollectionSettings(), metrics_enabled=False), targets())
    assert all("metric" not in k for k in keys)
    assert {"env-1:log:environment", "env-2:log:environment", "dep-1:log:build",
            "dep-2:log:build", "dep-1:log:http", "dep-2:log:http"} <= keys
    assert len(keys) == 6


def test_expected_keys_service_metrics_disabled():
    settings = CollectionSettings(
        service_metrics_enabled=False, replica_metrics_enabled=False, http_metrics_enabled=False
    )
    keys = expected_coverage_keys(settings, targets())
    assert {"proj-1:metric", "proj-2:metric", "env-1:log:environment", "dep-1:log:build"} <= keys
    for k in keys:
        assert "service-metric" not in k
        assert "replica-metric" not in k
        assert "http-metric" not in k
    assert len(keys) == 8


def test_expected_keys_logs_disabled():
    keys = expected_coverage_keys(CollectionSettings(logs_enabled=False), targets())
    assert all("log:" not in k for k in keys)
    assert {"proj-1:metric", "proj-2:metric", "svc-1:env-1:service-metric",
            "svc-1:env-1:replica-metric", "svc-1:env-1:http-metric"} <= keys
    assert len(keys) == 11


def test_expected_keys_partial_log_types():
    keys = expected_coverage_keys(CollectionSettings(log_types=("deployment",)), targets())
    assert {"env-1:log:environment", "env-2:log:environment"} <= keys
    for k in keys:
        assert "log:build" not in k
        assert "log:http" not in k
    assert len(keys) == 13


@pytest.mark.parametrize(
    "key, want",
    [
        ("proj-1:metric", False),
        ("svc-1:env-1:service-metric", False),
        ("env-1:log:environment", True),
        ("dep-1:log:build", True),
        ("dep-1:log:http", True),
        ("svc-1:env-1:replica-metric", False),
        ("svc-1:env-1:http-metric", False),
    ],
)
def test_is_log_coverage_key(key, want):
    assert is_log_coverage_key(key) is want


def test_composite_key():
    assert ServiceTarget(service_id="svc-1", environment_id="env-1").composite_key() == "svc-1:env-1"


def test_build_name_resolver():
    resolver = build_name_resolver(
        [
            ServiceTarget(project_id="p1", project_name="alpha", service_id="s1",
                          service_name="web", environment_id="e1", deployment_id="d1"),
            ServiceTarget(project_id="p1", project_name="renamed", service_id="s2",
                          service_name="", environment_id="e2"),
        ]
    )
    assert resolver("p1") == "alpha"
    assert resolver("e1") == "alpha/web"
    assert resolver("d1") == "alpha/web"
    assert resolver("s1:e1") == "alpha/web"
    assert resolver("e2") == "renamed"
    assert resolver("missing") == ""


def test_resolve_key_fallback_paths():
    names = {"abc": "proj", "solo": "named"}
    resolver = lambda i: names.get(i, "")
    assert resolve_key("abc:custom:part", resolver) == "proj:custom:part"
    assert resolve_key("solo", resolver) == "named"
    assert resolve_key("nobody", resolver) == "nobody"
    assert resolve_key("xyz:custom", resolver) == "xyz:custom"
    assert resolve_key("abc:metric", resolver) == "proj:metric"