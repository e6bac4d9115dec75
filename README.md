# railcollector

Building blocks for a collector that backfills metrics and logs from an
API with an hourly request budget. The package records which time ranges
have been collected, finds and ranks the gaps that are left, shares
request credits out between kinds of work, and prints coverage reports.

## Installation

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install .[test]
pytest
```

## Modules

### `railcollector.timewindow`

`TimeWindow(start, end=None)` is a frozen span whose ends are converted
to UTC (naive datetimes are taken to be UTC). An `end` of `None` marks
an open, live-edge window. Build one with `closed_window(start, end)` or
`open_window(start)`.

- `is_open()`, `resolved_end(now)` (the end, or `now` when open),
  `duration()` and `age(now)` (both zero for open windows).
- `contains(t)` tests `start <= t < end`; open windows have no upper
  bound.
- `shift(delta)`, `extend(t)` and `intersect(other)`; `intersect`
  returns `None` when two closed windows do not overlap, and an open
  window when either input is open.
- `batch_key()` gives `s=<start>,e=<end>` in RFC 3339, or just
  `s=<start>` when open.
- `str(window)` gives `<start>+<duration>`, with the start to the second
  for spans under an hour and to the minute otherwise.

`window_from_params(params)` reads `startDate`/`endDate` (or
`afterDate`/`beforeDate`) from a mapping. It returns `None` when the
start is missing or cannot be parsed, and an open window when the end
is. `parse_flex_time(text)` parses RFC 3339 with or without fractional
seconds and raises `ValueError` otherwise. `format_window_start(t, dur)`
and `format_window_duration(dur)` give the short text forms, such as
`1m56s` or `10d14h`.

### `railcollector.coverage`

- `CoverageKind` (`COLLECTED`, `EMPTY`) and the frozen
  `CoverageInterval(start, end, kind, resolution=0)`, with
  `to_window()`, `to_dict()` and `CoverageInterval.from_dict(data)`.
- `encode_intervals(intervals)` writes compact JSON bytes;
  `decode_intervals(data)` reads them back and raises `ValueError` on
  malformed data.
- `merge_intervals(intervals)` sorts by start and joins adjacent or
  overlapping intervals of the same kind and resolution;
  `insert_interval(existing, new_interval)` adds one and merges.
- `find_gaps(intervals, window_start, window_end)` returns the uncovered
  `TimeWindow`s in the window.
- `prioritize_gaps(gaps, now)` orders gaps most recent first.
- `coverage_key(*parts)` joins parts with colons, e.g. `proj-1:metric`.
  The `COVERAGE_TYPE_*` constants name the stream suffixes (`metric`,
  `service-metric`, `log:build`, ...).
- `load_coverage(store, key)` and `save_coverage(store, key, intervals)`
  work with any object that has `get_coverage(key)` and
  `set_coverage(key, data)`. `load_coverage` returns `None` when the
  store has nothing under the key.

### `railcollector.credit`

`CreditAllocator(config, now, logger=None)` keeps one token bucket for
each `TaskType` (`METRICS`, `LOGS`, `DISCOVERY`, `USAGE`), filled at the
per-minute rates of a `CreditsConfig` and capped at its `max_credits`.
Each pool starts with one credit.

- `try_deduct(task_type, now)` takes one credit if one is there.
- `available(task_type, now)` returns the balance (0.0 for an unknown
  type).
- `update_regime(remaining, limit, seconds_until_reset)` sets the
  `Regime` from the share of the limit that remains: `EXHAUSTED` at zero
  or below, `SCARCE` under 10% (metrics and logs at half rate, discovery
  and usage stopped), `NORMAL` under 50%, `ABUNDANT` otherwise (both at
  full rate). A limit of zero or below changes nothing. Changes are
  logged at INFO.
- `regime()` returns the current regime; `str(regime)` is its lower-case
  name.

### `railcollector.formatter`

`Formatter(json_output=False, stream=None)` writes to the given stream,
or to standard output. `write_table(headers, rows)` draws a box table
with upper-cased headers and columns sized by display width.
`write_json(value)` writes two-space indented JSON (dataclasses are
turned into objects) followed by a newline.

### `railcollector.tree`

`TreeBuilder.add(path, stats)` places `NodeStats` at a path of labels,
and `build()` returns the root `TreeNode` after joining chains of single
children into labels such as `Postgres » env`, totalling stats for
parents without their own, and sorting children by label.
`render_tree(stream, root, title)` prints the tree in aligned PROJECT /
COVERAGE / GAPS / MAX GAP columns, with ANSI colours only when the
stream is a terminal and `NO_COLOR` is not set. `format_duration(dur)`
gives `45m`, `2h 30m`, `4d 1h`, or whole days from 100 days on.

### `railcollector.summary`

- `build_coverage_summaries(entries, window_start, window_end,
  name_resolver)` turns `RawEntry` values (JSON interval lists) into
  `CoverageSummary` records: collected, empty and gap time, gap count,
  largest gap, and percentage collected. Entries that cannot be parsed
  are skipped.
- `build_name_resolver(targets)` maps project, environment, deployment
  and `service:environment` IDs of `ServiceTarget`s to names such as
  `project/service`; unknown IDs give an empty string.
- `resolve_key(key, name_resolver)` replaces the ID part of a key with
  its name, keeping the stream suffix.
- `parse_coverage_segments(key)` splits a resolved key into tree
  segments, dropping `log:` and shortening `environment` to `env`.
- `expected_coverage_keys(settings, targets)` lists the keys the streams
  enabled in `CollectionSettings` should produce.
- `is_log_coverage_key(key)` tells log streams from metric streams.

## Example

```python
import sys
from datetime import datetime, timedelta, timezone

from railcollector.coverage import CoverageInterval, CoverageKind, find_gaps
from railcollector.tree import NodeStats, TreeBuilder, render_tree

start = datetime(2025, 1, 1, tzinfo=timezone.utc)
intervals = [
    CoverageInterval(start + timedelta(minutes=10), start + timedelta(minutes=20), CoverageKind.COLLECTED),
]
for gap in find_gaps(intervals, start, start + timedelta(hours=1)):
    print(gap.start, gap.end)

builder = TreeBuilder()
builder.add(["proj", "metric"], NodeStats(coverage=99.6, gap_count=1, largest_gap=timedelta(hours=10)))
render_tree(sys.stdout, builder.build(), "Coverage Report")
```

## What the package does not do

It is a library with no command-line program. It does not talk to any
API, store state in a database, run a scheduler, or send metrics and
logs anywhere. Storage is whatever object you pass to `load_coverage`
and `save_coverage`, and coverage entries and service targets are data
you supply.