# pgroutine

Routine maintenance tasks for a PostgreSQL database, run from Python over
any DB-API 2.0 connection you already have. pgroutine has no dependencies of
its own; bring your own PostgreSQL driver.

## Modules

- `pgroutine.config` – `Settings` (validated thresholds), `LogLevel`,
  `TaskLogger` and the `RoutineTasksError` exception.
- `pgroutine.db` – `SqlRunner`, which runs statements on a connection, and
  `quote_identifier`; failed statements raise `QueryError`.
- `pgroutine.sessions` – `SessionManager`:
  - `terminate_idle_sessions(threshold_seconds)` terminates other sessions
    that have been *idle in transaction* longer than the threshold;
  - `terminate_long_running(threshold_seconds)` terminates other sessions
    whose current query has been *active* longer than the threshold;
  - `session_report()` counts other sessions per state, most common first,
    with the longest duration in each state.
- `pgroutine.bloat` – `BloatManager`:
  - `detect_bloated_indexes(threshold_pct)` lists indexes larger than
    8192 bytes whose heuristic bloat estimate is at least the threshold
    (an index that has never been scanned counts as 100 %);
  - `rebuild_bloated_indexes(threshold_pct, concurrent)` runs
    `REINDEX INDEX CONCURRENTLY` (or plain `REINDEX INDEX` when `concurrent`
    is false) on each of them;
  - `bloat_report()` returns a `BloatSummary` of total indexes, unscanned
    indexes above 8192 bytes and the bytes held by unscanned indexes, or
    `None` if the query returns no row.
- `pgroutine.partitions` – `PartitionManager` and `Period`
  (`DAILY`, `WEEKLY`, `MONTHLY`):
  - `create_future_partitions(parent, count, period)` creates `count`
    consecutive range partitions starting with the current period, each
    named `<parent>_pYYYYMMDD` in the database;
  - `drop_old_partitions(parent, retention_days)` lists the child
    partitions of `parent` (see below);
  - `partition_report(parent)` lists each child partition with its size in
    bytes and estimated row count, ordered by name.
- `pgroutine.vacuum` – `VacuumManager`:
  - `smart_vacuum(bloat_pct, mod_pct)` runs `VACUUM VERBOSE` on user tables
    whose dead-tuple percentage exceeds `bloat_pct` or whose modification
    percentage exceeds `mod_pct`;
  - `smart_analyze(mod_pct)` runs `ANALYZE VERBOSE` on tables whose
    modification percentage exceeds `mod_pct`;
  - `maintenance_report()` lists every user table with its last vacuum and
    analyze times, dead tuples, dead percentage and modification percentage.

Every task returns a list of frozen dataclasses (or a single one for
`bloat_report`).

## Usage

```python
import logging

from pgroutine.config import Settings, TaskLogger
from pgroutine.db import SqlRunner
from pgroutine.sessions import SessionManager
from pgroutine.bloat import BloatManager
from pgroutine.partitions import PartitionManager, Period
from pgroutine.vacuum import VacuumManager

connection = ...  # any DB-API 2.0 connection to PostgreSQL

settings = Settings()
settings.set("session_idle_timeout", 600)
settings.set("pgroutine.log_level", "debug")   # prefixed names work too

log = TaskLogger(settings, logging.getLogger("pgroutine"))
runner = SqlRunner(connection, log)

sessions = SessionManager(runner, settings)
for killed in sessions.terminate_idle_sessions(None):   # uses the setting
    print(killed.pid, killed.usename, killed.duration)

bloat = BloatManager(runner, settings)
print(bloat.bloat_report())
for index in bloat.detect_bloated_indexes(40.0):
    print(index.schema, index.index_name, index.estimated_bloat_pct)

partitions = PartitionManager(runner, settings)
partitions.create_future_partitions("events", 3, Period.MONTHLY)
for part in partitions.partition_report("events"):
    print(part.partition_name, part.size_bytes, part.row_estimate)

vacuum = VacuumManager(runner, settings)
vacuum.smart_vacuum(None, None)      # thresholds from settings
vacuum.smart_analyze(15.0)
```

Passing `None` for a threshold or count falls back to the matching value in
`Settings`; `None` for `concurrent` means `True`, and `None` for `period`
means monthly. A threshold that is not a number (or a count that is not an
integer) raises `RoutineTasksError`, as does an unknown period or a
`parent` of `None` or one that names no relation.

## Settings

| Name                          | Default | Range                       |
|-------------------------------|---------|-----------------------------|
| `session_idle_timeout`        | 300 s   | 1 – 86400                   |
| `session_max_duration`        | 3600 s  | 1 – 604800                  |
| `bloat_threshold_pct`         | 30.0    | 0 – 100                     |
| `partition_pre_create_count`  | 3       | 1 – 365                     |
| `vacuum_bloat_threshold_pct`  | 20.0    | 0 – 100                     |
| `vacuum_mod_threshold_pct`    | 10.0    | 0 – 100                     |
| `log_level`                   | info    | debug, info, warning, error |

`Settings.set(name, value)` and `Settings.get(name)` take the short name or
the name prefixed with `pgroutine.`. Strings are converted; unknown names,
unconvertible values and values outside their range raise
`RoutineTasksError`.

## Logging and errors

`TaskLogger` writes messages prefixed with `pgroutine: ` to a standard
`logging.Logger`, skipping those below the configured `log_level`.
`TaskLogger.error` always logs and then raises `RoutineTasksError`.
`SqlRunner` logs each statement at debug level and turns a driver error into
`QueryError` (a `RoutineTasksError`), whose `sql` attribute holds the
failing statement.

## What it does not do

- `drop_old_partitions` drops nothing. It validates `retention_days`
  (default 90) and returns every child partition with `dropped=False`.
- The partitions returned by `create_future_partitions` are named
  `<parent>_p1`, `<parent>_p2`, … with `range_start` and `range_end` set to
  `"computed at runtime"`; the real table names and bounds are chosen inside
  the database and are not read back. Use `partition_report` to see them.
- There is no command-line tool and no scheduler: the tasks run only when
  your code calls them, and transaction handling (commit, autocommit for
  `REINDEX CONCURRENTLY` and `VACUUM`) is left to your connection.

## Running the tests

```
pip install -e ".[test]"
pytest
```