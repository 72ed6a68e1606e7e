"""Detection and termination of idle and long-running database sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from pgroutine.config import RoutineTasksError, Settings
from pgroutine.db import SqlRunner

_IDLE_QUERY = (
    "SELECT pid, usename, "
    "       now() - state_change AS duration, "
    "       pg_terminate_backend(pid) AS terminated "
    "FROM pg_stat_activity "
    "WHERE state = 'idle in transaction' "
    "  AND now() - state_change > interval '{threshold} seconds' "
    "  AND pid <> pg_backend_pid()"
)

_LONG_RUNNING_QUERY = (
    "SELECT pid, usename, "
    "       now() - query_start AS duration, "
    "       pg_terminate_backend(pid) AS terminated "
    "FROM pg_stat_activity "
    "WHERE state = 'active' "
    "  AND now() - query_start > interval '{threshold} seconds' "
    "  AND pid <> pg_backend_pid()"
)

_REPORT_QUERY = (
    "SELECT COALESCE(state, 'unknown') AS state, "
    "       count(*)::int AS session_count, "
    "       max(now() - COALESCE(query_start, backend_start)) AS max_duration "
    "FROM pg_stat_activity "
    "WHERE pid <> pg_backend_pid() "
    "GROUP BY state "
    "ORDER BY session_count DESC"
)


@dataclass(frozen=True)
class TerminatedSession:
    """A backend that was asked to terminate."""

    pid: int
    usename: str | None
    duration: timedelta | None
    terminated: bool | None


@dataclass(frozen=True)
class SessionStateCount:
    """Number of sessions in one state and the longest of them."""

    state: str
    session_count: int
    max_duration: timedelta | None


def _threshold(value: int | None, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise RoutineTasksError(
            f"threshold must be an integer number of seconds, got {value!r}"
        )
    return value


class SessionManager:
    """Terminates sessions that stay idle in a transaction or run too long."""

    def __init__(self, runner: SqlRunner, settings: Settings | None = None) -> None:
        self.runner = runner
        self.settings = settings if settings is not None else Settings()

    @property
    def logger(self):
        return self.runner.logger

    def _terminate(self, template: str, threshold: int, task: str) -> list[TerminatedSession]:
        rows = self.runner.query(template.format(threshold=threshold))
        self.logger.info(
            f"{task}: examined {len(rows)} sessions (threshold {threshold}s)"
        )
        return [
            TerminatedSession(
                pid=row["pid"],
                usename=row["usename"],
                duration=row["duration"],
                terminated=row["terminated"],
            )
            for row in rows
        ]

    def terminate_idle_sessions(self, threshold_seconds: int | None = None) -> list[TerminatedSession]:
        """Terminate sessions idle in a transaction longer than the threshold."""
        threshold = _threshold(threshold_seconds, self.settings.session_idle_timeout)
        return self._terminate(_IDLE_QUERY, threshold, "terminate_idle_sessions")

    def terminate_long_running(self, threshold_seconds: int | None = None) -> list[TerminatedSession]:
        """Terminate queries that have been active longer than the threshold."""
        threshold = _threshold(threshold_seconds, self.settings.session_max_duration)
        return self._terminate(_LONG_RUNNING_QUERY, threshold, "terminate_long_running")

    def session_report(self) -> list[SessionStateCount]:
        """Summarise other sessions by state, most common state first."""
        return [
            SessionStateCount(
                state=row["state"],
                session_count=row["session_count"],
                max_duration=row["max_duration"],
            )
            for row in self.runner.query(_REPORT_QUERY)
        ]