"""Threshold-driven VACUUM and ANALYZE of user tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pgroutine.config import RoutineTasksError, Settings
from pgroutine.db import SqlRunner, quote_identifier

ACTION_VACUUM = "VACUUM"
ACTION_ANALYZE = "ANALYZE"

_DEAD_PCT = "100.0 * n_dead_tup / NULLIF(n_live_tup + n_dead_tup, 0)"
_MOD_PCT = "100.0 * (n_tup_ins + n_tup_upd + n_tup_del) / NULLIF(n_live_tup, 0)"

_REPORT_QUERY = (
    "SELECT schemaname, relname, "
    "       last_vacuum, last_analyze, "
    "       n_dead_tup, "
    f"       ROUND({_DEAD_PCT}, 2) AS dead_pct, "
    f"       ROUND({_MOD_PCT}, 2) AS mod_pct "
    "FROM pg_stat_user_tables "
    "ORDER BY n_dead_tup DESC"
)


@dataclass(frozen=True)
class VacuumedTable:
    """A table that was vacuumed, with its dead-tuple figures beforehand."""

    schema: str
    table_name: str
    n_dead_tup: int | None
    dead_pct: float | None
    action: str


@dataclass(frozen=True)
class AnalyzedTable:
    """A table that was analyzed, with its modification ratio beforehand."""

    schema: str
    table_name: str
    mod_pct: float | None
    action: str


@dataclass(frozen=True)
class TableMaintenance:
    """Maintenance history and churn figures of one table."""

    schema: str
    table_name: str
    last_vacuum: datetime | None
    last_analyze: datetime | None
    n_dead_tup: int | None
    dead_pct: float | None
    mod_pct: float | None


def _threshold(value: Any, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RoutineTasksError(f"threshold must be a number, got {value!r}")
    return float(value)


def _pct(value: Any) -> float | None:
    return None if value is None else float(value)


class VacuumManager:
    """Runs VACUUM or ANALYZE only on tables that have crossed a threshold."""

    def __init__(self, runner: SqlRunner, settings: Settings | None = None) -> None:
        self.runner = runner
        self.settings = settings if settings is not None else Settings()

    @property
    def logger(self):
        return self.runner.logger

    def _target(self, row: dict[str, Any]) -> str:
        return f"{quote_identifier(row['schemaname'])}.{quote_identifier(row['relname'])}"

    def smart_vacuum(self, bloat_pct: float | None = None,
                     mod_pct: float | None = None) -> list[VacuumedTable]:
        """Vacuum tables whose dead-tuple or modification ratio is too high."""
        dead_limit = _threshold(bloat_pct, self.settings.vacuum_bloat_threshold_pct)
        mod_limit = _threshold(mod_pct, self.settings.vacuum_mod_threshold_pct)
        sql = (
            "SELECT schemaname, relname, n_dead_tup, "
            f"       ROUND({_DEAD_PCT}, 2) AS dead_pct, "
            f"       ROUND({_MOD_PCT}, 2) AS mod_pct "
            "FROM pg_stat_user_tables "
            f"WHERE ({_DEAD_PCT}) > {dead_limit:f} "
            f"   OR ({_MOD_PCT}) > {mod_limit:f} "
            "ORDER BY n_dead_tup DESC"
        )
        vacuumed = []
        for row in self.runner.query(sql):
            schema, relname = row["schemaname"], row["relname"]
            self.logger.info(f"smart_vacuum: vacuuming {schema}.{relname}")
            self.runner.execute(f"VACUUM VERBOSE {self._target(row)}")
            vacuumed.append(
                VacuumedTable(
                    schema=schema,
                    table_name=relname,
                    n_dead_tup=row["n_dead_tup"],
                    dead_pct=_pct(row["dead_pct"]),
                    action=ACTION_VACUUM,
                )
            )
        return vacuumed

    def smart_analyze(self, mod_pct: float | None = None) -> list[AnalyzedTable]:
        """Analyze tables whose modification ratio exceeds the threshold."""
        mod_limit = _threshold(mod_pct, self.settings.vacuum_mod_threshold_pct)
        sql = (
            "SELECT schemaname, relname, "
            f"       ROUND({_MOD_PCT}, 2) AS mod_pct "
            "FROM pg_stat_user_tables "
            f"WHERE ({_MOD_PCT}) > {mod_limit:f} "
            "ORDER BY mod_pct DESC"
        )
        analyzed = []
        for row in self.runner.query(sql):
            schema, relname = row["schemaname"], row["relname"]
            self.logger.info(f"smart_analyze: analyzing {schema}.{relname}")
            self.runner.execute(f"ANALYZE VERBOSE {self._target(row)}")
            analyzed.append(
                AnalyzedTable(
                    schema=schema,
                    table_name=relname,
                    mod_pct=_pct(row["mod_pct"]),
                    action=ACTION_ANALYZE,
                )
            )
        return analyzed

    def maintenance_report(self) -> list[TableMaintenance]:
        """Report vacuum/analyze history and churn for every user table."""
        return [
            TableMaintenance(
                schema=row["schemaname"],
                table_name=row["relname"],
                last_vacuum=row["last_vacuum"],
                last_analyze=row["last_analyze"],
                n_dead_tup=row["n_dead_tup"],
                dead_pct=_pct(row["dead_pct"]),
                mod_pct=_pct(row["mod_pct"]),
            )
            for row in self.runner.query(_REPORT_QUERY)
        ]