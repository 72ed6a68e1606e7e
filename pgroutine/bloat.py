"""Heuristic index bloat detection and rebuilding."""

from __future__ import annotations

from dataclasses import dataclass

from pgroutine.config import RoutineTasksError, Settings
from pgroutine.db import SqlRunner, quote_identifier

DETECT_QUERY = (
    "SELECT schemaname, indexrelname, relname, "
    "       pg_relation_size(i.indexrelid) AS index_size, "
    "       CASE WHEN idx_scan = 0 THEN 100.0 "
    "            ELSE ROUND(100.0 * "
    "                 (1.0 - (pg_relation_size(i.indexrelid)::float / "
    "                  NULLIF(pg_relation_size(i.relid), 0))), 2) "
    "       END AS estimated_bloat_pct "
    "FROM pg_stat_user_indexes i "
    "JOIN pg_class c ON c.oid = i.indexrelid "
    "WHERE pg_relation_size(i.indexrelid) > 8192 "
    "ORDER BY estimated_bloat_pct DESC"
)

REPORT_QUERY = (
    "SELECT count(*)::int AS total_indexes, "
    "       count(*) FILTER (WHERE pg_relation_size(indexrelid) > 8192 "
    "                         AND idx_scan = 0)::int AS bloated_indexes, "
    "       COALESCE(sum(pg_relation_size(indexrelid)) "
    "                FILTER (WHERE idx_scan = 0), 0)::bigint AS estimated_wasted "
    "FROM pg_stat_user_indexes"
)

ACTION_CONCURRENT = "REINDEX CONCURRENTLY"
ACTION_PLAIN = "REINDEX"


@dataclass(frozen=True)
class BloatedIndex:
    """An index whose estimated bloat reaches the threshold."""

    schema: str
    index_name: str
    table_name: str
    index_size_bytes: int
    estimated_bloat_pct: float


@dataclass(frozen=True)
class RebuiltIndex:
    """An index that was rebuilt, with its size before the rebuild."""

    schema: str
    index_name: str
    table_name: str
    old_size_bytes: int
    action: str


@dataclass(frozen=True)
class BloatSummary:
    """Database-wide index bloat estimate."""

    total_indexes: int
    bloated_indexes: int
    estimated_wasted_bytes: int


def _threshold(value: float | None, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RoutineTasksError(f"threshold must be a number, got {value!r}")
    return float(value)


class BloatManager:
    """Finds bloated indexes and rebuilds them on request."""

    def __init__(self, runner: SqlRunner, settings: Settings | None = None) -> None:
        self.runner = runner
        self.settings = settings if settings is not None else Settings()

    @property
    def logger(self):
        return self.runner.logger

    def detect_bloated_indexes(self, threshold_pct: float | None = None) -> list[BloatedIndex]:
        """Return indexes whose estimated bloat is at least the threshold."""
        threshold = _threshold(threshold_pct, self.settings.bloat_threshold_pct)
        found = []
        for row in self.runner.query(DETECT_QUERY):
            pct = row["estimated_bloat_pct"]
            if pct is None or float(pct) < threshold:
                continue
            found.append(
                BloatedIndex(
                    schema=row["schemaname"],
                    index_name=row["indexrelname"],
                    table_name=row["relname"],
                    index_size_bytes=row["index_size"],
                    estimated_bloat_pct=float(pct),
                )
            )
        return found

    def rebuild_bloated_indexes(self, threshold_pct: float | None = None,
                                concurrent: bool | None = True) -> list[RebuiltIndex]:
        """Reindex every index at or above the threshold."""
        if concurrent is None:
            concurrent = True
        action = ACTION_CONCURRENT if concurrent else ACTION_PLAIN
        command = "REINDEX INDEX CONCURRENTLY" if concurrent else "REINDEX INDEX"
        rebuilt = []
        for index in self.detect_bloated_indexes(threshold_pct):
            self.logger.info(
                f"rebuilding index {index.schema}.{index.index_name} "
                f"(bloat {index.estimated_bloat_pct:.1f}%)"
            )
            self.runner.execute(
                f"{command} {quote_identifier(index.schema)}."
                f"{quote_identifier(index.index_name)}"
            )
            rebuilt.append(
                RebuiltIndex(
                    schema=index.schema,
                    index_name=index.index_name,
                    table_name=index.table_name,
                    old_size_bytes=index.index_size_bytes,
                    action=action,
                )
            )
        return rebuilt

    def bloat_report(self) -> BloatSummary | None:
        """Summarise index counts and the estimated wasted bytes."""
        rows = self.runner.query(REPORT_QUERY)
        if not rows:
            return None
        row = rows[0]
        return BloatSummary(
            total_indexes=row["total_indexes"],
            bloated_indexes=row["bloated_indexes"],
            estimated_wasted_bytes=row["estimated_wasted"],
        )