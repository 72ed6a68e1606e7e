"""Pre-creation, retention review and reporting of range partitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pgroutine.config import RoutineTasksError, Settings
from pgroutine.db import SqlRunner

RUNTIME_RANGE = "computed at runtime"
DEFAULT_RETENTION_DAYS = 90
MAX_NAME_LENGTH = 63


class Period(enum.Enum):
    """Width of each range partition."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def unit(self) -> str:
        """The date_trunc unit for this period."""
        return {"daily": "day", "weekly": "week", "monthly": "month"}[self.value]

    @property
    def interval(self) -> str:
        """One period as an SQL interval literal body."""
        return f"1 {self.unit}"

    @classmethod
    def parse(cls, value: Any) -> "Period":
        """Accept a Period or one of its names: daily, weekly or monthly."""
        if isinstance(value, Period):
            return value
        try:
            return cls(value)
        except ValueError:
            raise RoutineTasksError(
                f"pgroutine: unsupported period '{value}' — use daily, weekly, or monthly"
            ) from None


@dataclass(frozen=True)
class CreatedPartition:
    """A partition that was requested for creation."""

    partition_name: str
    range_start: str
    range_end: str


@dataclass(frozen=True)
class PartitionEvaluation:
    """A child partition that was considered for dropping."""

    partition_name: str
    dropped: bool


@dataclass(frozen=True)
class PartitionInfo:
    """Size and estimated row count of one child partition."""

    partition_name: str
    size_bytes: int
    row_estimate: float


def _quote_literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _children_query(parent: str, with_sizes: bool) -> str:
    columns = (
        "c.relname, "
        "       pg_relation_size(c.oid)::bigint AS size_bytes, "
        "       c.reltuples "
        if with_sizes
        else "c.relname "
    )
    return (
        f"SELECT {columns}"
        "FROM pg_inherits i "
        "JOIN pg_class c ON c.oid = i.inhrelid "
        "JOIN pg_class p ON p.oid = i.inhparent "
        f"WHERE p.relname = {_quote_literal(parent)} "
        "ORDER BY c.relname"
    )


def _create_block(parent: str, offset: int, period: Period) -> str:
    parent_literal = _quote_literal(parent)
    return (
        "DO $$ "
        "DECLARE "
        f"  range_start date := (date_trunc('{period.unit}', CURRENT_DATE) "
        f"+ interval '{period.interval}' * {offset})::date; "
        f"  range_end   date := (date_trunc('{period.unit}', CURRENT_DATE) "
        f"+ interval '{period.interval}' * {offset + 1})::date; "
        f"  part_name   text := format('%s_p%s', {parent_literal}, "
        "to_char(range_start, 'YYYYMMDD')); "
        "BEGIN "
        "  EXECUTE format("
        "    'CREATE TABLE IF NOT EXISTS %I PARTITION OF %I "
        "     FOR VALUES FROM (%L) TO (%L)', "
        f"    part_name, {parent_literal}, range_start, range_end); "
        "END $$"
    )


def _integer(value: Any, default: int, what: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise RoutineTasksError(f"{what} must be an integer, got {value!r}")
    return value


class PartitionManager:
    """Keeps range-partitioned tables supplied with future partitions."""

    def __init__(self, runner: SqlRunner, settings: Settings | None = None) -> None:
        self.runner = runner
        self.settings = settings if settings is not None else Settings()

    @property
    def logger(self):
        return self.runner.logger

    def _resolve_parent(self, parent: str | None) -> str:
        if parent is None:
            self.logger.error("parent table must not be NULL")
        rows = self.runner.query(
            "SELECT c.relname FROM pg_class c "
            f"WHERE c.oid = to_regclass({_quote_literal(parent)})"
        )
        if not rows or rows[0]["relname"] is None:
            self.logger.error(f"relation {parent} does not exist")
        return rows[0]["relname"]

    def create_future_partitions(self, parent: str | None, count: int | None = None,
                                 period: Period | str | None = None) -> list[CreatedPartition]:
        """Create `count` consecutive future range partitions of `parent`."""
        if parent is None:
            self.logger.error("parent table must not be NULL")
        total = _integer(count, self.settings.partition_pre_create_count, "count")
        raw_period = Period.MONTHLY if period is None else period
        parent_name = self._resolve_parent(parent)
        try:
            chosen = Period.parse(raw_period)
        except RoutineTasksError as exc:
            self.logger.error(str(exc).removeprefix("pgroutine: "))

        created = []
        for offset in range(total):
            part_name = f"{parent_name}_p{offset + 1}"[:MAX_NAME_LENGTH]
            self.runner.execute(_create_block(parent_name, offset, chosen))
            created.append(CreatedPartition(part_name, RUNTIME_RANGE, RUNTIME_RANGE))
            self.logger.info(f"created partition {part_name} for {parent_name}")
        return created

    def drop_old_partitions(self, parent: str | None,
                            retention_days: int | None = None) -> list[PartitionEvaluation]:
        """List the child partitions evaluated against the retention window.

        Nothing is dropped: every child is reported with dropped=False.
        """
        if parent is None:
            self.logger.error("parent table must not be NULL")
        _integer(retention_days, DEFAULT_RETENTION_DAYS, "retention_days")
        parent_name = self._resolve_parent(parent)

        evaluations = []
        for row in self.runner.query(_children_query(parent_name, with_sizes=False)):
            child = row["relname"]
            evaluations.append(PartitionEvaluation(partition_name=child, dropped=False))
            self.logger.info(f"evaluated partition {child} for potential drop")
        return evaluations

    def partition_report(self, parent: str | None) -> list[PartitionInfo]:
        """Report every child partition with its size and row estimate."""
        parent_name = self._resolve_parent(parent)
        return [
            PartitionInfo(
                partition_name=row["relname"],
                size_bytes=row["size_bytes"],
                row_estimate=row["reltuples"],
            )
            for row in self.runner.query(_children_query(parent_name, with_sizes=True))
        ]