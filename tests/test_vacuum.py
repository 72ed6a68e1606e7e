import logging
from datetime import datetime
from decimal import Decimal

import pytest

from pgroutine.config import RoutineTasksError, Settings, TaskLogger
from pgroutine.db import QueryError, SqlRunner
from pgroutine.vacuum import (
    AnalyzedTable,
    TableMaintenance,
    VacuumedTable,
    VacuumManager,
)


class FakeError(Exception):
    pass


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self._rows = []

    def execute(self, sql, params=None):
        self.conn.executed.append(sql)
        if self.conn.fail_on and self.conn.fail_on in sql:
            raise FakeError("boom")
        columns, rows = self.conn.responder(sql)
        self.description = [(c,) for c in columns] if columns else None
        self._rows = rows
        self.rowcount = len(rows)

    def fetchall(self):
        return list(self._rows)

    def close(self):
        pass


class FakeConnection:
    Error = FakeError

    def __init__(self, responder, fail_on=None):
        self.responder = responder
        self.fail_on = fail_on
        self.executed = []

    def cursor(self):
        return FakeCursor(self)


STAMP = datetime(2024, 5, 1, 12, 0, 0)


def respond(sql):
    if "last_vacuum" in sql:
        return (
            ["schemaname", "relname", "last_vacuum", "last_analyze",
             "n_dead_tup", "dead_pct", "mod_pct"],
            [
                ("public", "orders", STAMP, None, 500, Decimal("25.50"), Decimal("40.00")),
                ("public", "empty", None, None, 0, None, None),
            ],
        )
    if sql.startswith("SELECT") and "n_dead_tup," in sql:
        return (
            ["schemaname", "relname", "n_dead_tup", "dead_pct", "mod_pct"],
            [
                ("public", "orders", 500, Decimal("25.50"), Decimal("40.00")),
                ("sales", "Mixed", 10, None, Decimal("15.00")),
            ],
        )
    if sql.startswith("SELECT"):
        return (
            ["schemaname", "relname", "mod_pct"],
            [("public", "orders", Decimal("40.00"))],
        )
    return ([], [])


def make_manager(settings=None, fail_on=None):
    conn = FakeConnection(respond, fail_on=fail_on)
    settings = settings or Settings()
    runner = SqlRunner(conn, TaskLogger(settings, logging.getLogger("test.vacuum")))
    return VacuumManager(runner, settings), conn


def test_smart_vacuum_uses_given_thresholds():
    manager, conn = make_manager()
    manager.smart_vacuum(12.5, 7)
    select = conn.executed[0]
    assert "> 12.500000" in select
    assert "> 7.000000" in select
    assert select.rstrip().endswith("ORDER BY n_dead_tup DESC")


def test_smart_vacuum_falls_back_to_settings():
    settings = Settings(vacuum_bloat_threshold_pct=33, vacuum_mod_threshold_pct=44)
    manager, conn = make_manager(settings)
    manager.smart_vacuum()
    assert f"> {33.0:f}" in conn.executed[0]
    assert f"> {44.0:f}" in conn.executed[0]


def test_smart_vacuum_runs_vacuum_per_table_with_quoting():
    manager, conn = make_manager()
    manager.smart_vacuum()
    assert conn.executed[1:] == [
        "VACUUM VERBOSE public.orders",
        'VACUUM VERBOSE sales."Mixed"',
    ]


def test_smart_vacuum_results():
    manager, _ = make_manager()
    result = manager.smart_vacuum()
    assert result == [
        VacuumedTable("public", "orders", 500, 25.5, "VACUUM"),
        VacuumedTable("sales", "Mixed", 10, None, "VACUUM"),
    ]
    assert isinstance(result[0].dead_pct, float)


def test_smart_vacuum_logs(caplog):
    manager, _ = make_manager()
    with caplog.at_level(logging.INFO, logger="test.vacuum"):
        manager.smart_vacuum()
    assert "pgroutine: smart_vacuum: vacuuming public.orders" in caplog.messages


def test_smart_vacuum_rejects_bad_threshold():
    manager, conn = make_manager()
    with pytest.raises(RoutineTasksError, match="threshold"):
        manager.smart_vacuum("lots")
    assert conn.executed == []


def test_smart_analyze_runs_analyze():
    manager, conn = make_manager()
    result = manager.smart_analyze(5)
    assert result == [AnalyzedTable("public", "orders", 40.0, "ANALYZE")]
    assert conn.executed[-1] == "ANALYZE VERBOSE public.orders"
    assert f"> {5.0:f}" in conn.executed[0]
    assert "ORDER BY mod_pct DESC" in conn.executed[0]


def test_smart_analyze_rejects_bool_threshold():
    manager, _ = make_manager()
    with pytest.raises(RoutineTasksError):
        manager.smart_analyze(True)


def test_maintenance_report_maps_all_columns():
    manager, conn = make_manager()
    report = manager.maintenance_report()
    assert report == [
        TableMaintenance("public", "orders", STAMP, None, 500, 25.5, 40.0),
        TableMaintenance("public", "empty", None, None, 0, None, None),
    ]
    assert len(conn.executed) == 1


def test_failed_vacuum_raises_query_error():
    manager, _ = make_manager(fail_on="VACUUM VERBOSE")
    with pytest.raises(QueryError) as info:
        manager.smart_vacuum()
    assert info.value.sql == "VACUUM VERBOSE public.orders"