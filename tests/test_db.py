import sqlite3

import pytest

from pgroutine.config import RoutineTasksError
from pgroutine.db import QueryError, SqlRunner, quote_identifier


def _unquote(text):
    if text.startswith('"') and text.endswith('"'):
        return text[1:-1].replace('""', '"')
    return text


@pytest.fixture
def runner():
    connection = sqlite3.connect(":memory:")
    connection.execute("CREATE TABLE items (id INTEGER, name TEXT)")
    connection.executemany(
        "INSERT INTO items VALUES (?, ?)", [(1, "alpha"), (2, "beta"), (3, "gamma")]
    )
    yield SqlRunner(connection)
    connection.close()


def test_plain_identifier_unchanged():
    assert quote_identifier("orders") == "orders"
    assert quote_identifier("_tmp$1") == "_tmp$1"


def test_mixed_case_is_quoted():
    assert quote_identifier("Orders") == '"Orders"'


def test_reserved_keyword_is_quoted():
    assert quote_identifier("select") == '"select"'


def test_embedded_quote_is_doubled():
    assert quote_identifier('a"b') == '"a""b"'


@pytest.mark.parametrize("name", ["1abc", "has space", "", "table", "user", "Weird\"Name"])
def test_quoting_round_trips(name):
    quoted = quote_identifier(name)
    assert quoted.startswith('"') and quoted.endswith('"')
    assert _unquote(quoted) == name


def test_quoted_identifier_usable_in_sql(runner):
    name = quote_identifier("My Table")
    runner.execute(f"CREATE TABLE {name} (v INTEGER)")
    runner.execute(f"INSERT INTO {name} VALUES (?)", (7,))
    assert runner.query(f"SELECT v FROM {name}") == [{"v": 7}]


def test_query_returns_named_rows(runner):
    rows = runner.query("SELECT id, name FROM items ORDER BY id")
    assert [row["name"] for row in rows] == ["alpha", "beta", "gamma"]
    assert set(rows[0]) == {"id", "name"}


def test_query_with_params(runner):
    rows = runner.query("SELECT name FROM items WHERE id > ? ORDER BY id", (1,))
    assert rows == [{"name": "beta"}, {"name": "gamma"}]


def test_query_non_select_returns_empty(runner):
    assert runner.query("UPDATE items SET name = 'x' WHERE id = 1") == []
    assert runner.query("SELECT name FROM items WHERE id = 1") == [{"name": "x"}]


def test_execute_returns_affected_rows(runner):
    assert runner.execute("DELETE FROM items WHERE id >= ?", (2,)) == 2
    assert runner.query("SELECT count(*) AS n FROM items") == [{"n": 1}]


def test_execute_ddl_reports_zero(runner):
    assert runner.execute("CREATE TABLE other (x INTEGER)") == 0


def test_failed_statement_raises_query_error(runner):
    sql = "SELECT * FROM missing_table"
    with pytest.raises(QueryError) as info:
        runner.query(sql)
    assert info.value.sql == sql
    assert sql in str(info.value)
    assert isinstance(info.value, RoutineTasksError)


def test_failed_execute_raises_query_error(runner):
    with pytest.raises(QueryError):
        runner.execute("INSERT INTO nowhere VALUES (1)")