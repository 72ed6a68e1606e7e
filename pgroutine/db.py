"""Thin DB-API query runner and identifier quoting."""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pgroutine.config import RoutineTasksError, TaskLogger


class QueryError(RoutineTasksError):
    """Raised when a statement fails; carries the statement text."""

    def __init__(self, message: str, sql: str) -> None:
        super().__init__(message)
        self.sql = sql


_SIMPLE_IDENTIFIER = re.compile(r"[a-z_][a-z0-9_$]*\Z")

# Keywords that are not "unreserved" and therefore must be quoted.
_QUOTED_KEYWORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric both case cast check
    collate column constraint create current_catalog current_date current_role
    current_time current_timestamp current_user default deferrable desc
    distinct do else end except false fetch for foreign from grant group
    having in initially intersect into lateral leading limit localtime
    localtimestamp not null offset on only or order placing primary references
    returning select session_user some symmetric system_user table then to
    trailing true union unique user using variadic when where window with
    authorization binary collation concurrently cross current_schema freeze
    full ilike inner is isnull join left like natural notnull outer overlaps
    right similar tablesample verbose
    between bigint bit boolean char character coalesce dec decimal exists
    extract float greatest grouping inout int integer interval json json_array
    json_arrayagg json_exists json_object json_objectagg json_query json_scalar
    json_serialize json_table json_value least merge_action national nchar
    none normalize nullif numeric out overlay position precision real row
    setof smallint substring time timestamp treat trim values varchar
    xmlattributes xmlconcat xmlelement xmlexists xmlforest xmlnamespaces
    xmlparse xmlpi xmlroot xmlserialize xmltable
    """.split()
)


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier only when it needs quoting."""
    if _SIMPLE_IDENTIFIER.match(name) and name not in _QUOTED_KEYWORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


class SqlRunner:
    """Runs statements on a DB-API connection and reports failures uniformly."""

    def __init__(self, connection: Any, logger: TaskLogger | None = None) -> None:
        self.connection = connection
        self.logger = logger if logger is not None else TaskLogger()

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        cursor = self.connection.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def _run(self, cursor: Any, sql: str, params: Any) -> None:
        error_type = getattr(self.connection, "Error", Exception)
        self.logger.debug(f"executing: {sql}")
        try:
            if params is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, params)
        except error_type as exc:
            raise QueryError(f"query failed ({exc}) for query: {sql}", sql) from exc

    def query(self, sql: str, params: Any = None) -> list[dict[str, Any]]:
        """Run a statement and return its rows as column-name dictionaries."""
        with self._cursor() as cursor:
            self._run(cursor, sql, params)
            if cursor.description is None:
                return []
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute(self, sql: str, params: Any = None) -> int:
        """Run a statement and return the number of rows it affected."""
        with self._cursor() as cursor:
            self._run(cursor, sql, params)
            return max(cursor.rowcount, 0)