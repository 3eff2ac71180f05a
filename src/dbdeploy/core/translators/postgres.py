"""Translator for PostgreSQL (psycopg driver).

Errors are classified on the SQLSTATE carried by the driver exception.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, MutableMapping, Sequence

from dbdeploy.core.columns import Column, ColumnType
from dbdeploy.core.names import assert_valid_name, join_names, qualified_name
from dbdeploy.core.translators.base import DatabaseTranslator

if TYPE_CHECKING:
    from dbdeploy.core.connections import ConnectionDetails

logger = logging.getLogger(__name__)

_DEADLOCK = "40P01"
_LOCK_NOT_AVAILABLE = "55P03"
_UNIQUE_VIOLATION = "23505"
_ALREADY_EXISTS = {"42P07", "42710", "42P06", "42723"}
_UNDEFINED = {"42P01", "42704", "42703", "42883", "3F000"}
_SERVER_GONE = {"57P01", "57P02", "57P03"}

_GLOBAL_TEMP = re.compile(r"^\s*GLOBAL\s+TEMPORARY\s+TABLE\s+", re.IGNORECASE)


def _sqlstate(error: BaseException) -> str | None:
    # psycopg 3 exposes .sqlstate, psycopg2 .pgcode
    return getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)


class PostgresTranslator(DatabaseTranslator):
    """Translator for PostgreSQL."""

    name = "postgres"
    placeholder = "%s"

    def is_duplicate(self, error: BaseException) -> bool:
        return _sqlstate(error) == _UNIQUE_VIOLATION

    def is_already_exists(self, error: BaseException) -> bool:
        return _sqlstate(error) in _ALREADY_EXISTS

    def is_lock_timeout(self, error: BaseException) -> bool:
        return _sqlstate(error) == _LOCK_NOT_AVAILABLE

    def is_deadlock(self, error: BaseException) -> bool:
        return _sqlstate(error) == _DEADLOCK

    def is_connection_error(self, error: BaseException) -> bool:
        state = _sqlstate(error)
        if state is None:
            # connect() failures carry no SQLSTATE at all
            return type(error).__name__ == "OperationalError"
        return state.startswith("08") or state in _SERVER_GONE

    def is_undefined_name(self, error: BaseException) -> bool:
        return _sqlstate(error) in _UNDEFINED

    def fill_properties(self, props: MutableMapping[str, Any], details: ConnectionDetails) -> None:
        props["host"] = details.host
        if details.port:
            props["port"] = details.port
        props["dbname"] = details.database
        props["user"] = details.user
        props["password"] = details.password
        if details.ssl:
            props["sslmode"] = "require"
        if details.ha:
            # libpq picks the writable node from a multi-host list
            props["target_session_attrs"] = "read-write"

    def global_temp_table_name(self, table_name: str) -> str:
        return assert_valid_name(table_name)

    def create_global_temp_table(self, ddl: str) -> str:
        return _GLOBAL_TEMP.sub("CREATE TEMPORARY TABLE ", ddl, count=1)

    def create_sequence(self, name: str, cache: int) -> str | None:
        if cache > 1:
            return f"CREATE SEQUENCE {name} CACHE {cache}"
        return f"CREATE SEQUENCE {name}"

    def reorg_table_command(self, table_name: str) -> str | None:
        # VACUUM cannot run inside a transaction block, so no REORG equivalent
        return None

    def timestamp_diff(self, left: str, right: str, alias: str | None = None) -> str:
        return self._aliased(f"EXTRACT(EPOCH FROM ({right} - {left}))", alias)

    def column_type(self, column_type: ColumnType, size: int | None) -> str:
        if column_type == ColumnType.INT:
            return "INTEGER"
        if column_type == ColumnType.DOUBLE:
            return "DOUBLE PRECISION"
        if column_type == ColumnType.DECIMAL:
            return f"NUMERIC({size})"
        if column_type == ColumnType.CLOB:
            return "TEXT"
        if column_type == ColumnType.BLOB:
            return "BYTEA"
        if column_type in (ColumnType.VARCHAR, ColumnType.CHAR):
            return f"{column_type.value}({size})"
        return column_type.value

    def create_schema(self, schema_name: str) -> str | None:
        return f"CREATE SCHEMA IF NOT EXISTS {assert_valid_name(schema_name)}"

    def create_index(
        self,
        schema_name: str,
        index_name: str,
        table_name: str,
        columns: Sequence[str],
        unique: bool,
    ) -> str:
        # the index always lives in the table's schema
        kind = "UNIQUE INDEX" if unique else "INDEX"
        return (
            f"CREATE {kind} {assert_valid_name(index_name)} "
            f"ON {qualified_name(schema_name, table_name)} ({join_names(columns)})"
        )

    def create_row_type(self, schema_name: str, type_name: str, columns: Sequence[Column]) -> str | None:
        cols = ", ".join(f"{c.name} {self.column_type(c.column_type, c.size)}" for c in columns)
        return f"CREATE TYPE {qualified_name(schema_name, type_name)} AS ({cols})"

    def table_exists_query(self, schema_name: str, table_name: str) -> tuple[str, tuple]:
        sql = (
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = %s AND table_name = %s"
        )
        # unquoted identifiers are folded to lower case
        return sql, (assert_valid_name(schema_name).lower(), assert_valid_name(table_name).lower())
