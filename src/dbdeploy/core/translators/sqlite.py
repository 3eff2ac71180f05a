"""Translator for the embedded SQLite dialect (tests and local runs).

Each schema is an attached database, so qualified names work for tables
and indexes, but FOREIGN KEY targets and index tables must be unqualified.
SQLite has no sequences, row types, GRANT or REORG; those return None.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import TYPE_CHECKING, Any, MutableMapping, Sequence

from dbdeploy.core.columns import Column, ColumnType
from dbdeploy.core.names import assert_valid_name, join_names, qualified_name
from dbdeploy.core.translators.base import DatabaseTranslator

if TYPE_CHECKING:
    from dbdeploy.core.connections import ConnectionDetails

logger = logging.getLogger(__name__)

# primary result codes (extended codes carry these in the low byte)
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_CANTOPEN = 14
SQLITE_NOTADB = 26
SQLITE_CONSTRAINT_PRIMARYKEY = 1555
SQLITE_CONSTRAINT_UNIQUE = 2067

_UNDEFINED_MESSAGES = ("no such table", "no such column", "no such index", "no such view", "unknown database")

_GLOBAL_TEMP = re.compile(r"^\s*GLOBAL\s+TEMPORARY\s+TABLE\s+", re.IGNORECASE)


def _error_code(error: BaseException) -> int | None:
    return getattr(error, "sqlite_errorcode", None)


def _primary_code(error: BaseException) -> int | None:
    code = _error_code(error)
    return None if code is None else code & 0xFF


class SqliteTranslator(DatabaseTranslator):
    """Translator for SQLite via the stdlib sqlite3 driver."""

    name = "sqlite"
    placeholder = "?"

    def is_duplicate(self, error: BaseException) -> bool:
        return _error_code(error) in (SQLITE_CONSTRAINT_UNIQUE, SQLITE_CONSTRAINT_PRIMARYKEY)

    def is_already_exists(self, error: BaseException) -> bool:
        return isinstance(error, sqlite3.Error) and "already exists" in str(error)

    def is_lock_timeout(self, error: BaseException) -> bool:
        # SQLITE_BUSY is returned once the busy timeout has expired
        return _primary_code(error) == SQLITE_BUSY

    def is_deadlock(self, error: BaseException) -> bool:
        return _primary_code(error) == SQLITE_LOCKED

    def is_connection_error(self, error: BaseException) -> bool:
        if _primary_code(error) in (SQLITE_CANTOPEN, SQLITE_NOTADB):
            return True
        return isinstance(error, sqlite3.ProgrammingError) and "closed database" in str(error)

    def is_undefined_name(self, error: BaseException) -> bool:
        if not isinstance(error, sqlite3.Error):
            return False
        msg = str(error).lower()
        return any(m in msg for m in _UNDEFINED_MESSAGES)

    def fill_properties(self, props: MutableMapping[str, Any], details: ConnectionDetails) -> None:
        if details.database:
            props["database"] = details.database
        if details.user or details.password:
            logger.debug("SQLite ignores user/password credentials")
        if details.ssl:
            logger.warning("No TLS support for SQLite; ignoring ssl flag")
        if details.ha:
            logger.warning("No HA support for SQLite")

    def begin_transaction(self) -> str | None:
        return "BEGIN"

    def add_for_update(self, sql: str) -> str:
        # SQLite locks the whole database on write; there is no row lock clause
        return sql

    def global_temp_table_name(self, table_name: str) -> str:
        return f"temp.{assert_valid_name(table_name)}"

    def create_global_temp_table(self, ddl: str) -> str:
        return _GLOBAL_TEMP.sub("CREATE TEMP TABLE ", ddl, count=1)

    def create_sequence(self, name: str, cache: int) -> str | None:
        return None

    def drop_sequence(self, name: str) -> str | None:
        return None

    def reorg_table_command(self, table_name: str) -> str | None:
        return None

    def timestamp_diff(self, left: str, right: str, alias: str | None = None) -> str:
        expr = f"CAST((julianday({right}) - julianday({left})) * 86400 AS INTEGER)"
        return self._aliased(expr, alias)

    def column_type(self, column_type: ColumnType, size: int | None) -> str:
        if column_type == ColumnType.INT:
            return "INTEGER"
        if column_type == ColumnType.DOUBLE:
            return "REAL"
        if column_type == ColumnType.DECIMAL:
            return f"NUMERIC({size})"
        if column_type == ColumnType.CLOB:
            return "TEXT"
        if column_type in (ColumnType.VARCHAR, ColumnType.CHAR):
            return f"{column_type.value}({size})"
        return column_type.value

    def create_schema(self, schema_name: str) -> str | None:
        # schemas are attached databases, created by the connection provider
        return None

    def foreign_key_target(self, schema_name: str, table_name: str) -> str:
        return assert_valid_name(table_name)

    def create_index(
        self,
        schema_name: str,
        index_name: str,
        table_name: str,
        columns: Sequence[str],
        unique: bool,
    ) -> str:
        kind = "UNIQUE INDEX" if unique else "INDEX"
        return (
            f"CREATE {kind} {qualified_name(schema_name, index_name)} "
            f"ON {assert_valid_name(table_name)} ({join_names(columns)})"
        )

    def create_row_type(self, schema_name: str, type_name: str, columns: Sequence[Column]) -> str | None:
        return None

    def drop_type(self, schema_name: str, type_name: str) -> str | None:
        return None

    def grant(self, privileges: Sequence[str], object_kind: str, qualified: str, grantee: str) -> str | None:
        return None

    def table_exists_query(self, schema_name: str, table_name: str) -> tuple[str, tuple]:
        sql = (
            f"SELECT 1 FROM {assert_valid_name(schema_name)}.sqlite_master "
            f"WHERE type = 'table' AND name = ?"
        )
        return sql, (assert_valid_name(table_name),)
