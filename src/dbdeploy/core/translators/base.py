"""Dialect translator contract.

A translator is the only place where vendor identity is allowed to leak
into the engine. It has two jobs:

- classify a raw driver exception into a portable ``ErrorKind`` and wrap
  it into the matching ``DataAccessError`` subclass;
- render the statements whose text differs between database products.

Translators are stateless and safe to share between worker threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, MutableMapping, Sequence

from dbdeploy.core.columns import Column, ColumnType, ForeignKey, PrimaryKey
from dbdeploy.core.errors import DataAccessError, ErrorKind, error_for_kind
from dbdeploy.core.names import assert_valid_name, join_names, qualified_name

if TYPE_CHECKING:
    from dbdeploy.core.connections import ConnectionDetails


class DatabaseTranslator(ABC):
    """Base class for all dialect translators."""

    #: short dialect name, used in logs and CLI choices
    name: str = ""

    #: DB-API parameter marker for this driver
    placeholder: str = "?"

    # -- error classification ------------------------------------------

    @abstractmethod
    def is_duplicate(self, error: BaseException) -> bool:
        """Unique constraint violation."""

    @abstractmethod
    def is_already_exists(self, error: BaseException) -> bool:
        """DDL target already exists."""

    @abstractmethod
    def is_lock_timeout(self, error: BaseException) -> bool:
        """Lock wait exceeded its threshold."""

    @abstractmethod
    def is_deadlock(self, error: BaseException) -> bool:
        """Cyclic lock wait detected by the database."""

    @abstractmethod
    def is_connection_error(self, error: BaseException) -> bool:
        """Transport or connectivity failure."""

    @abstractmethod
    def is_undefined_name(self, error: BaseException) -> bool:
        """Referenced object does not exist."""

    def classify(self, error: BaseException) -> ErrorKind:
        """
        Map a raw error onto exactly one ErrorKind.

        The checks run in a fixed priority order and the first match wins,
        so an error that looks like both a deadlock and a duplicate is a
        deadlock.
        """
        if self.is_deadlock(error):
            return ErrorKind.DEADLOCK
        if self.is_lock_timeout(error):
            return ErrorKind.LOCK_TIMEOUT
        if self.is_connection_error(error):
            return ErrorKind.CONNECTION
        if self.is_duplicate(error):
            return ErrorKind.DUPLICATE
        if self.is_already_exists(error):
            return ErrorKind.ALREADY_EXISTS
        if self.is_undefined_name(error):
            return ErrorKind.UNDEFINED_NAME
        return ErrorKind.GENERIC

    def translate(self, error: BaseException) -> DataAccessError:
        """Wrap a raw driver error into the typed exception for its kind."""
        if isinstance(error, DataAccessError):
            return error
        kind = self.classify(error)
        return error_for_kind(kind, f"[{self.name}] {kind.value}: {error}", cause=error)

    # -- connection properties -----------------------------------------

    @abstractmethod
    def fill_properties(self, props: MutableMapping[str, Any], details: ConnectionDetails) -> None:
        """Add driver connect() arguments derived from the connection details."""

    # -- statement variants --------------------------------------------

    def begin_transaction(self) -> str | None:
        """Statement that opens a transaction, or None when the driver does it implicitly."""
        return None

    def add_for_update(self, sql: str) -> str:
        """Append the row-locking suffix to a SELECT."""
        return f"{sql} FOR UPDATE"

    @abstractmethod
    def global_temp_table_name(self, table_name: str) -> str:
        """Name under which a declared global temporary table is referenced."""

    @abstractmethod
    def create_global_temp_table(self, ddl: str) -> str:
        """
        Turn a `GLOBAL TEMPORARY TABLE <name> (...)` body into a statement.
        """

    @abstractmethod
    def create_sequence(self, name: str, cache: int) -> str | None:
        """CREATE SEQUENCE text, or None when sequences are unsupported."""

    def drop_sequence(self, name: str) -> str | None:
        return f"DROP SEQUENCE {name}"

    @abstractmethod
    def reorg_table_command(self, table_name: str) -> str | None:
        """REORG-style maintenance statement, or None when the dialect has none."""

    @abstractmethod
    def timestamp_diff(self, left: str, right: str, alias: str | None = None) -> str:
        """Expression giving the seconds between two timestamps."""

    @staticmethod
    def _aliased(expr: str, alias: str | None) -> str:
        if not alias:
            return expr
        return f"{expr} AS {assert_valid_name(alias)}"

    @abstractmethod
    def column_type(self, column_type: ColumnType, size: int | None) -> str:
        """Vendor type name for a portable column type."""

    def column_definition(self, column: Column) -> str:
        parts = [column.name, self.column_type(column.column_type, column.size)]
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        if not column.nullable:
            parts.append("NOT NULL")
        return " ".join(parts)

    def create_schema(self, schema_name: str) -> str | None:
        return f"CREATE SCHEMA {assert_valid_name(schema_name)}"

    def create_table(
        self,
        schema_name: str,
        table_name: str,
        columns: Sequence[Column],
        primary_key: PrimaryKey | None,
        foreign_keys: Sequence[ForeignKey],
    ) -> str:
        lines = [self.column_definition(c) for c in columns]
        if primary_key is not None:
            lines.append(
                f"CONSTRAINT {assert_valid_name(primary_key.name)} "
                f"PRIMARY KEY ({join_names(primary_key.columns)})"
            )
        for fk in foreign_keys:
            lines.append(
                f"CONSTRAINT {assert_valid_name(fk.name)} FOREIGN KEY ({join_names(fk.columns)}) "
                f"REFERENCES {self.foreign_key_target(fk.target_schema, fk.target_table)} "
                f"({join_names(fk.target_columns)})"
            )
        body = ",\n  ".join(lines)
        return f"CREATE TABLE {qualified_name(schema_name, table_name)} (\n  {body}\n)"

    def foreign_key_target(self, schema_name: str, table_name: str) -> str:
        """How a FOREIGN KEY clause names the referenced table."""
        return qualified_name(schema_name, table_name)

    def add_column(self, schema_name: str, table_name: str, column: Column) -> str:
        return (
            f"ALTER TABLE {qualified_name(schema_name, table_name)} "
            f"ADD COLUMN {self.column_definition(column)}"
        )

    def drop_table(self, schema_name: str, table_name: str) -> str:
        return f"DROP TABLE {qualified_name(schema_name, table_name)}"

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
            f"ON {qualified_name(schema_name, table_name)} ({join_names(columns)})"
        )

    def drop_index(self, schema_name: str, index_name: str) -> str:
        return f"DROP INDEX {qualified_name(schema_name, index_name)}"

    def create_view(self, schema_name: str, view_name: str, select: str) -> str:
        return f"CREATE VIEW {qualified_name(schema_name, view_name)} AS {select}"

    def drop_view(self, schema_name: str, view_name: str) -> str:
        return f"DROP VIEW {qualified_name(schema_name, view_name)}"

    @abstractmethod
    def create_row_type(self, schema_name: str, type_name: str, columns: Sequence[Column]) -> str | None:
        """CREATE TYPE text for a structured row type, or None when unsupported."""

    def drop_type(self, schema_name: str, type_name: str) -> str | None:
        return f"DROP TYPE {qualified_name(schema_name, type_name)}"

    def grant(
        self,
        privileges: Sequence[str],
        object_kind: str,
        qualified: str,
        grantee: str,
    ) -> str | None:
        """GRANT text, or None when the dialect has no access control."""
        on = f"{object_kind} {qualified}" if object_kind else qualified
        return f"GRANT {', '.join(privileges)} ON {on} TO {assert_valid_name(grantee)}"

    @abstractmethod
    def table_exists_query(self, schema_name: str, table_name: str) -> tuple[str, tuple]:
        """Catalog query returning a row when the table exists."""
