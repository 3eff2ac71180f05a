"""Database target and transaction scope.

A ``DatabaseTarget`` wraps exactly one DB-API connection plus the dialect
translator for it. Every statement goes through ``execute``/``query``, which
turn raw driver exceptions into typed ``DataAccessError``s. A target is
never shared between threads: each worker acquires its own from a
connection provider.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence

from dbdeploy.core.columns import Column, ForeignKey, PrimaryKey
from dbdeploy.core.names import qualified_name
from dbdeploy.core.translators.base import DatabaseTranslator

logger = logging.getLogger(__name__)


class TransactionProvider(Protocol):
    """Anything that can open a transaction scope."""

    def transaction(self) -> Transaction:
        """Return a new, not yet entered, transaction."""
        ...


class Transaction:
    """
    Unit of work on a single connection.

    Used as a context manager. On a clean exit the transaction commits
    unless it was marked rollback-only; if the block raises, it always rolls
    back and the exception propagates.
    """

    def __init__(self, target: DatabaseTarget):
        self._target = target
        self._rollback_only = False
        self._rollback_hooks: list[Callable[[], None]] = []

    @property
    def rollback_only(self) -> bool:
        return self._rollback_only

    def set_rollback_only(self) -> None:
        """Make sure this transaction rolls back when it is closed."""
        self._rollback_only = True

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """Register a callback that runs if this transaction rolls back."""
        self._rollback_hooks.append(hook)

    def __enter__(self) -> Transaction:
        begin = self._target.translator.begin_transaction()
        if begin:
            self._target.execute(begin)
        self._target._active = self
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._target._active = None
        if exc_type is not None:
            self._rollback_only = True
        if self._rollback_only:
            self._rollback()
        else:
            self._commit()
        return False

    def _commit(self) -> None:
        try:
            self._target.connection.commit()
        except Exception as exc:
            self._rollback()
            raise self._target.translator.translate(exc) from exc

    def _rollback(self) -> None:
        try:
            self._target.connection.rollback()
        except Exception as exc:  # noqa: BLE001
            # the error that caused the rollback is the one worth raising
            logger.warning("Rollback failed: %s", exc)
        for hook in reversed(self._rollback_hooks):
            hook()
        self._rollback_hooks.clear()


class DatabaseTarget:
    """A connection bound to its dialect translator."""

    def __init__(self, connection: Any, translator: DatabaseTranslator):
        self.connection = connection
        self.translator = translator
        self._active: Transaction | None = None

    def transaction(self) -> Transaction:
        """Open a new transaction scope on this connection."""
        return Transaction(self)

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """Run `hook` if the active transaction rolls back (no-op outside one)."""
        if self._active is not None:
            self._active.on_rollback(hook)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute a statement, translating any driver error."""
        logger.debug("SQL: %s", sql)
        cursor = self.connection.cursor()
        try:
            if params:
                cursor.execute(sql, tuple(params))
            else:
                cursor.execute(sql)
        except Exception as exc:
            raise self.translator.translate(exc) from exc
        finally:
            cursor.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Run a SELECT and return all rows."""
        logger.debug("SQL: %s", sql)
        cursor = self.connection.cursor()
        try:
            if params:
                cursor.execute(sql, tuple(params))
            else:
                cursor.execute(sql)
            return [tuple(row) for row in cursor.fetchall()]
        except Exception as exc:
            raise self.translator.translate(exc) from exc
        finally:
            cursor.close()

    def _execute_optional(self, sql: str | None, what: str) -> bool:
        """Execute `sql` unless the dialect signalled it is unsupported."""
        if sql is None:
            logger.warning("%s is not supported by %s; skipping", what, self.translator.name)
            return False
        self.execute(sql)
        return True

    def close(self) -> None:
        self.connection.close()

    # -- DDL -----------------------------------------------------------

    def create_schema(self, schema_name: str) -> None:
        sql = self.translator.create_schema(schema_name)
        if sql is not None:
            self.execute(sql)

    def create_table(
        self,
        schema_name: str,
        table_name: str,
        columns: Sequence[Column],
        primary_key: PrimaryKey | None = None,
        foreign_keys: Sequence[ForeignKey] = (),
    ) -> None:
        self.execute(
            self.translator.create_table(schema_name, table_name, columns, primary_key, foreign_keys)
        )

    def add_column(self, schema_name: str, table_name: str, column: Column) -> None:
        self.execute(self.translator.add_column(schema_name, table_name, column))

    def drop_table(self, schema_name: str, table_name: str) -> None:
        self.execute(self.translator.drop_table(schema_name, table_name))

    def table_exists(self, schema_name: str, table_name: str) -> bool:
        sql, params = self.translator.table_exists_query(schema_name, table_name)
        return bool(self.query(sql, params))

    def create_index(
        self,
        schema_name: str,
        index_name: str,
        table_name: str,
        columns: Sequence[str],
        unique: bool = False,
    ) -> None:
        self.execute(self.translator.create_index(schema_name, index_name, table_name, columns, unique))

    def drop_index(self, schema_name: str, index_name: str) -> None:
        self.execute(self.translator.drop_index(schema_name, index_name))

    def create_view(self, schema_name: str, view_name: str, select: str) -> None:
        self.execute(self.translator.create_view(schema_name, view_name, select))

    def drop_view(self, schema_name: str, view_name: str) -> None:
        self.execute(self.translator.drop_view(schema_name, view_name))

    def create_row_type(self, schema_name: str, type_name: str, columns: Sequence[Column]) -> None:
        self._execute_optional(
            self.translator.create_row_type(schema_name, type_name, columns),
            f"Row type {qualified_name(schema_name, type_name)}",
        )

    def drop_type(self, schema_name: str, type_name: str) -> None:
        self._execute_optional(
            self.translator.drop_type(schema_name, type_name),
            f"DROP TYPE {qualified_name(schema_name, type_name)}",
        )

    def create_sequence(self, schema_name: str, sequence_name: str, cache: int) -> None:
        qname = qualified_name(schema_name, sequence_name)
        self._execute_optional(self.translator.create_sequence(qname, cache), f"Sequence {qname}")

    def drop_sequence(self, schema_name: str, sequence_name: str) -> None:
        qname = qualified_name(schema_name, sequence_name)
        self._execute_optional(self.translator.drop_sequence(qname), f"DROP SEQUENCE {qname}")

    def grant(
        self,
        privileges: Sequence[str],
        object_kind: str,
        schema_name: str,
        object_name: str,
        grantee: str,
    ) -> None:
        qname = qualified_name(schema_name, object_name)
        self._execute_optional(
            self.translator.grant(privileges, object_kind, qname, grantee),
            f"GRANT on {qname}",
        )

    def reorg_table(self, schema_name: str, table_name: str) -> bool:
        """Run the dialect's REORG command; returns False when there is none."""
        qname = qualified_name(schema_name, table_name)
        sql = self.translator.reorg_table_command(qname)
        if sql is None:
            logger.info("No REORG command for %s; skipping %s", self.translator.name, qname)
            return False
        self.execute(sql)
        return True
