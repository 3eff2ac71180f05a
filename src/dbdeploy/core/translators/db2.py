"""Translator for IBM Db2 (ibm_db_dbi driver).

The Db2 CLI driver reports errors as text carrying `SQLSTATE=` and
`SQLCODE=` markers, so classification parses them out of the message.
Db2 is the only supported dialect with a REORG command.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, MutableMapping, Sequence

from dbdeploy.core.columns import Column, ColumnType
from dbdeploy.core.names import assert_valid_name, qualified_name
from dbdeploy.core.translators.base import DatabaseTranslator

if TYPE_CHECKING:
    from dbdeploy.core.connections import ConnectionDetails

logger = logging.getLogger(__name__)

_SQLSTATE = re.compile(r"SQLSTATE=(\w{5})")
_SQLCODE = re.compile(r"SQLCODE=(-?\d+)")
_REASON = re.compile(r'[Rr]eason code "?(\d+)"?')

_ROLLED_BACK = -911
_STATEMENT_TIMEOUT = -913
_LOCK_TIMEOUT_REASON = 68


def _parse(error: BaseException) -> tuple[str | None, int | None, int | None]:
    text = str(error)
    state = _SQLSTATE.search(text)
    code = _SQLCODE.search(text)
    reason = _REASON.search(text)
    return (
        state.group(1) if state else None,
        int(code.group(1)) if code else None,
        int(reason.group(1)) if reason else None,
    )


class Db2Translator(DatabaseTranslator):
    """Translator for Db2 LUW."""

    name = "db2"
    placeholder = "?"

    def is_duplicate(self, error: BaseException) -> bool:
        state, code, _ = _parse(error)
        return state == "23505" or code == -803

    def is_already_exists(self, error: BaseException) -> bool:
        state, code, _ = _parse(error)
        return state == "42710" or code == -601

    def is_lock_timeout(self, error: BaseException) -> bool:
        state, code, reason = _parse(error)
        if code == _STATEMENT_TIMEOUT or state == "57033":
            return True
        return code == _ROLLED_BACK and reason == _LOCK_TIMEOUT_REASON

    def is_deadlock(self, error: BaseException) -> bool:
        # -911 reason 2 is a deadlock; reason 68 is a lock timeout
        state, code, reason = _parse(error)
        return code == _ROLLED_BACK and state == "40001" and reason != _LOCK_TIMEOUT_REASON

    def is_connection_error(self, error: BaseException) -> bool:
        state, code, _ = _parse(error)
        return (state is not None and state.startswith("08")) or code == -30081

    def is_undefined_name(self, error: BaseException) -> bool:
        state, code, _ = _parse(error)
        return state == "42704" or code == -204

    def fill_properties(self, props: MutableMapping[str, Any], details: ConnectionDetails) -> None:
        props["DATABASE"] = details.database
        props["HOSTNAME"] = details.host
        props["PORT"] = details.port or 50000
        props["PROTOCOL"] = "TCPIP"
        props["UID"] = details.user
        props["PWD"] = details.password
        if details.ssl:
            props["SECURITY"] = "SSL"
        if details.ha:
            logger.warning("HA for Db2 is configured in db2dsdriver.cfg; ignoring ha flag")

    def global_temp_table_name(self, table_name: str) -> str:
        return f"SESSION.{assert_valid_name(table_name)}"

    def create_global_temp_table(self, ddl: str) -> str:
        return f"DECLARE {ddl}"

    def create_sequence(self, name: str, cache: int) -> str | None:
        cache_clause = f"CACHE {cache}" if cache > 1 else "NO CACHE"
        return f"CREATE SEQUENCE {name} AS BIGINT START WITH 1 {cache_clause} NO CYCLE"

    def reorg_table_command(self, table_name: str) -> str | None:
        return f"CALL SYSPROC.ADMIN_CMD('REORG TABLE {table_name}')"

    def timestamp_diff(self, left: str, right: str, alias: str | None = None) -> str:
        # interval 2 = seconds
        return self._aliased(f"TIMESTAMPDIFF(2, CHAR({right} - {left}))", alias)

    def column_type(self, column_type: ColumnType, size: int | None) -> str:
        if column_type in (ColumnType.VARCHAR, ColumnType.CHAR):
            return f"{column_type.value}({size} OCTETS)"
        if column_type == ColumnType.DECIMAL:
            return f"DECIMAL({size})"
        if column_type in (ColumnType.CLOB, ColumnType.BLOB):
            return f"{column_type.value}({size or 1048576})"
        return column_type.value

    def create_row_type(self, schema_name: str, type_name: str, columns: Sequence[Column]) -> str | None:
        cols = ", ".join(f"{c.name} {self.column_type(c.column_type, c.size)}" for c in columns)
        return f"CREATE OR REPLACE TYPE {qualified_name(schema_name, type_name)} AS ROW ({cols})"

    def grant(self, privileges: Sequence[str], object_kind: str, qualified: str, grantee: str) -> str | None:
        if object_kind == "TYPE":
            # row types carry no privileges in Db2
            return None
        return super().grant(privileges, object_kind, qualified, grantee)

    def table_exists_query(self, schema_name: str, table_name: str) -> tuple[str, tuple]:
        sql = "SELECT 1 FROM SYSCAT.TABLES WHERE TABSCHEMA = ? AND TABNAME = ?"
        return sql, (assert_valid_name(schema_name), assert_valid_name(table_name))
