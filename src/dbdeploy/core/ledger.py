"""Version ledger: which version of each object has been applied.

The ledger is the ``VERSION_HISTORY`` table in the admin schema plus an
in-memory snapshot of the highest version per ``schema:type:name``.

Consistency model
-----------------
The snapshot is loaded once per deployment run and is never re-read while
the run is in progress. Two deployers running at the same time (separate
processes) can therefore both decide that a change applies. The second
one's ledger insert either lands as a harmless extra history row or fails
on the primary key, and DDL that is idempotent at the statement level is
not applied twice in a meaningful way. This trades strict serializability
across processes for throughput; there is no cross-process lock. Threads
of a single run share one ledger, and snapshot updates are guarded by a
mutex.

When the transaction that wrote a ledger row rolls back, the snapshot
entry is restored to its previous value so a retry applies the change
again.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from dbdeploy.core.columns import Column, ColumnType, PrimaryKey
from dbdeploy.core.names import assert_valid_name, qualified_name
from dbdeploy.core.tables import Table

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget

logger = logging.getLogger(__name__)

VERSION_HISTORY = "VERSION_HISTORY"
SCHEMA_NAME = "SCHEMA_NAME"
OBJECT_TYPE = "OBJECT_TYPE"
OBJECT_NAME = "OBJECT_NAME"
VERSION = "VERSION"
APPLIED = "APPLIED"


def version_history_table(admin_schema: str) -> Table:
    """The ledger table itself, deployed at version 0 (not version tracked)."""
    return Table(
        admin_schema,
        VERSION_HISTORY,
        [
            Column(SCHEMA_NAME, ColumnType.VARCHAR, 64, nullable=False),
            Column(OBJECT_TYPE, ColumnType.VARCHAR, 16, nullable=False),
            Column(OBJECT_NAME, ColumnType.VARCHAR, 64, nullable=False),
            Column(VERSION, ColumnType.INT, nullable=False),
            Column(APPLIED, ColumnType.TIMESTAMP, nullable=False),
        ],
        version=0,
        primary_key=PrimaryKey("PK_VERSION_HISTORY", (SCHEMA_NAME, OBJECT_TYPE, OBJECT_NAME, VERSION)),
    )


def create_version_history_table(admin_schema: str, target: DatabaseTarget) -> bool:
    """
    Create the ledger table through the plain apply path if it is missing.

    Returns:
        True if the table was created, False if it already existed.
    """
    table = version_history_table(admin_schema)
    with target.transaction():
        if table.exists(target):
            logger.debug("%s already exists", qualified_name(admin_schema, VERSION_HISTORY))
            return False
        logger.info("Creating %s", qualified_name(admin_schema, VERSION_HISTORY))
        table.apply(target)
    return True


@dataclass(frozen=True)
class VersionRecord:
    """One row of the version history."""

    schema_name: str
    object_type: str
    object_name: str
    version: int
    applied: Any

    @property
    def applied_at(self) -> str:
        if isinstance(self.applied, datetime):
            return self.applied.isoformat(sep=" ", timespec="seconds")
        return str(self.applied)


def _key(schema_name: str, object_type: str, object_name: str) -> str:
    return f"{schema_name}:{object_type}:{object_name}"


class VersionLedger:
    """Snapshot of applied versions for the admin schema and one data schema."""

    def __init__(self, admin_schema: str, data_schema: str):
        self.admin_schema = assert_valid_name(admin_schema)
        self.data_schema = assert_valid_name(data_schema)
        self._versions: dict[str, int] | None = None
        self._lock = threading.Lock()

    @property
    def table(self) -> str:
        return qualified_name(self.admin_schema, VERSION_HISTORY)

    @property
    def loaded(self) -> bool:
        return self._versions is not None

    def load(self, target: DatabaseTarget) -> int:
        """
        Read the highest version per object in one aggregate query.

        Returns:
            Number of objects found in the ledger.
        """
        ph = target.translator.placeholder
        sql = (
            f"SELECT {SCHEMA_NAME}, {OBJECT_TYPE}, {OBJECT_NAME}, MAX({VERSION}) "
            f"FROM {self.table} "
            f"WHERE {SCHEMA_NAME} IN ({ph}, {ph}) "
            f"GROUP BY {SCHEMA_NAME}, {OBJECT_TYPE}, {OBJECT_NAME}"
        )
        with target.transaction():
            rows = target.query(sql, (self.admin_schema, self.data_schema))

        versions = {_key(s, t, n): int(v) for s, t, n, v in rows}
        with self._lock:
            self._versions = versions
        logger.info("Loaded %d ledger entries from %s", len(versions), self.table)
        return len(versions)

    def _snapshot(self) -> dict[str, int]:
        if self._versions is None:
            raise RuntimeError("Version ledger has not been loaded")
        return self._versions

    def get_version(self, schema_name: str, object_type: str, object_name: str) -> int:
        """Highest recorded version, or 0 when the object was never applied."""
        with self._lock:
            return self._snapshot().get(_key(schema_name, object_type, object_name), 0)

    def applies(self, schema_name: str, object_type: str, object_name: str, version: int) -> bool:
        """True when `version` is newer than anything recorded for the object."""
        with self._lock:
            current = self._snapshot().get(_key(schema_name, object_type, object_name))
        return current is None or current < version

    def add_version(
        self,
        target: DatabaseTarget,
        schema_name: str,
        object_type: str,
        object_name: str,
        version: int,
    ) -> None:
        """Insert a history row in the caller's transaction and update the snapshot."""
        ph = target.translator.placeholder
        target.execute(
            f"INSERT INTO {self.table} ({SCHEMA_NAME}, {OBJECT_TYPE}, {OBJECT_NAME}, {VERSION}, {APPLIED}) "
            f"VALUES ({ph}, {ph}, {ph}, {ph}, CURRENT_TIMESTAMP)",
            (schema_name, object_type, object_name, version),
        )

        key = _key(schema_name, object_type, object_name)
        with self._lock:
            snapshot = self._snapshot()
            previous = snapshot.get(key)
            snapshot[key] = version

        def restore() -> None:
            with self._lock:
                if previous is None:
                    snapshot.pop(key, None)
                else:
                    snapshot[key] = previous

        target.on_rollback(restore)

    def history(self, target: DatabaseTarget) -> list[VersionRecord]:
        """All history rows for the admin and data schema, oldest first."""
        ph = target.translator.placeholder
        sql = (
            f"SELECT {SCHEMA_NAME}, {OBJECT_TYPE}, {OBJECT_NAME}, {VERSION}, {APPLIED} "
            f"FROM {self.table} "
            f"WHERE {SCHEMA_NAME} IN ({ph}, {ph}) "
            f"ORDER BY {SCHEMA_NAME}, {OBJECT_TYPE}, {OBJECT_NAME}, {VERSION}"
        )
        with target.transaction():
            rows = target.query(sql, (self.admin_schema, self.data_schema))
        return [VersionRecord(s, t, n, int(v), a) for s, t, n, v, a in rows]
