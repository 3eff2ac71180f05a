"""In-memory stand-ins for a DB-API connection and a dialect translator."""

from __future__ import annotations

import threading
from contextlib import contextmanager

from dbdeploy.core.objects import DatabaseObject, ObjectType
from dbdeploy.core.target import DatabaseTarget
from dbdeploy.core.translators.sqlite import SqliteTranslator


class KeywordTranslator(SqliteTranslator):
    """Classifies errors by keywords in their message."""

    name = "fake"

    def begin_transaction(self):
        return None

    def is_deadlock(self, error):
        return "deadlock" in str(error)

    def is_lock_timeout(self, error):
        return "lock timeout" in str(error)

    def is_connection_error(self, error):
        return "connection" in str(error)

    def is_duplicate(self, error):
        return "duplicate" in str(error)

    def is_already_exists(self, error):
        return "already exists" in str(error)

    def is_undefined_name(self, error):
        return "undefined" in str(error)


class SchemaKeywordTranslator(KeywordTranslator):
    """A keyword translator for a dialect with real CREATE SCHEMA."""

    def create_schema(self, schema_name):
        return f"CREATE SCHEMA {schema_name}"


class FakeCursor:
    def __init__(self, conn: FakeConnection):
        self.conn = conn

    def execute(self, sql, params=None):
        with self.conn.lock:
            self.conn.statements.append(sql)
            if sql.startswith("CREATE") and self.conn.failures > 0:
                self.conn.failures -= 1
                raise RuntimeError(self.conn.error_message)

    def fetchall(self):
        return []

    def close(self):
        pass


class FakeConnection:
    """
    Records statements; the first `failures` CREATE statements raise
    `error_message`.
    """

    def __init__(self, failures: int = 0, error_message: str = "deadlock detected"):
        self.failures = failures
        self.error_message = error_message
        self.statements: list[str] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.lock = threading.Lock()

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    def created(self) -> list[str]:
        return [s for s in self.statements if s.startswith("CREATE")]


class FakeConnectionSource:
    """Hands out targets that all share one fake connection."""

    def __init__(self, connection: FakeConnection | None = None, translator: KeywordTranslator | None = None):
        self.connection = connection or FakeConnection()
        self.translator = translator or KeywordTranslator()
        self.acquired = 0

    @contextmanager
    def acquire(self):
        self.acquired += 1
        yield DatabaseTarget(self.connection, self.translator)


class DdlObject(DatabaseObject):
    """Emits one CREATE statement per apply; calls `hook(name)` first."""

    def __init__(self, name: str, *, version: int = 1, schema: str = "APP", hook=None):
        super().__init__(schema, name, ObjectType.TABLE, version)
        self.hook = hook

    def apply(self, target, prior_version=0):
        if self.hook is not None:
            self.hook(self.object_name)
        target.execute(f"CREATE THING {self.object_name}")

    def drop(self, target):
        target.execute(f"DROP THING {self.object_name}")
