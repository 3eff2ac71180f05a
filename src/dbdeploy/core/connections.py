"""Connection details and per-dialect connection providers.

Providers hand out one fresh connection per ``acquire()`` call, wrapped in a
``DatabaseTarget`` and closed on every exit path. Driver modules for the
server dialects are imported on first use.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from dbdeploy.core.errors import DataAccessError
from dbdeploy.core.names import assert_valid_name
from dbdeploy.core.target import DatabaseTarget
from dbdeploy.core.translators.base import DatabaseTranslator
from dbdeploy.core.translators.sqlite import SqliteTranslator


@dataclass(frozen=True)
class ConnectionDetails:
    """
    Structured connection settings.

    Attributes:
        host: Server host name (server dialects).
        port: Server port; dialect default when None.
        database: Database name, or the SQLite file path.
        user: Login user.
        password: Login password. Excluded from repr so it never reaches logs.
        ssl: Require TLS.
        ha: Request high-availability routing where the dialect supports it.
    """

    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    ssl: bool = False
    ha: bool = False


class ConnectionProvider(ABC):
    """Source of connections for one dialect."""

    def __init__(self, translator: DatabaseTranslator):
        self.translator = translator

    @abstractmethod
    def _open(self) -> Any:
        """Open a raw DB-API connection."""

    def connect(self) -> Any:
        """Open a connection, translating driver failures."""
        try:
            return self._open()
        except DataAccessError:
            raise
        except Exception as exc:
            raise self.translator.translate(exc) from exc

    @contextmanager
    def acquire(self) -> Iterator[DatabaseTarget]:
        """Yield a target on a fresh connection and close it afterwards."""
        connection = self.connect()
        try:
            yield DatabaseTarget(connection, self.translator)
        finally:
            connection.close()


class SqliteConnectionProvider(ConnectionProvider):
    """
    SQLite connections with one attached database file per schema.

    For a main database `deploy.db` the schema `ADMIN` lives in
    `deploy_admin.db`. Connections run with `isolation_level=None` so the
    translator's explicit BEGIN makes DDL transactional.
    """

    def __init__(
        self,
        database: str | Path,
        schemas: Iterable[str] = (),
        *,
        timeout: float = 5.0,
        translator: DatabaseTranslator | None = None,
    ):
        super().__init__(translator or SqliteTranslator())
        self.database = str(database)
        self.schemas = [assert_valid_name(s) for s in dict.fromkeys(schemas)]
        if self.schemas and self.database in ("", ":memory:"):
            # every connection to :memory: is a new, empty database
            raise ValueError("SQLite needs a database file path when schemas are attached")
        self.timeout = timeout

    def schema_file(self, schema_name: str) -> str:
        path = Path(self.database)
        return str(path.with_name(f"{path.stem}_{schema_name.lower()}{path.suffix or '.db'}"))

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.database,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        try:
            for schema in self.schemas:
                conn.execute(f"ATTACH DATABASE ? AS {schema}", (self.schema_file(schema),))
        except Exception:
            conn.close()
            raise
        return conn


class PostgresConnectionProvider(ConnectionProvider):
    """PostgreSQL connections through psycopg."""

    def __init__(self, props: Mapping[str, Any], translator: DatabaseTranslator):
        super().__init__(translator)
        self._props = dict(props)

    def _open(self) -> Any:
        import psycopg

        return psycopg.connect(**self._props)


class Db2ConnectionProvider(ConnectionProvider):
    """Db2 connections through ibm_db_dbi (install the `db2` extra)."""

    def __init__(self, props: Mapping[str, Any], translator: DatabaseTranslator):
        super().__init__(translator)
        self._props = dict(props)

    def dsn(self) -> str:
        return "".join(f"{k}={v};" for k, v in self._props.items() if v is not None)

    def _open(self) -> Any:
        import ibm_db_dbi

        return ibm_db_dbi.connect(self.dsn(), "", "")
