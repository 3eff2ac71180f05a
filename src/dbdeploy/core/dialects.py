"""Dialect registry: maps a dialect name to its translator and provider."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from dbdeploy.core.connections import (
    ConnectionDetails,
    ConnectionProvider,
    Db2ConnectionProvider,
    PostgresConnectionProvider,
    SqliteConnectionProvider,
)
from dbdeploy.core.translators.base import DatabaseTranslator
from dbdeploy.core.translators.db2 import Db2Translator
from dbdeploy.core.translators.postgres import PostgresTranslator
from dbdeploy.core.translators.sqlite import SqliteTranslator


class Dialect(str, Enum):
    """Supported database products."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"
    DB2 = "db2"


_TRANSLATORS: dict[Dialect, type[DatabaseTranslator]] = {
    Dialect.SQLITE: SqliteTranslator,
    Dialect.POSTGRES: PostgresTranslator,
    Dialect.DB2: Db2Translator,
}


def get_translator(dialect: Dialect | str) -> DatabaseTranslator:
    """Return a translator instance for the dialect name."""
    try:
        return _TRANSLATORS[Dialect(dialect)]()
    except ValueError as exc:
        raise ValueError(f"Unsupported dialect: {dialect}") from exc


def build_connection_provider(
    dialect: Dialect | str,
    details: ConnectionDetails,
    schemas: Iterable[str] = (),
) -> ConnectionProvider:
    """
    Build a connection provider for the dialect.

    The driver arguments are assembled by the translator's
    `fill_properties`, which also warns about capabilities the dialect
    lacks.

    Args:
        dialect: Target database product.
        details: Structured connection settings.
        schemas: Schemas the deployment touches (SQLite attaches one file each).
    """
    translator = get_translator(dialect)
    props: dict[str, Any] = {}
    translator.fill_properties(props, details)

    kind = Dialect(dialect)
    if kind == Dialect.SQLITE:
        return SqliteConnectionProvider(props.get("database", ""), schemas, translator=translator)
    if kind == Dialect.POSTGRES:
        return PostgresConnectionProvider(props, translator)
    return Db2ConnectionProvider(props, translator)
