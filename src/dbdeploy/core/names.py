"""Identifier validation and SQL name helpers."""

from __future__ import annotations

import re

from dbdeploy.core.errors import SchemaDefinitionError

_VALID_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,127}$")


def assert_valid_name(name: str) -> str:
    """Reject anything that is not a plain SQL identifier.

    Names are interpolated into DDL text, so only letters, digits and
    underscores are accepted.
    """
    if not name or not _VALID_NAME.match(name):
        raise SchemaDefinitionError(f"Invalid database object name: {name!r}")
    return name


def qualified_name(schema_name: str, object_name: str) -> str:
    """Return `schema.object` after validating both parts."""
    return f"{assert_valid_name(schema_name)}.{assert_valid_name(object_name)}"


def join_names(names) -> str:
    """Comma-join a list of validated column names."""
    return ", ".join(assert_valid_name(n) for n in names)
