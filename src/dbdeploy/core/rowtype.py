"""Structured row types (used to pass parameter rows to stored procedures)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from dbdeploy.core.columns import Column
from dbdeploy.core.errors import SchemaDefinitionError
from dbdeploy.core.objects import DatabaseObject, ObjectType

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget


class RowType(DatabaseObject):
    grant_kind = "TYPE"

    def __init__(self, schema_name: str, type_name: str, columns: Sequence[Column], *, version: int = 1):
        super().__init__(schema_name, type_name, ObjectType.TYPE, version)
        if not columns:
            raise SchemaDefinitionError(f"Row type {type_name} has no columns")
        self.columns = tuple(columns)

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        if prior_version > 0:
            target.drop_type(self.schema_name, self.object_name)
        target.create_row_type(self.schema_name, self.object_name, self.columns)

    def drop(self, target: DatabaseTarget) -> None:
        target.drop_type(self.schema_name, self.object_name)
