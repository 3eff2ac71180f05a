"""Tables and indexes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Sequence

from dbdeploy.core.columns import Column, ForeignKey, PrimaryKey
from dbdeploy.core.errors import SchemaDefinitionError
from dbdeploy.core.names import assert_valid_name
from dbdeploy.core.objects import DatabaseObject, ObjectKey, ObjectType

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget

logger = logging.getLogger(__name__)


class Table(DatabaseObject):
    """
    A table with columns, an optional primary key and foreign keys.

    Each foreign key makes the table depend on the referenced table. When
    the deployed version is older than `version`, only the columns whose
    `added_in` is newer than the deployed version are added.
    """

    grant_kind = "TABLE"

    def __init__(
        self,
        schema_name: str,
        table_name: str,
        columns: Sequence[Column],
        *,
        version: int = 1,
        primary_key: PrimaryKey | None = None,
        foreign_keys: Iterable[ForeignKey] = (),
    ):
        super().__init__(schema_name, table_name, ObjectType.TABLE, version)
        self.columns: tuple[Column, ...] = tuple(columns)
        self.primary_key = primary_key
        self.foreign_keys: tuple[ForeignKey, ...] = tuple(foreign_keys)
        self._validate()

        for fk in self.foreign_keys:
            self.add_dependency(ObjectKey(ObjectType.TABLE, fk.target_table))

    def _validate(self) -> None:
        if not self.columns:
            raise SchemaDefinitionError(f"Table {self.object_name} has no columns")

        names = [c.name for c in self.columns]
        if len(set(names)) != len(names):
            raise SchemaDefinitionError(f"Table {self.object_name} has duplicate column names")

        for c in self.columns:
            if c.added_in > max(self.version, 1):
                raise SchemaDefinitionError(
                    f"Column {self.object_name}.{c.name} added in v{c.added_in} "
                    f"but the table is at v{self.version}"
                )
            if c.added_in > 1 and not c.nullable and c.default is None:
                raise SchemaDefinitionError(
                    f"Column {self.object_name}.{c.name} is added later and must be nullable or have a default"
                )

        known = set(names)
        constrained = list(self.primary_key.columns) if self.primary_key else []
        for fk in self.foreign_keys:
            constrained.extend(fk.columns)
        missing = [c for c in constrained if c not in known]
        if missing:
            raise SchemaDefinitionError(
                f"Table {self.object_name} constraints reference unknown columns: {', '.join(missing)}"
            )

    def exists(self, target: DatabaseTarget) -> bool:
        return target.table_exists(self.schema_name, self.object_name)

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        if prior_version <= 0:
            target.create_table(
                self.schema_name,
                self.object_name,
                self.columns,
                self.primary_key,
                self.foreign_keys,
            )
            return

        for column in self.columns:
            if column.added_in > prior_version:
                logger.info("Adding column %s.%s [v%d]", self.object_name, column.name, column.added_in)
                target.add_column(self.schema_name, self.object_name, column)

    def drop(self, target: DatabaseTarget) -> None:
        target.drop_table(self.schema_name, self.object_name)


class Index(DatabaseObject):
    """A plain or unique index on one table."""

    def __init__(
        self,
        schema_name: str,
        index_name: str,
        table_name: str,
        columns: Sequence[str],
        *,
        version: int = 1,
        unique: bool = False,
    ):
        super().__init__(schema_name, index_name, ObjectType.INDEX, version)
        if not columns:
            raise SchemaDefinitionError(f"Index {index_name} has no columns")
        self.table_name = assert_valid_name(table_name)
        self.columns = tuple(assert_valid_name(c) for c in columns)
        self.unique = unique
        self.add_dependency(ObjectKey(ObjectType.TABLE, self.table_name))

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        if prior_version > 0:
            # an index definition change means rebuilding it
            target.drop_index(self.schema_name, self.object_name)
        target.create_index(self.schema_name, self.object_name, self.table_name, self.columns, self.unique)

    def drop(self, target: DatabaseTarget) -> None:
        target.drop_index(self.schema_name, self.object_name)
