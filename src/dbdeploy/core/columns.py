"""Column and constraint definitions used by tables and row types.

These are plain immutable values; turning them into vendor DDL is the job
of the dialect translator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dbdeploy.core.names import assert_valid_name


class ColumnType(str, Enum):
    """Portable column types."""

    SMALLINT = "SMALLINT"
    INT = "INT"
    BIGINT = "BIGINT"
    DOUBLE = "DOUBLE"
    DECIMAL = "DECIMAL"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"
    TIMESTAMP = "TIMESTAMP"
    DATE = "DATE"
    CLOB = "CLOB"
    BLOB = "BLOB"


_SIZED = {ColumnType.VARCHAR, ColumnType.CHAR, ColumnType.DECIMAL}


@dataclass(frozen=True)
class Column:
    """
    A single column definition.

    Attributes:
        name: Column name.
        column_type: Portable type of the column.
        size: Length for VARCHAR/CHAR, precision for DECIMAL.
        nullable: Whether NULL is allowed.
        default: Raw SQL default expression, if any.
        added_in: Table version that introduced the column. Columns newer
                  than the deployed version are added with ALTER TABLE.
    """

    name: str
    column_type: ColumnType
    size: int | None = None
    nullable: bool = True
    default: str | None = None
    added_in: int = 1

    def __post_init__(self) -> None:
        assert_valid_name(self.name)
        if self.column_type in _SIZED and not self.size:
            raise ValueError(f"Column {self.name} of type {self.column_type.value} needs a size")


@dataclass(frozen=True)
class PrimaryKey:
    """Named primary key constraint."""

    name: str
    columns: tuple[str, ...]


@dataclass(frozen=True)
class ForeignKey:
    """Named foreign key constraint referencing another table's columns."""

    name: str
    columns: tuple[str, ...]
    target_schema: str
    target_table: str
    target_columns: tuple[str, ...]
