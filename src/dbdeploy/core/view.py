"""Views."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from dbdeploy.core.objects import DatabaseObject, ObjectType

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget


class View(DatabaseObject):
    """
    A view over a SELECT statement.

    The tables (or views) it reads from are passed as `reads` and become
    dependencies, so the view is always created after them.
    """

    grant_kind = "TABLE"

    def __init__(
        self,
        schema_name: str,
        view_name: str,
        select: str,
        *,
        version: int = 1,
        reads: Iterable[DatabaseObject] = (),
    ):
        super().__init__(schema_name, view_name, ObjectType.VIEW, version)
        if not select.strip():
            raise ValueError(f"View {view_name} has an empty select")
        self.select = select
        self.add_dependency(*reads)

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        if prior_version > 0:
            target.drop_view(self.schema_name, self.object_name)
        target.create_view(self.schema_name, self.object_name, self.select)

    def drop(self, target: DatabaseTarget) -> None:
        target.drop_view(self.schema_name, self.object_name)
