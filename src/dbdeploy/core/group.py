"""Object groups: several objects deployed as one unit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from dbdeploy.core.errors import SchemaDefinitionError
from dbdeploy.core.objects import DatabaseObject, ObjectKey, ObjectType

if TYPE_CHECKING:
    from dbdeploy.core.ledger import VersionLedger
    from dbdeploy.core.target import DatabaseTarget


class ObjectGroup(DatabaseObject):
    """
    An ordered collection of objects applied in order within one transaction.

    The group itself is not versioned (version 0); version tracking happens
    on each member. Its dependencies are everything the members depend on
    outside the group, so edges between members never leak out.
    """

    def __init__(self, schema_name: str, group_name: str, members: Iterable[DatabaseObject]):
        super().__init__(schema_name, group_name, ObjectType.GROUP, 0)
        self._members: list[DatabaseObject] = list(members)
        if not self._members:
            raise SchemaDefinitionError(f"Group {group_name} has no members")

        member_keys = {m.key for m in self._members}
        if len(member_keys) != len(self._members):
            raise SchemaDefinitionError(f"Group {group_name} lists a member twice")

        external: list[ObjectKey] = []
        for member in self._members:
            member_deps: list[ObjectKey] = []
            member.fetch_dependencies_to(member_deps)
            external.extend(d for d in member_deps if d not in member_keys)
        self.add_dependency(*external)

    @property
    def members(self) -> tuple[DatabaseObject, ...]:
        return tuple(self._members)

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        # plain apply of every member, regardless of version
        for member in self._members:
            member.apply(target)

    def apply_version(self, target: DatabaseTarget, ledger: VersionLedger) -> None:
        for member in self._members:
            member.apply_version(target, ledger)

    def drop(self, target: DatabaseTarget) -> None:
        for member in reversed(self._members):
            member.drop(target)

    def grant(self, target: DatabaseTarget, group_name: str, grantee: str) -> None:
        for member in self._members:
            member.grant(target, group_name, grantee)
