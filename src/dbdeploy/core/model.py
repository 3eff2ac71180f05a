"""The physical data model: every deployable object plus its dependency graph."""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING, Iterable, Iterator

from dbdeploy.core.errors import DependencyCycleError, SchemaDefinitionError
from dbdeploy.core.group import ObjectGroup
from dbdeploy.core.objects import DatabaseObject, ObjectKey

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget

logger = logging.getLogger(__name__)


class PhysicalDataModel:
    """
    Owns the top-level objects of a schema, keyed by identity.

    Objects refer to each other only by ``ObjectKey``; the model resolves
    those keys. A dependency on a member of a group resolves to the group,
    since the group is what gets scheduled.
    """

    def __init__(self, objects: Iterable[DatabaseObject] = ()):
        self._objects: dict[ObjectKey, DatabaseObject] = {}
        # member key -> key of the top-level object that deploys it
        self._owner: dict[ObjectKey, ObjectKey] = {}
        for obj in objects:
            self.add_object(obj)

    def add_object(self, obj: DatabaseObject) -> DatabaseObject:
        """Register a top-level object (a group registers its members too)."""
        keys = [obj.key]
        if isinstance(obj, ObjectGroup):
            keys.extend(m.key for m in obj.members)

        for key in keys:
            if key in self._owner:
                raise SchemaDefinitionError(f"Duplicate object in model: {key}")

        self._objects[obj.key] = obj
        for key in keys:
            self._owner[key] = obj.key
        return obj

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[DatabaseObject]:
        return iter(self._objects.values())

    def __contains__(self, key: object) -> bool:
        return key in self._owner

    def objects(self) -> list[DatabaseObject]:
        """Top-level objects in insertion order."""
        return list(self._objects.values())

    def resolve(self, key: ObjectKey) -> DatabaseObject:
        """Return the top-level object that deploys `key`."""
        owner = self._owner.get(key)
        if owner is None:
            raise SchemaDefinitionError(f"Unknown dependency: {key}")
        return self._objects[owner]

    def dependency_graph(self) -> dict[ObjectKey, set[ObjectKey]]:
        """Map each top-level key to the top-level keys it depends on."""
        graph: dict[ObjectKey, set[ObjectKey]] = {}
        for key, obj in self._objects.items():
            deps = set()
            for dep in obj.dependencies():
                resolved = self.resolve(dep).key
                if resolved != key:
                    deps.add(resolved)
            graph[key] = deps
        return graph

    def topological_order(self) -> list[DatabaseObject]:
        """
        Return the objects so that every dependency precedes its dependents.

        Ties are broken by insertion order, so the result is stable for a
        given model.

        Raises:
            DependencyCycleError: The graph has a cycle.
            SchemaDefinitionError: A dependency is not in the model.
        """
        graph = self.dependency_graph()
        position = {key: i for i, key in enumerate(self._objects)}
        keys = list(self._objects)

        indegree = {key: len(deps) for key, deps in graph.items()}
        dependents: dict[ObjectKey, list[ObjectKey]] = {key: [] for key in graph}
        for key, deps in graph.items():
            for dep in deps:
                dependents[dep].append(key)

        ready = [position[k] for k, n in indegree.items() if n == 0]
        heapq.heapify(ready)
        order: list[DatabaseObject] = []
        while ready:
            key = keys[heapq.heappop(ready)]
            order.append(self._objects[key])
            for child in dependents[key]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, position[child])

        if len(order) != len(keys):
            raise DependencyCycleError(_find_cycle(graph))
        return order

    # -- model-level operations ----------------------------------------

    def apply(self, target: DatabaseTarget) -> None:
        """Plain apply of every object in dependency order, ignoring versions."""
        for obj in self.topological_order():
            logger.info("Applying %s", obj.type_and_name)
            obj.apply(target)

    def drop(self, target: DatabaseTarget) -> None:
        """Drop every object, dependents first."""
        for obj in reversed(self.topological_order()):
            logger.info("Dropping %s", obj.type_and_name)
            obj.drop(target)

    def apply_grants(self, target: DatabaseTarget, group_name: str, grantee: str) -> None:
        """Grant the privileges of `group_name` on every object to `grantee`."""
        for obj in self.topological_order():
            obj.grant(target, group_name, grantee)


def _find_cycle(graph: dict[ObjectKey, set[ObjectKey]]) -> list[str]:
    """Depth-first search for one cycle; returns it as a closed path of names."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = {key: WHITE for key in graph}
    stack: list[ObjectKey] = []

    def visit(key: ObjectKey) -> list[str] | None:
        color[key] = GREY
        stack.append(key)
        for dep in sorted(graph[key]):
            if color[dep] == GREY:
                cycle = stack[stack.index(dep):] + [dep]
                return [str(k) for k in cycle]
            if color[dep] == WHITE:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        color[key] = BLACK
        return None

    for key in sorted(graph):
        if color[key] == WHITE:
            found = visit(key)
            if found:
                return found
    return []
