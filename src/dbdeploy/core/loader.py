"""Locate a model factory given as ``module:function``."""

from __future__ import annotations

import importlib
from collections.abc import Iterable

from dbdeploy.core.errors import SchemaDefinitionError
from dbdeploy.core.model import PhysicalDataModel
from dbdeploy.core.objects import DatabaseObject


def load_model(reference: str, schema_name: str) -> PhysicalDataModel:
    """
    Import `module:function` and call it with the data schema name.

    The factory may return a ``PhysicalDataModel`` or any iterable of
    ``DatabaseObject``s, which is wrapped into a model.

    Raises:
        SchemaDefinitionError: The reference cannot be resolved or the factory
            returned something that is not a model.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise SchemaDefinitionError(f"Model must be given as module:function, got {reference!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise SchemaDefinitionError(f"Cannot import model module {module_name!r}: {exc}") from exc

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise SchemaDefinitionError(f"{module_name!r} has no callable {attr!r}")

    built = factory(schema_name)
    if isinstance(built, PhysicalDataModel):
        return built
    if isinstance(built, Iterable):
        objects: list[DatabaseObject] = list(built)
        if all(isinstance(o, DatabaseObject) for o in objects):
            return PhysicalDataModel(objects)
    raise SchemaDefinitionError(f"{reference} did not return a data model")
