"""Sequences."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dbdeploy.core.objects import DatabaseObject, ObjectType

if TYPE_CHECKING:
    from dbdeploy.core.target import DatabaseTarget

logger = logging.getLogger(__name__)


class Sequence(DatabaseObject):
    """A sequence with an optional cache-size hint."""

    grant_kind = "SEQUENCE"

    def __init__(self, schema_name: str, sequence_name: str, *, version: int = 1, cache: int = 20):
        super().__init__(schema_name, sequence_name, ObjectType.SEQUENCE, version)
        if cache < 0:
            raise ValueError("cache must be >= 0")
        self.cache = cache

    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        if prior_version > 0:
            # recreating would reset the counter
            logger.info("Sequence %s exists at v%d; leaving it in place", self.object_name, prior_version)
            return
        target.create_sequence(self.schema_name, self.object_name, self.cache)

    def drop(self, target: DatabaseTarget) -> None:
        target.drop_sequence(self.schema_name, self.object_name)
