"""Versioned database objects.

A ``DatabaseObject`` is the unit of deployment: it knows how to create and
drop itself against a ``DatabaseTarget``, which version of it the code
declares, and which other objects must exist first. The concrete variants
are Table, Index, RowType, Sequence, View and ObjectGroup.

Identity is the `(object_type, object_name)` pair; dependencies are stored
as identities and resolved by the owning ``PhysicalDataModel``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, MutableSequence

from dbdeploy.core.errors import DataAccessError, ErrorKind
from dbdeploy.core.names import assert_valid_name
from dbdeploy.core.retry import RetryPolicy

if TYPE_CHECKING:
    from dbdeploy.core.ledger import VersionLedger
    from dbdeploy.core.target import DatabaseTarget, TransactionProvider

logger = logging.getLogger(__name__)


class ObjectType(str, Enum):
    """Kinds of deployable objects, as recorded in the version ledger."""

    TABLE = "TABLE"
    INDEX = "INDEX"
    TYPE = "TYPE"
    SEQUENCE = "SEQUENCE"
    VIEW = "VIEW"
    GROUP = "GROUP"


class Privilege(str, Enum):
    """Privileges that can be granted on an object."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    USAGE = "USAGE"
    EXECUTE = "EXECUTE"
    REFERENCES = "REFERENCES"
    ALTER = "ALTER"


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Identity of a database object within a model."""

    object_type: ObjectType
    object_name: str

    def __str__(self) -> str:
        return f"{self.object_type.value}:{self.object_name}"


@dataclass(frozen=True)
class ApplyOutcome:
    """Result of a committed apply-with-retry cycle."""

    object_name: str
    attempts: int

    @property
    def retries(self) -> int:
        return self.attempts - 1


class DatabaseObject(ABC):
    """Base class for all deployable objects."""

    #: keyword placed after GRANT ... ON for this kind of object
    grant_kind: str = ""

    def __init__(self, schema_name: str, object_name: str, object_type: ObjectType, version: int):
        if version < 0:
            raise ValueError("version must be >= 0")
        self.schema_name = assert_valid_name(schema_name)
        self.object_name = assert_valid_name(object_name)
        self.object_type = object_type
        self.version = version
        self._tags: dict[str, str] = {}
        self._dependencies: set[ObjectKey] = set()
        self._privileges: dict[str, list[Privilege]] = {}

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.object_type, self.object_name)

    @property
    def type_and_name(self) -> str:
        return str(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DatabaseObject):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.schema_name}.{self.object_name}, v{self.version})"

    # -- tags ----------------------------------------------------------

    @property
    def tags(self) -> Mapping[str, str]:
        return MappingProxyType(self._tags)

    def add_tag(self, name: str, value: str) -> None:
        self._tags[name] = value

    def add_tags(self, tags: Mapping[str, str]) -> None:
        self._tags.update(tags)

    # -- dependencies --------------------------------------------------

    def dependencies(self) -> frozenset[ObjectKey]:
        """Direct dependencies of this object."""
        return frozenset(self._dependencies)

    def add_dependency(self, *deps: DatabaseObject | ObjectKey) -> None:
        for dep in deps:
            key = dep.key if isinstance(dep, DatabaseObject) else dep
            if key != self.key:
                self._dependencies.add(key)

    def fetch_dependencies_to(self, accumulator: MutableSequence[ObjectKey]) -> None:
        """Append the direct dependencies to `accumulator`."""
        accumulator.extend(sorted(self._dependencies))

    # -- privileges ----------------------------------------------------

    def add_privileges(self, group_name: str, *privileges: Privilege) -> None:
        """Attach privileges to a named group, used later by `grant`."""
        self._privileges.setdefault(group_name, []).extend(privileges)

    def privileges(self, group_name: str) -> tuple[Privilege, ...]:
        return tuple(self._privileges.get(group_name, ()))

    def grant(self, target: DatabaseTarget, group_name: str, grantee: str) -> None:
        """Grant this object's privileges for `group_name` to `grantee`."""
        privileges = self.privileges(group_name)
        if not privileges:
            return
        target.grant(
            [p.value for p in privileges],
            self.grant_kind,
            self.schema_name,
            self.object_name,
            grantee,
        )

    # -- lifecycle -----------------------------------------------------

    @abstractmethod
    def apply(self, target: DatabaseTarget, prior_version: int = 0) -> None:
        """
        Apply the DDL for this object, regardless of recorded versions.

        Args:
            target: Database to apply to.
            prior_version: Version currently deployed; 0 means the object
                           does not exist yet.
        """

    @abstractmethod
    def drop(self, target: DatabaseTarget) -> None:
        """Drop this object from the target."""

    def apply_version(self, target: DatabaseTarget, ledger: VersionLedger) -> None:
        """
        Apply the change only if the ledger holds an older version.

        After applying, the new version is appended to the ledger within the
        same transaction, so calling this repeatedly deploys the object once.
        """
        object_type = self.object_type.value
        if not ledger.applies(self.schema_name, object_type, self.object_name, self.version):
            logger.debug("Already at v%d: %s", self.version, self.type_and_name)
            return

        prior = ledger.get_version(self.schema_name, object_type, self.object_name)
        logger.info("Applying change [v%d]: %s", self.version, self.type_and_name)
        self.apply(target, prior)
        ledger.add_version(target, self.schema_name, object_type, self.object_name, self.version)

    def apply_with_transaction_retry(
        self,
        target: DatabaseTarget,
        transactions: TransactionProvider,
        ledger: VersionLedger,
        policy: RetryPolicy | None = None,
    ) -> ApplyOutcome:
        """
        Run `apply_version` in its own transaction, retrying lock conflicts.

        Deadlocks and lock timeouts roll the transaction back, sleep a
        random backoff and try again until the attempt budget is spent.
        Every other error rolls back and propagates immediately.

        Returns:
            ApplyOutcome with the number of attempts it took to commit.

        Raises:
            DataAccessError: The error that ended the cycle, annotated with
                this object's type:name and the remaining attempts.
        """
        policy = policy or RetryPolicy()
        attempt = 0
        while True:
            attempt += 1
            remaining = policy.max_attempts - attempt
            try:
                with transactions.transaction() as tx:
                    try:
                        self.apply_version(target, ledger)
                    except Exception:
                        tx.set_rollback_only()
                        raise
            except DataAccessError as exc:
                exc.with_context(self.type_and_name, remaining)
                if not exc.kind.retryable:
                    logger.error("[FAILED] %s: %s", self.type_and_name, exc)
                    raise

                if exc.kind == ErrorKind.DEADLOCK:
                    logger.warning("Deadlock detected processing: %s [remaining=%d]", self.type_and_name, remaining)
                else:
                    logger.warning("Lock timeout detected processing: %s [remaining=%d]", self.type_and_name, remaining)

                if remaining <= 0:
                    logger.error("[FAILED] retries exhausted for: %s", self.type_and_name)
                    raise
            except Exception as exc:
                logger.error("[FAILED] %s: %s", self.type_and_name, exc)
                raise
            else:
                return ApplyOutcome(self.type_and_name, attempt)

            # outside the transaction now; jitter keeps concurrent retriers apart
            policy.backoff()

