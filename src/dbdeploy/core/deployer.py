"""Parallel, dependency-ordered deployment of a data model.

The deployer releases an object to the worker pool only once every object it
depends on has committed. Each worker acquires its own connection for the
whole apply-with-retry cycle of one object, so connections are never shared
between threads.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from dbdeploy.core.errors import AlreadyExistsError, DataAccessError
from dbdeploy.core.ledger import VersionLedger, create_version_history_table
from dbdeploy.core.model import PhysicalDataModel
from dbdeploy.core.objects import ApplyOutcome, DatabaseObject, ObjectKey
from dbdeploy.core.retry import RetryPolicy
from dbdeploy.core.target import DatabaseTarget

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARALLEL = 4


class ConnectionSource(Protocol):
    """Anything that hands out scoped database targets."""

    def acquire(self) -> AbstractContextManager[DatabaseTarget]:
        """Return a context manager yielding a target on its own connection."""
        ...


class DeployStatus(str, Enum):
    """
    Outcome of one object in a deployment run.

    Values:
        PENDING: Not started yet.
        COMMITTED: Applied (or already current) and committed.
        FAILED: Apply failed; the error was propagated.
        SKIPPED: Not attempted because the run aborted or a dependency failed.
    """

    PENDING = "PENDING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class DeployResult:
    """
    Per-object result of a deployment run.

    Attributes:
        key: Identity of the object.
        version: Version the model declares.
        status: Final status.
        attempts: Attempts used, including the first one.
        error: The error that failed the object, if any.
    """

    key: ObjectKey
    version: int
    status: DeployStatus = DeployStatus.PENDING
    attempts: int = 0
    error: BaseException | None = None

    @property
    def name(self) -> str:
        return str(self.key)

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)


class SchemaDeployer:
    """
    Deploys a ``PhysicalDataModel`` with bounded parallelism.

    Failure policy: with ``abort_on_failure`` (the default) the first failed
    object stops all further scheduling; objects already running are allowed
    to finish. Without it, only the objects that depend on a failed object
    are skipped. In both cases the first error is re-raised once the pool
    has drained.
    """

    def __init__(
        self,
        model: PhysicalDataModel,
        connections: ConnectionSource,
        ledger: VersionLedger,
        *,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        policy: RetryPolicy | None = None,
        abort_on_failure: bool = True,
        on_result: Callable[[DeployResult], None] | None = None,
    ):
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self.model = model
        self.connections = connections
        self.ledger = ledger
        self.max_parallel = max_parallel
        self.policy = policy or RetryPolicy()
        self.abort_on_failure = abort_on_failure
        self.on_result = on_result
        self.results: dict[ObjectKey, DeployResult] = {}

    def bootstrap(self) -> None:
        """Create the admin and data schemas and the version history table."""
        schemas = dict.fromkeys([self.ledger.admin_schema, self.ledger.data_schema])
        with self.connections.acquire() as target:
            for schema in schemas:
                try:
                    with target.transaction():
                        target.create_schema(schema)
                except AlreadyExistsError:
                    logger.debug("Schema %s already exists", schema)
            create_version_history_table(self.ledger.admin_schema, target)

    def load_ledger(self) -> int:
        with self.connections.acquire() as target:
            return self.ledger.load(target)

    def _apply_one(self, obj: DatabaseObject) -> ApplyOutcome:
        with self.connections.acquire() as target:
            return obj.apply_with_transaction_retry(target, target, self.ledger, self.policy)

    def _finish(self, result: DeployResult) -> None:
        self.results[result.key] = result
        if self.on_result is not None:
            self.on_result(result)

    def deploy(self) -> list[DeployResult]:
        """
        Apply every object whose declared version is newer than the ledger's.

        Returns:
            One result per top-level object, in dependency order.

        Raises:
            SchemaDefinitionError: The model has a cycle or unknown dependency.
            DataAccessError: The first object failure of the run.
        """
        order = self.model.topological_order()
        graph = self.model.dependency_graph()
        if not self.ledger.loaded:
            self.load_ledger()

        self.results = {obj.key: DeployResult(obj.key, obj.version) for obj in order}
        waiting_on = {key: set(deps) for key, deps in graph.items()}
        dependents: dict[ObjectKey, set[ObjectKey]] = {key: set() for key in graph}
        for key, deps in graph.items():
            for dep in deps:
                dependents[dep].add(key)

        first_error: BaseException | None = None
        stopping = False
        running: dict[Future, DatabaseObject] = {}

        def submit_ready(pool: ThreadPoolExecutor) -> None:
            in_flight = {obj.key for obj in running.values()}
            for obj in order:
                result = self.results[obj.key]
                if result.status is DeployStatus.PENDING and obj.key not in in_flight and not waiting_on[obj.key]:
                    logger.debug("Submitting %s", obj.type_and_name)
                    running[pool.submit(self._apply_one, obj)] = obj
                    in_flight.add(obj.key)

        with ThreadPoolExecutor(max_workers=self.max_parallel) as pool:
            submit_ready(pool)
            while running:
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    obj = running.pop(future)
                    result = self.results[obj.key]
                    try:
                        outcome = future.result()
                    except Exception as exc:
                        result.status = DeployStatus.FAILED
                        result.error = exc
                        result.attempts = _attempts_used(exc, self.policy)
                        self._finish(result)
                        if first_error is None:
                            first_error = exc
                        if self.abort_on_failure:
                            stopping = True
                        else:
                            self._skip_dependents(obj.key, dependents)
                        continue

                    result.status = DeployStatus.COMMITTED
                    result.attempts = outcome.attempts
                    self._finish(result)
                    for child in dependents[obj.key]:
                        waiting_on[child].discard(obj.key)

                if not stopping:
                    submit_ready(pool)

        for result in self.results.values():
            if result.status is DeployStatus.PENDING:
                result.status = DeployStatus.SKIPPED
                self._finish(result)

        if first_error is not None:
            logger.error("Deployment failed: %s", first_error)
            raise first_error

        logger.info("Deployment complete: %d objects", len(order))
        return [self.results[obj.key] for obj in order]

    def _skip_dependents(self, failed: ObjectKey, dependents: dict[ObjectKey, set[ObjectKey]]) -> None:
        stack = list(dependents[failed])
        while stack:
            key = stack.pop()
            result = self.results[key]
            if result.status is not DeployStatus.PENDING:
                continue
            logger.warning("Skipping %s: depends on failed %s", key, failed)
            result.status = DeployStatus.SKIPPED
            self._finish(result)
            stack.extend(dependents[key])


def _attempts_used(exc: BaseException, policy: RetryPolicy) -> int:
    if isinstance(exc, DataAccessError) and exc.remaining_attempts is not None:
        return policy.max_attempts - exc.remaining_attempts
    return 1
