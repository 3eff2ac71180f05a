import random
import threading
import time

import pytest

from dbdeploy.core.deployer import DeployStatus, SchemaDeployer
from dbdeploy.core.errors import DataAccessError
from dbdeploy.core.ledger import VERSION_HISTORY, VersionLedger
from dbdeploy.core.model import PhysicalDataModel
from dbdeploy.core.retry import RetryPolicy

import sample_models
from fakes import DdlObject, FakeConnection, FakeConnectionSource, SchemaKeywordTranslator

ADMIN = "ADMIN"
APP = "APP"


def _fast_policy(**kwargs) -> RetryPolicy:
    return RetryPolicy(max_backoff=0.05, rng=random.Random(1), **kwargs)


class _Recorder:
    """Records start/end events from worker threads."""

    def __init__(self, fail: set[str] = frozenset()):
        self.events: list[tuple[str, str]] = []
        self.fail = fail
        self._lock = threading.Lock()

    def __call__(self, name: str) -> None:
        with self._lock:
            self.events.append(("start", name))
        time.sleep(0.01)
        with self._lock:
            self.events.append(("end", name))
        if name in self.fail:
            raise DataAccessError(f"{name} failed")

    def started(self) -> list[str]:
        return [n for e, n in self.events if e == "start"]

    def index(self, event: str, name: str) -> int:
        return self.events.index((event, name))


def _diamond(recorder: _Recorder) -> tuple[PhysicalDataModel, list[tuple[str, str]]]:
    objs = {n: DdlObject(n, hook=recorder) for n in ("BASE", "LEFT", "RIGHT", "TOP", "LONE")}
    edges = [("LEFT", "BASE"), ("RIGHT", "BASE"), ("TOP", "LEFT"), ("TOP", "RIGHT")]
    for child, parent in edges:
        objs[child].add_dependency(objs[parent])
    return PhysicalDataModel(objs.values()), edges


def _deployer(model, source=None, **kwargs) -> SchemaDeployer:
    source = source or FakeConnectionSource()
    ledger = VersionLedger(ADMIN, APP)
    with source.acquire() as target:
        ledger.load(target)
    return SchemaDeployer(model, source, ledger, policy=_fast_policy(), **kwargs)


def test_dependencies_commit_before_dependents_start():
    recorder = _Recorder()
    model, edges = _diamond(recorder)

    results = _deployer(model, max_parallel=4).deploy()

    assert {r.status for r in results} == {DeployStatus.COMMITTED}
    for child, parent in edges:
        assert recorder.index("end", parent) < recorder.index("start", child)


def test_rejects_non_positive_parallelism():
    with pytest.raises(ValueError, match="max_parallel"):
        _deployer(PhysicalDataModel(), max_parallel=0)


def test_failure_aborts_the_run_and_skips_the_rest():
    recorder = _Recorder(fail={"BASE"})
    model, _ = _diamond(recorder)
    deployer = _deployer(model, max_parallel=1)

    with pytest.raises(DataAccessError, match="BASE failed"):
        deployer.deploy()

    statuses = {k.object_name: r.status for k, r in deployer.results.items()}
    assert statuses["BASE"] is DeployStatus.FAILED
    assert statuses["LEFT"] is statuses["RIGHT"] is statuses["TOP"] is DeployStatus.SKIPPED
    assert "TOP" not in recorder.started()


def test_continue_on_error_only_skips_dependents_of_the_failure():
    recorder = _Recorder(fail={"LEFT"})
    model, _ = _diamond(recorder)
    reported = []
    deployer = _deployer(model, max_parallel=2, abort_on_failure=False, on_result=reported.append)

    with pytest.raises(DataAccessError, match="LEFT failed"):
        deployer.deploy()

    statuses = {k.object_name: r.status for k, r in deployer.results.items()}
    assert statuses == {
        "BASE": DeployStatus.COMMITTED,
        "LEFT": DeployStatus.FAILED,
        "RIGHT": DeployStatus.COMMITTED,
        "TOP": DeployStatus.SKIPPED,
        "LONE": DeployStatus.COMMITTED,
    }
    assert len(reported) == 5


def test_each_worker_acquires_its_own_connection():
    source = FakeConnectionSource(FakeConnection())
    model = PhysicalDataModel([DdlObject("A"), DdlObject("B"), DdlObject("C")])
    deployer = _deployer(model, source=source, max_parallel=3)
    source.acquired = 0

    deployer.deploy()

    assert source.acquired == 3


def test_deadlocks_are_retried_inside_the_run():
    source = FakeConnectionSource(FakeConnection(failures=2, error_message="deadlock detected"))
    deployer = _deployer(PhysicalDataModel([DdlObject("A")]), source=source)

    [result] = deployer.deploy()

    assert result.status is DeployStatus.COMMITTED
    assert result.retries == 2


# -- end to end against SQLite ------------------------------------------


def _history(provider, name="PATIENT"):
    with provider.acquire() as target:
        return target.query(
            f"SELECT VERSION FROM {ADMIN}.{VERSION_HISTORY} "
            "WHERE SCHEMA_NAME = ? AND OBJECT_TYPE = ? AND OBJECT_NAME = ? ORDER BY VERSION",
            (APP, "TABLE", name),
        )


def _deploy(provider, model, **kwargs):
    deployer = SchemaDeployer(model, provider, VersionLedger(ADMIN, APP), policy=_fast_policy(), **kwargs)
    deployer.bootstrap()
    deployer.load_ledger()
    return deployer.deploy()


def test_patient_versions_end_to_end(sqlite_provider):
    _deploy(sqlite_provider, sample_models.patient_model(APP), max_parallel=1)
    assert _history(sqlite_provider) == [(1,)]

    _deploy(sqlite_provider, sample_models.patient_model(APP), max_parallel=1)
    assert _history(sqlite_provider) == [(1,)]

    _deploy(sqlite_provider, sample_models.patient_model_v2(APP), max_parallel=1)
    assert _history(sqlite_provider) == [(1,), (2,)]

    with sqlite_provider.acquire() as target:
        columns = [row[1] for row in target.query(f"PRAGMA {APP}.table_info(PATIENT)")]
    assert columns == ["ID", "FAMILY_NAME", "BIRTH_DATE"]


def test_model_drop_removes_every_object(sqlite_provider):
    model = sample_models.patient_model(APP)
    _deploy(sqlite_provider, model, max_parallel=1)

    with sqlite_provider.acquire() as target:
        with target.transaction():
            model.drop(target)
        assert not target.table_exists(APP, "PATIENT")
        assert not target.table_exists(APP, "OBSERVATION")


def test_parallel_sqlite_deploy_commits_everything(sqlite_provider):
    results = _deploy(sqlite_provider, PhysicalDataModel(sample_models.wide_model(APP)), max_parallel=3)

    assert len(results) == 8
    assert {r.status for r in results} == {DeployStatus.COMMITTED}
    with sqlite_provider.acquire() as target:
        assert target.query(f"SELECT COUNT(*) FROM {ADMIN}.{VERSION_HISTORY}") == [(8,)]


def test_failed_ddl_leaves_no_ledger_row(sqlite_provider):
    with pytest.raises(DataAccessError) as info:
        _deploy(sqlite_provider, sample_models.broken_model(APP), max_parallel=1)

    assert info.value.object_name == "VIEW:BAD_VIEW"
    with sqlite_provider.acquire() as target:
        views = target.query(
            f"SELECT VERSION FROM {ADMIN}.{VERSION_HISTORY} WHERE OBJECT_NAME = ?", ("BAD_VIEW",)
        )
    assert views == []
    assert _history(sqlite_provider) == [(1,)]


def test_bootstrap_tolerates_existing_schemas():
    conn = FakeConnection(failures=2, error_message="schema already exists")
    source = FakeConnectionSource(conn, SchemaKeywordTranslator())
    deployer = SchemaDeployer(PhysicalDataModel([DdlObject("LONE")]), source, VersionLedger(ADMIN, APP))

    deployer.bootstrap()

    assert conn.created()[:2] == ["CREATE SCHEMA ADMIN", "CREATE SCHEMA APP"]
    assert len(conn.created()) == 3
    assert "VERSION_HISTORY" in conn.created()[2]
    assert conn.rollbacks == 2
