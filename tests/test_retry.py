import random

import pytest

from dbdeploy.core.errors import LockError, UniqueConstraintViolationError
from dbdeploy.core.ledger import VersionLedger
from dbdeploy.core.retry import RetryPolicy
from dbdeploy.core.target import DatabaseTarget

from fakes import DdlObject, FakeConnection, KeywordTranslator


def _setup(failures: int, message: str = "deadlock detected"):
    conn = FakeConnection(failures=failures, error_message=message)
    target = DatabaseTarget(conn, KeywordTranslator())
    ledger = VersionLedger("ADMIN", "APP")
    ledger.load(target)
    conn.commits = 0
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=10, max_backoff=5.0, rng=random.Random(42), sleep=sleeps.append)
    return conn, target, ledger, policy, sleeps


def test_always_deadlocking_apply_uses_every_attempt_then_raises():
    conn, target, ledger, policy, sleeps = _setup(failures=1000)
    obj = DdlObject("PATIENT")

    with pytest.raises(LockError) as info:
        obj.apply_with_transaction_retry(target, target, ledger, policy)

    assert len(conn.created()) == 10
    assert conn.rollbacks == 10
    assert conn.commits == 0
    assert len(sleeps) == 9
    assert all(0 <= s <= 5.0 for s in sleeps)
    assert info.value.deadlock is True
    assert info.value.object_name == "TABLE:PATIENT"
    assert info.value.remaining_attempts == 0
    assert ledger.get_version("APP", "TABLE", "PATIENT") == 0


def test_success_on_third_attempt_records_two_retries():
    conn, target, ledger, policy, sleeps = _setup(failures=2)

    outcome = DdlObject("PATIENT").apply_with_transaction_retry(target, target, ledger, policy)

    assert outcome.attempts == 3
    assert outcome.retries == 2
    assert len(sleeps) == 2
    assert conn.rollbacks == 2
    assert conn.commits == 1
    assert sum(1 for s in conn.statements if s.startswith("INSERT")) == 1
    assert ledger.get_version("APP", "TABLE", "PATIENT") == 1


def test_lock_timeouts_share_the_same_budget():
    conn, target, ledger, policy, sleeps = _setup(failures=1000, message="lock timeout")
    policy.max_attempts = 3

    with pytest.raises(LockError) as info:
        DdlObject("PATIENT").apply_with_transaction_retry(target, target, ledger, policy)

    assert info.value.deadlock is False
    assert len(conn.created()) == 3
    assert len(sleeps) == 2


def test_non_lock_errors_are_not_retried():
    conn, target, ledger, policy, sleeps = _setup(failures=1, message="duplicate key")

    with pytest.raises(UniqueConstraintViolationError) as info:
        DdlObject("PATIENT").apply_with_transaction_retry(target, target, ledger, policy)

    assert len(conn.created()) == 1
    assert conn.rollbacks == 1
    assert sleeps == []
    assert info.value.remaining_attempts == 9


def test_unexpected_exceptions_roll_back_and_propagate():
    conn, target, ledger, policy, sleeps = _setup(failures=0)

    def explode(name):
        raise KeyError(name)

    with pytest.raises(KeyError):
        DdlObject("PATIENT", hook=explode).apply_with_transaction_retry(target, target, ledger, policy)

    assert conn.rollbacks == 1
    assert conn.commits == 0
    assert sleeps == []


def test_apply_version_is_idempotent_against_one_ledger():
    conn, target, ledger, policy, _ = _setup(failures=0)
    obj = DdlObject("PATIENT")

    obj.apply_with_transaction_retry(target, target, ledger, policy)
    obj.apply_with_transaction_retry(target, target, ledger, policy)

    assert len(conn.created()) == 1
    assert sum(1 for s in conn.statements if s.startswith("INSERT")) == 1


def test_backoff_is_deterministic_with_a_seeded_source():
    first: list[float] = []
    second: list[float] = []
    RetryPolicy(rng=random.Random(7), sleep=first.append).backoff()
    RetryPolicy(rng=random.Random(7), sleep=second.append).backoff()

    assert first == second


def test_policy_validates_its_bounds():
    with pytest.raises(ValueError, match="max_attempts"):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError, match="max_backoff"):
        RetryPolicy(max_backoff=-1)
