import sqlite3

import pytest

from dbdeploy.core.columns import Column, ColumnType, ForeignKey, PrimaryKey
from dbdeploy.core.connections import ConnectionDetails
from dbdeploy.core.errors import (
    AlreadyExistsError,
    DataAccessError,
    ErrorKind,
    LockError,
    UndefinedNameError,
    UniqueConstraintViolationError,
)
from dbdeploy.core.translators.db2 import Db2Translator
from dbdeploy.core.translators.postgres import PostgresTranslator
from dbdeploy.core.translators.sqlite import SqliteTranslator

from fakes import KeywordTranslator


def _sqlite_error(message: str, code: int, cls=sqlite3.OperationalError) -> sqlite3.Error:
    exc = cls(message)
    exc.sqlite_errorcode = code
    return exc


class _PgError(Exception):
    def __init__(self, message: str, sqlstate: str | None):
        super().__init__(message)
        self.sqlstate = sqlstate


class OperationalError(Exception):
    """Named like the DB-API class raised when a connect fails."""


def test_deadlock_wins_over_duplicate():
    t = KeywordTranslator()

    assert t.classify(RuntimeError("duplicate key and deadlock")) is ErrorKind.DEADLOCK


def test_classification_priority_order():
    t = KeywordTranslator()

    assert t.classify(RuntimeError("lock timeout, connection lost")) is ErrorKind.LOCK_TIMEOUT
    assert t.classify(RuntimeError("connection reset, duplicate")) is ErrorKind.CONNECTION
    assert t.classify(RuntimeError("duplicate, already exists")) is ErrorKind.DUPLICATE
    assert t.classify(RuntimeError("already exists, undefined")) is ErrorKind.ALREADY_EXISTS
    assert t.classify(RuntimeError("undefined thing")) is ErrorKind.UNDEFINED_NAME
    assert t.classify(RuntimeError("something else")) is ErrorKind.GENERIC


def test_translate_wraps_into_typed_errors():
    t = KeywordTranslator()
    cause = RuntimeError("deadlock detected")

    err = t.translate(cause)

    assert isinstance(err, LockError)
    assert err.deadlock is True
    assert err.kind is ErrorKind.DEADLOCK
    assert err.cause is cause
    assert isinstance(t.translate(RuntimeError("lock timeout")), LockError)
    assert t.translate(RuntimeError("lock timeout")).kind is ErrorKind.LOCK_TIMEOUT


def test_translate_passes_through_already_translated_errors():
    err = UndefinedNameError("gone")

    assert KeywordTranslator().translate(err) is err


def test_only_lock_kinds_are_retryable():
    retryable = {k for k in ErrorKind if k.retryable}

    assert retryable == {ErrorKind.DEADLOCK, ErrorKind.LOCK_TIMEOUT}


def test_error_context_is_rendered():
    err = DataAccessError("boom").with_context("TABLE:PATIENT", 3)

    assert "TABLE:PATIENT" in str(err)
    assert "remaining=3" in str(err)


# -- SQLite ------------------------------------------------------------


def test_sqlite_classifies_result_codes():
    t = SqliteTranslator()

    assert t.classify(_sqlite_error("database is locked", 5)) is ErrorKind.LOCK_TIMEOUT
    assert t.classify(_sqlite_error("database table is locked", 6)) is ErrorKind.DEADLOCK
    assert t.classify(_sqlite_error("unable to open database file", 14)) is ErrorKind.CONNECTION
    unique = _sqlite_error("UNIQUE constraint failed: T.ID", 2067, sqlite3.IntegrityError)
    assert t.classify(unique) is ErrorKind.DUPLICATE


def test_sqlite_classifies_extended_busy_codes_by_primary_code():
    # SQLITE_BUSY_SNAPSHOT = 517
    assert SqliteTranslator().classify(_sqlite_error("database is locked", 517)) is ErrorKind.LOCK_TIMEOUT


def test_sqlite_classifies_messages():
    t = SqliteTranslator()

    assert isinstance(t.translate(sqlite3.OperationalError("table PATIENT already exists")), AlreadyExistsError)
    assert isinstance(t.translate(sqlite3.OperationalError("no such table: APP.NOPE")), UndefinedNameError)
    assert t.classify(sqlite3.OperationalError('near "SELEC": syntax error')) is ErrorKind.GENERIC


def test_sqlite_unsupported_features_return_none():
    t = SqliteTranslator()

    assert t.reorg_table_command("APP.PATIENT") is None
    assert t.create_sequence("APP.SEQ", 20) is None
    assert t.create_row_type("APP", "ROW_T", [Column("A", ColumnType.INT)]) is None
    assert t.grant(["SELECT"], "TABLE", "APP.PATIENT", "READER") is None
    assert t.create_schema("APP") is None


def test_sqlite_statement_variants():
    t = SqliteTranslator()

    assert t.begin_transaction() == "BEGIN"
    assert t.add_for_update("SELECT 1") == "SELECT 1"
    assert t.global_temp_table_name("WORK") == "temp.WORK"
    assert t.create_global_temp_table("GLOBAL TEMPORARY TABLE WORK (ID INT)") == "CREATE TEMP TABLE WORK (ID INT)"
    assert t.timestamp_diff("A", "B", alias="SECS").endswith(" AS SECS")


def test_sqlite_create_table_uses_unqualified_fk_target():
    t = SqliteTranslator()

    ddl = t.create_table(
        "APP",
        "OBSERVATION",
        [Column("ID", ColumnType.BIGINT, nullable=False), Column("PATIENT_ID", ColumnType.BIGINT)],
        PrimaryKey("PK_OBSERVATION", ("ID",)),
        [ForeignKey("FK_OBS_PATIENT", ("PATIENT_ID",), "APP", "PATIENT", ("ID",))],
    )

    assert ddl.startswith("CREATE TABLE APP.OBSERVATION")
    assert "CONSTRAINT PK_OBSERVATION PRIMARY KEY (ID)" in ddl
    assert "REFERENCES PATIENT (ID)" in ddl


def test_sqlite_fill_properties_warns_on_ha(caplog):
    props = {}
    SqliteTranslator().fill_properties(props, ConnectionDetails(database="x.db", ha=True))

    assert props == {"database": "x.db"}
    assert "No HA support" in caplog.text


# -- PostgreSQL --------------------------------------------------------


def test_postgres_classifies_sqlstate():
    t = PostgresTranslator()

    assert t.classify(_PgError("deadlock detected", "40P01")) is ErrorKind.DEADLOCK
    assert t.classify(_PgError("could not obtain lock", "55P03")) is ErrorKind.LOCK_TIMEOUT
    assert t.classify(_PgError("terminating connection", "57P01")) is ErrorKind.CONNECTION
    assert t.classify(_PgError("connection failure", "08006")) is ErrorKind.CONNECTION
    assert t.classify(_PgError("duplicate key", "23505")) is ErrorKind.DUPLICATE
    assert t.classify(_PgError("relation exists", "42P07")) is ErrorKind.ALREADY_EXISTS
    assert t.classify(_PgError("relation does not exist", "42P01")) is ErrorKind.UNDEFINED_NAME
    assert t.classify(_PgError("division by zero", "22012")) is ErrorKind.GENERIC


def test_postgres_connect_failure_without_sqlstate_is_connection_error():
    assert PostgresTranslator().classify(OperationalError("could not connect")) is ErrorKind.CONNECTION


def test_postgres_statement_variants():
    t = PostgresTranslator()

    assert t.placeholder == "%s"
    assert t.reorg_table_command("APP.PATIENT") is None
    assert t.create_sequence("APP.SEQ", 20) == "CREATE SEQUENCE APP.SEQ CACHE 20"
    assert t.create_sequence("APP.SEQ", 1) == "CREATE SEQUENCE APP.SEQ"
    assert t.create_schema("APP") == "CREATE SCHEMA IF NOT EXISTS APP"
    assert t.add_for_update("SELECT 1") == "SELECT 1 FOR UPDATE"
    assert t.create_row_type("APP", "ROW_T", [Column("A", ColumnType.INT)]) == "CREATE TYPE APP.ROW_T AS (A INTEGER)"


def test_postgres_fill_properties():
    props = {}
    PostgresTranslator().fill_properties(
        props,
        ConnectionDetails(host="db", port=5433, database="fhir", user="u", password="p", ssl=True, ha=True),
    )

    assert props == {
        "host": "db",
        "port": 5433,
        "dbname": "fhir",
        "user": "u",
        "password": "p",
        "sslmode": "require",
        "target_session_attrs": "read-write",
    }


def test_password_is_not_in_connection_details_repr():
    assert "secret" not in repr(ConnectionDetails(user="u", password="secret"))


# -- Db2 ---------------------------------------------------------------


def test_db2_classifies_sqlcode_and_reason():
    t = Db2Translator()
    deadlock = RuntimeError('SQL0911N ... Reason code "2".  SQLSTATE=40001 SQLCODE=-911')
    timeout = RuntimeError('SQL0911N ... Reason code "68".  SQLSTATE=40001 SQLCODE=-911')

    assert t.classify(deadlock) is ErrorKind.DEADLOCK
    assert t.classify(timeout) is ErrorKind.LOCK_TIMEOUT
    assert t.classify(RuntimeError("SQL0913N SQLSTATE=57033 SQLCODE=-913")) is ErrorKind.LOCK_TIMEOUT
    assert t.classify(RuntimeError("SQL30081N SQLSTATE=08001 SQLCODE=-30081")) is ErrorKind.CONNECTION
    assert t.classify(RuntimeError("SQL0803N SQLSTATE=23505 SQLCODE=-803")) is ErrorKind.DUPLICATE
    assert t.classify(RuntimeError("SQL0601N SQLSTATE=42710 SQLCODE=-601")) is ErrorKind.ALREADY_EXISTS
    assert t.classify(RuntimeError("SQL0204N SQLSTATE=42704 SQLCODE=-204")) is ErrorKind.UNDEFINED_NAME


def test_db2_translate_duplicate():
    err = Db2Translator().translate(RuntimeError("SQL0803N SQLSTATE=23505 SQLCODE=-803"))

    assert isinstance(err, UniqueConstraintViolationError)


def test_db2_statement_variants():
    t = Db2Translator()

    assert t.reorg_table_command("APP.PATIENT") == "CALL SYSPROC.ADMIN_CMD('REORG TABLE APP.PATIENT')"
    assert t.create_sequence("APP.SEQ", 1000) == "CREATE SEQUENCE APP.SEQ AS BIGINT START WITH 1 CACHE 1000 NO CYCLE"
    assert t.create_sequence("APP.SEQ", 0) == "CREATE SEQUENCE APP.SEQ AS BIGINT START WITH 1 NO CACHE NO CYCLE"
    assert t.global_temp_table_name("WORK") == "SESSION.WORK"
    assert t.create_global_temp_table("GLOBAL TEMPORARY TABLE WORK (ID INT)").startswith("DECLARE GLOBAL TEMPORARY")
    assert t.column_type(ColumnType.VARCHAR, 64) == "VARCHAR(64 OCTETS)"
    assert t.grant(["USAGE"], "TYPE", "APP.ROW_T", "READER") is None
    assert t.grant(["SELECT", "INSERT"], "TABLE", "APP.PATIENT", "READER") == (
        "GRANT SELECT, INSERT ON TABLE APP.PATIENT TO READER"
    )


def test_db2_fill_properties_defaults_port_and_warns_on_ha(caplog):
    props = {}
    Db2Translator().fill_properties(props, ConnectionDetails(host="db2", database="FHIRDB", user="u", ha=True))

    assert props["PORT"] == 50000
    assert props["PROTOCOL"] == "TCPIP"
    assert "SECURITY" not in props
    assert "ignoring ha flag" in caplog.text


def test_invalid_identifiers_are_rejected():
    with pytest.raises(ValueError, match="Invalid database object name"):
        SqliteTranslator().drop_table("APP", "PATIENT; DROP TABLE X")
