from datetime import datetime, timedelta, timezone

import mysql.connector
import pytest

from quest_checkin.core.exceptions import PersistenceError
from quest_checkin.database.bootstrap import _iter_sql_statements, _strip_comments, _strip_create_db_and_use
from quest_checkin.database.mysql_base import db_transaction, from_db_datetime, run_read, to_db_datetime


class FakeCursor:
    def __init__(self, rows):
        self.rows = rows
        self.closed = False

    def fetchall(self):
        return self.rows

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, dictionary=True):
        return FakeCursor(self.rows)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


class FlakyFactory:
    """Fails ``failures`` times with the given error before handing out a connection."""

    def __init__(self, failures: int, error: Exception, rows=None):
        self.failures = failures
        self.error = error
        self.rows = rows
        self.calls = 0
        self.connections = []

    def connect(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        conn = FakeConnection(self.rows)
        self.connections.append(conn)
        return conn


def test_run_read_retries_transient_errors():
    factory = FlakyFactory(2, mysql.connector.errors.OperationalError("gone away"), rows=[{"n": 1}])

    rows = run_read(factory, lambda cur: cur.fetchall(), attempts=3)

    assert rows == [{"n": 1}]
    assert factory.calls == 3
    assert factory.connections[0].closed is True


def test_run_read_gives_up_after_attempts():
    factory = FlakyFactory(5, mysql.connector.errors.InterfaceError("no route"))

    with pytest.raises(PersistenceError):
        run_read(factory, lambda cur: cur.fetchall(), attempts=3)

    assert factory.calls == 3


def test_run_read_does_not_retry_other_driver_errors():
    factory = FlakyFactory(1, mysql.connector.errors.ProgrammingError("bad sql"))

    with pytest.raises(PersistenceError):
        run_read(factory, lambda cur: cur.fetchall(), attempts=3)

    assert factory.calls == 1


def test_transaction_rolls_back_and_wraps_driver_errors():
    factory = FlakyFactory(0, RuntimeError())

    with pytest.raises(PersistenceError):
        with db_transaction(factory):
            raise mysql.connector.errors.IntegrityError("duplicate")

    conn = factory.connections[0]
    assert conn.rollbacks == 1
    assert conn.commits == 0
    assert conn.closed is True


def test_transaction_lets_domain_errors_through():
    factory = FlakyFactory(0, RuntimeError())

    with pytest.raises(ValueError):
        with db_transaction(factory):
            raise ValueError("business rule")

    assert factory.connections[0].rollbacks == 1


def test_transaction_commits_on_success():
    factory = FlakyFactory(0, RuntimeError())

    with db_transaction(factory):
        pass

    assert factory.connections[0].commits == 1


def test_datetimes_are_stored_as_naive_utc():
    local = datetime(2026, 3, 2, 16, 0, tzinfo=timezone(timedelta(hours=7)))

    stored = to_db_datetime(local)

    assert stored == datetime(2026, 3, 2, 9, 0)
    assert from_db_datetime(stored) == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert to_db_datetime(None) is None
    assert from_db_datetime(None) is None


def test_schema_splitter_ignores_semicolons_in_quotes():
    sql = """
    CREATE DATABASE IF NOT EXISTS demo;
    USE demo;
    -- a comment; with a semicolon
    CREATE TABLE t (c VARCHAR(10) DEFAULT 'a;b');
    INSERT INTO t VALUES ('x')
    """

    statements = list(_iter_sql_statements(_strip_create_db_and_use(_strip_comments(sql))))

    assert statements == ["CREATE TABLE t (c VARCHAR(10) DEFAULT 'a;b')", "INSERT INTO t VALUES ('x')"]
