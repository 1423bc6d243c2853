from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

import mysql.connector

from ..core.constants import READ_RETRY_ATTEMPTS
from ..core.exceptions import PersistenceError
from .connection import DatabaseConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (mysql.connector.errors.OperationalError, mysql.connector.errors.InterfaceError)


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def db_transaction(conn_factory: DatabaseConnection):
    """Single-connection transaction for writes.

    Domain errors raised inside the block roll back and propagate unchanged.
    Driver errors roll back and surface as ``PersistenceError``; writes are
    never retried.
    """
    try:
        with db_cursor(conn_factory) as (conn, cur):
            yield conn, cur
    except mysql.connector.Error as e:
        logger.error("transaction rolled back: %s", e)
        raise PersistenceError("Storage write failed") from e


def run_read(
    conn_factory: DatabaseConnection,
    query: Callable[[Any], T],
    *,
    attempts: int = READ_RETRY_ATTEMPTS,
) -> T:
    """Run an idempotent read, retrying transient connection failures."""
    attempts = max(1, int(attempts))
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            with db_cursor(conn_factory) as (_, cur):
                return query(cur)
        except TRANSIENT_ERRORS as e:
            last_error = e
            logger.warning("read failed (attempt %d/%d): %s", attempt, attempts, e)
        except mysql.connector.Error as e:
            raise PersistenceError("Storage read failed") from e
    raise PersistenceError("Storage read failed") from last_error


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def to_db_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are stored as naive UTC (DATETIME columns carry no zone)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"Unsupported MySQL DATETIME value type: {type(value)!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
