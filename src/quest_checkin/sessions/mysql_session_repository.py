from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Sequence

from ..core.constants import READ_RETRY_ATTEMPTS
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_transaction, fetchall, fetchone, from_db_datetime, run_read, to_db_datetime
from ..profiles.model import Profile
from ..profiles.mysql_profile_repository import PROFILE_COLUMNS, UPSERT_PROFILE_SQL, profile_params, row_to_profile
from .model import CheckInRecord, PenaltyRecord, QRSession
from .repository import SessionRepository, SessionTransaction

SESSION_COLUMNS = (
    "session_id, title, description, start_at, end_at, token, created_by, created_at, "
    "is_active, exp_reward, exp_penalty"
)

MEMBER_FIELDS = {"expected": "all_users", "attendee": "attendees", "penalized": "penalized_users"}


def _load_members(cur, session_ids: Sequence[str]) -> Dict[str, Dict[str, list[str]]]:
    members: Dict[str, Dict[str, list[str]]] = {sid: {k: [] for k in MEMBER_FIELDS} for sid in session_ids}
    if not session_ids:
        return members

    placeholders = ",".join(["%s"] * len(session_ids))
    cur.execute(
        f"""
        SELECT session_id, kind, user_id
        FROM qr_session_members
        WHERE session_id IN ({placeholders})
        ORDER BY seq
        """,
        tuple(session_ids),
    )
    for r in fetchall(cur):
        members[r["session_id"]][r["kind"]].append(str(r["user_id"]))
    return members


def _row_to_session(r: Dict[str, Any], members: Dict[str, list[str]]) -> QRSession:
    return QRSession(
        session_id=r["session_id"],
        title=r["title"],
        description=r.get("description"),
        start_at=from_db_datetime(r["start_at"]),
        end_at=from_db_datetime(r["end_at"]),
        token=r["token"],
        created_by=str(r["created_by"]),
        created_at=from_db_datetime(r["created_at"]),
        is_active=bool(r["is_active"]),
        exp_reward=int(r["exp_reward"]),
        exp_penalty=int(r["exp_penalty"]),
        all_users=tuple(members["expected"]),
        attendees=tuple(members["attendee"]),
        penalized_users=tuple(members["penalized"]),
    )


def _select_sessions(cur, where: str, params: tuple, order_by: str, limit: Optional[int] = None) -> list[QRSession]:
    sql = f"SELECT {SESSION_COLUMNS} FROM qr_sessions WHERE {where} ORDER BY {order_by}"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    cur.execute(sql, params)
    rows = fetchall(cur)
    members = _load_members(cur, [r["session_id"] for r in rows])
    return [_row_to_session(r, members[r["session_id"]]) for r in rows]


def _insert_member(cur, *, session_id: str, kind: str, user_id: str) -> bool:
    # Callers hold the session row lock, so check-then-insert cannot interleave.
    # The unique key still rejects a duplicate if a caller forgets the lock.
    cur.execute(
        "SELECT 1 AS found FROM qr_session_members WHERE session_id=%s AND kind=%s AND user_id=%s",
        (session_id, kind, user_id),
    )
    if fetchone(cur):
        return False
    cur.execute(
        "INSERT INTO qr_session_members(session_id, kind, user_id) VALUES(%s,%s,%s)",
        (session_id, kind, user_id),
    )
    return True


class _MySQLSessionTransaction(SessionTransaction):
    def __init__(self, cur):
        self._cur = cur

    def lock_session(self, session_id: str) -> Optional[QRSession]:
        self._cur.execute(
            f"SELECT {SESSION_COLUMNS} FROM qr_sessions WHERE session_id=%s FOR UPDATE",
            (session_id,),
        )
        row = fetchone(self._cur)
        if not row:
            return None
        members = _load_members(self._cur, [session_id])
        return _row_to_session(row, members[session_id])

    def lock_profile(self, user_id: str) -> Optional[Profile]:
        self._cur.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE user_id=%s FOR UPDATE", (user_id,))
        row = fetchone(self._cur)
        return row_to_profile(row) if row else None

    def add_attendee(self, *, session_id: str, user_id: str) -> bool:
        return _insert_member(self._cur, session_id=session_id, kind="attendee", user_id=user_id)

    def add_penalized_user(self, *, session_id: str, user_id: str) -> bool:
        return _insert_member(self._cur, session_id=session_id, kind="penalized", user_id=user_id)

    def create_checkin_record(
        self,
        *,
        session_id: str,
        user_id: str,
        checked_in_at: datetime,
        exp_earned: int,
    ) -> CheckInRecord:
        self._cur.execute(
            """
            INSERT INTO checkin_records(session_id, user_id, checked_in_at, exp_earned)
            VALUES(%s,%s,%s,%s)
            """,
            (session_id, user_id, to_db_datetime(checked_in_at), int(exp_earned)),
        )
        return CheckInRecord(
            record_id=int(self._cur.lastrowid),
            user_id=user_id,
            session_id=session_id,
            checked_in_at=checked_in_at,
            exp_earned=int(exp_earned),
        )

    def create_penalty_record(
        self,
        *,
        session_id: str,
        user_id: str,
        applied_at: datetime,
        exp_lost: int,
        reason: str,
    ) -> PenaltyRecord:
        self._cur.execute(
            """
            INSERT INTO penalty_records(session_id, user_id, applied_at, exp_lost, reason)
            VALUES(%s,%s,%s,%s,%s)
            """,
            (session_id, user_id, to_db_datetime(applied_at), int(exp_lost), reason),
        )
        return PenaltyRecord(
            record_id=int(self._cur.lastrowid),
            user_id=user_id,
            session_id=session_id,
            applied_at=applied_at,
            exp_lost=int(exp_lost),
            reason=reason,
        )

    def save_profile(self, profile: Profile) -> None:
        self._cur.execute(UPSERT_PROFILE_SQL, profile_params(profile))

    def deactivate_session(self, session_id: str) -> bool:
        self._cur.execute("UPDATE qr_sessions SET is_active=0 WHERE session_id=%s", (session_id,))
        if self._cur.rowcount > 0:
            return True
        self._cur.execute("SELECT 1 AS found FROM qr_sessions WHERE session_id=%s", (session_id,))
        return fetchone(self._cur) is not None


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, read_attempts: int = READ_RETRY_ATTEMPTS):
        self._conn_factory = conn_factory
        self._read_attempts = read_attempts

    def _read(self, query):
        return run_read(self._conn_factory, query, attempts=self._read_attempts)

    def create(self, session: QRSession) -> str:
        with db_transaction(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                INSERT INTO qr_sessions({SESSION_COLUMNS})
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    session.session_id,
                    session.title,
                    session.description,
                    to_db_datetime(session.start_at),
                    to_db_datetime(session.end_at),
                    session.token,
                    session.created_by,
                    to_db_datetime(session.created_at),
                    1 if session.is_active else 0,
                    int(session.exp_reward),
                    int(session.exp_penalty),
                ),
            )
            cur.executemany(
                "INSERT INTO qr_session_members(session_id, kind, user_id) VALUES(%s,'expected',%s)",
                [(session.session_id, uid) for uid in session.all_users],
            )
        return session.session_id

    def get_by_id(self, session_id: str) -> Optional[QRSession]:
        def query(cur):
            items = _select_sessions(cur, "session_id=%s", (session_id,), "session_id")
            return items[0] if items else None

        return self._read(query)

    def get_active_by_token(self, token: str) -> Optional[QRSession]:
        def query(cur):
            items = _select_sessions(cur, "token=%s AND is_active=1", (token,), "session_id", limit=1)
            return items[0] if items else None

        return self._read(query)

    def list_all(self) -> Sequence[QRSession]:
        return self._read(lambda cur: _select_sessions(cur, "1=1", (), "created_at DESC, session_id DESC"))

    def list_unfinished(self, now: datetime) -> Sequence[QRSession]:
        return self._read(
            lambda cur: _select_sessions(
                cur, "is_active=1 AND end_at>%s", (to_db_datetime(now),), "end_at ASC, start_at ASC"
            )
        )

    def find_current(self, now: datetime) -> Optional[QRSession]:
        at = to_db_datetime(now)

        def query(cur):
            items = _select_sessions(
                cur,
                "is_active=1 AND start_at<=%s AND end_at>%s",
                (at, at),
                "start_at DESC, created_at DESC, session_id DESC",
                limit=1,
            )
            return items[0] if items else None

        return self._read(query)

    def find_next(self, now: datetime) -> Optional[QRSession]:
        def query(cur):
            items = _select_sessions(
                cur,
                "is_active=1 AND start_at>%s",
                (to_db_datetime(now),),
                "start_at ASC, created_at ASC, session_id ASC",
                limit=1,
            )
            return items[0] if items else None

        return self._read(query)

    def list_ended_active(self, now: datetime) -> Sequence[QRSession]:
        return self._read(
            lambda cur: _select_sessions(
                cur, "is_active=1 AND end_at<=%s", (to_db_datetime(now),), "end_at ASC, session_id ASC"
            )
        )

    def count_checkins_between(self, *, start: datetime, end: datetime, user_id: Optional[str] = None) -> int:
        clauses = ["checked_in_at>=%s", "checked_in_at<%s"]
        params: list[object] = [to_db_datetime(start), to_db_datetime(end)]
        if user_id is not None:
            clauses.append("user_id=%s")
            params.append(user_id)

        def query(cur):
            cur.execute(
                f"SELECT COUNT(*) AS n FROM checkin_records WHERE {' AND '.join(clauses)}",
                tuple(params),
            )
            row = fetchone(cur)
            return int(row["n"]) if row else 0

        return self._read(query)

    def list_checkins_for_user(self, user_id: str, limit: int) -> Sequence[CheckInRecord]:
        def query(cur):
            cur.execute(
                """
                SELECT record_id, session_id, user_id, checked_in_at, exp_earned
                FROM checkin_records
                WHERE user_id=%s
                ORDER BY checked_in_at DESC, record_id DESC
                LIMIT %s
                """,
                (user_id, int(limit)),
            )
            return [
                CheckInRecord(
                    record_id=int(r["record_id"]),
                    user_id=str(r["user_id"]),
                    session_id=r["session_id"],
                    checked_in_at=from_db_datetime(r["checked_in_at"]),
                    exp_earned=int(r["exp_earned"]),
                )
                for r in fetchall(cur)
            ]

        return self._read(query)

    def list_penalties_for_user(self, user_id: str, limit: int) -> Sequence[PenaltyRecord]:
        def query(cur):
            cur.execute(
                """
                SELECT record_id, session_id, user_id, applied_at, exp_lost, reason
                FROM penalty_records
                WHERE user_id=%s
                ORDER BY applied_at DESC, record_id DESC
                LIMIT %s
                """,
                (user_id, int(limit)),
            )
            return [
                PenaltyRecord(
                    record_id=int(r["record_id"]),
                    user_id=str(r["user_id"]),
                    session_id=r["session_id"],
                    applied_at=from_db_datetime(r["applied_at"]),
                    exp_lost=int(r["exp_lost"]),
                    reason=r["reason"],
                )
                for r in fetchall(cur)
            ]

        return self._read(query)

    @contextmanager
    def transaction(self) -> Iterator[SessionTransaction]:
        with db_transaction(self._conn_factory) as (_, cur):
            yield _MySQLSessionTransaction(cur)
