from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..core.constants import READ_RETRY_ATTEMPTS
from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_transaction, fetchall, fetchone, from_db_datetime, run_read, to_db_datetime
from .model import Profile
from .repository import ProfileRepository

PROFILE_COLUMNS = (
    "user_id, display_name, email, role, exp, level, is_active, "
    "total_check_ins, total_penalties, last_check_in, last_penalty"
)


def row_to_profile(r: Dict[str, Any]) -> Profile:
    return Profile(
        user_id=str(r["user_id"]),
        display_name=r["display_name"],
        email=r["email"],
        role=Role(r["role"]),
        exp=int(r["exp"] or 0),
        level=int(r["level"] or 1),
        is_active=bool(r.get("is_active", True)),
        total_check_ins=int(r.get("total_check_ins") or 0),
        total_penalties=int(r.get("total_penalties") or 0),
        last_check_in=from_db_datetime(r.get("last_check_in")),
        last_penalty=from_db_datetime(r.get("last_penalty")),
    )


def profile_params(p: Profile) -> tuple:
    return (
        p.user_id,
        p.display_name,
        p.email,
        p.role.value,
        int(p.exp),
        int(p.level),
        1 if p.is_active else 0,
        int(p.total_check_ins),
        int(p.total_penalties),
        to_db_datetime(p.last_check_in),
        to_db_datetime(p.last_penalty),
    )


UPSERT_PROFILE_SQL = f"""
    INSERT INTO profiles({PROFILE_COLUMNS})
    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
    ON DUPLICATE KEY UPDATE
        display_name=VALUES(display_name), email=VALUES(email), role=VALUES(role),
        exp=VALUES(exp), level=VALUES(level), is_active=VALUES(is_active),
        total_check_ins=VALUES(total_check_ins), total_penalties=VALUES(total_penalties),
        last_check_in=VALUES(last_check_in), last_penalty=VALUES(last_penalty)
"""


class MySQLProfileRepository(ProfileRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, read_attempts: int = READ_RETRY_ATTEMPTS):
        self._conn_factory = conn_factory
        self._read_attempts = read_attempts

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        def query(cur):
            cur.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE user_id=%s", (user_id,))
            row = fetchone(cur)
            return row_to_profile(row) if row else None

        return run_read(self._conn_factory, query, attempts=self._read_attempts)

    def list_all(self) -> Sequence[Profile]:
        def query(cur):
            cur.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles ORDER BY user_id")
            return [row_to_profile(r) for r in fetchall(cur)]

        return run_read(self._conn_factory, query, attempts=self._read_attempts)

    def list_matching(
        self,
        *,
        role: Optional[Role] = None,
        min_level: Optional[int] = None,
        max_level: Optional[int] = None,
        include_inactive: bool = False,
    ) -> Sequence[Profile]:
        clauses: list[str] = []
        params: list[object] = []

        if not include_inactive:
            clauses.append("is_active=1")
        if role is not None:
            clauses.append("role=%s")
            params.append(role.value)
        if min_level is not None:
            clauses.append("level>=%s")
            params.append(int(min_level))
        if max_level is not None:
            clauses.append("level<=%s")
            params.append(int(max_level))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        def query(cur):
            cur.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles {where} ORDER BY user_id", tuple(params))
            return [row_to_profile(r) for r in fetchall(cur)]

        return run_read(self._conn_factory, query, attempts=self._read_attempts)

    def upsert(self, profile: Profile) -> None:
        with db_transaction(self._conn_factory) as (_, cur):
            cur.execute(UPSERT_PROFILE_SQL, profile_params(profile))
