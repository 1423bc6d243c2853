from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, Optional, Sequence

from ..database.memory_store import MemoryStore, _Tables
from ..profiles.model import Profile
from .model import CheckInRecord, PenaltyRecord, QRSession
from .repository import SessionRepository, SessionTransaction


class _MemorySessionTransaction(SessionTransaction):
    def __init__(self, store: MemoryStore, tables: _Tables):
        self._store = store
        self._t = tables

    def lock_session(self, session_id: str) -> Optional[QRSession]:
        # The store lock is already held for the whole transaction.
        return self._t.sessions.get(session_id)

    def lock_profile(self, user_id: str) -> Optional[Profile]:
        return self._t.profiles.get(user_id)

    def add_attendee(self, *, session_id: str, user_id: str) -> bool:
        s = self._t.sessions[session_id]
        if user_id in s.attendees:
            return False
        self._t.sessions[session_id] = replace(s, attendees=s.attendees + (user_id,))
        return True

    def add_penalized_user(self, *, session_id: str, user_id: str) -> bool:
        s = self._t.sessions[session_id]
        if user_id in s.penalized_users:
            return False
        self._t.sessions[session_id] = replace(s, penalized_users=s.penalized_users + (user_id,))
        return True

    def create_checkin_record(
        self,
        *,
        session_id: str,
        user_id: str,
        checked_in_at: datetime,
        exp_earned: int,
    ) -> CheckInRecord:
        rec = CheckInRecord(
            record_id=self._store.next_id(),
            user_id=user_id,
            session_id=session_id,
            checked_in_at=checked_in_at,
            exp_earned=int(exp_earned),
        )
        self._t.checkins.append(rec)
        return rec

    def create_penalty_record(
        self,
        *,
        session_id: str,
        user_id: str,
        applied_at: datetime,
        exp_lost: int,
        reason: str,
    ) -> PenaltyRecord:
        rec = PenaltyRecord(
            record_id=self._store.next_id(),
            user_id=user_id,
            session_id=session_id,
            applied_at=applied_at,
            exp_lost=int(exp_lost),
            reason=reason,
        )
        self._t.penalties.append(rec)
        return rec

    def save_profile(self, profile: Profile) -> None:
        self._t.profiles[profile.user_id] = profile

    def deactivate_session(self, session_id: str) -> bool:
        s = self._t.sessions.get(session_id)
        if not s:
            return False
        if s.is_active:
            self._t.sessions[session_id] = replace(s, is_active=False)
        return True


class MemorySessionRepository(SessionRepository):
    """Session repository over ``MemoryStore`` (tests, demos, single-process use)."""

    def __init__(self, store: MemoryStore):
        self._store = store

    def create(self, session: QRSession) -> str:
        with self._store.atomic() as t:
            if session.session_id in t.sessions:
                raise ValueError(f"Duplicate session id: {session.session_id}")
            t.sessions[session.session_id] = session
        return session.session_id

    def get_by_id(self, session_id: str) -> Optional[QRSession]:
        with self._store.read() as t:
            return t.sessions.get(session_id)

    def get_active_by_token(self, token: str) -> Optional[QRSession]:
        with self._store.read() as t:
            for s in t.sessions.values():
                if s.is_active and s.token == token:
                    return s
        return None

    def _active(self) -> list[QRSession]:
        with self._store.read() as t:
            return [s for s in t.sessions.values() if s.is_active]

    def list_all(self) -> Sequence[QRSession]:
        with self._store.read() as t:
            items = list(t.sessions.values())
        items.sort(key=lambda s: (s.created_at, s.session_id), reverse=True)
        return items

    def list_unfinished(self, now: datetime) -> Sequence[QRSession]:
        items = [s for s in self._active() if s.end_at > now]
        items.sort(key=lambda s: (s.end_at, s.start_at))
        return items

    def find_current(self, now: datetime) -> Optional[QRSession]:
        items = [s for s in self._active() if s.is_open(now)]
        if not items:
            return None
        return max(items, key=lambda s: (s.start_at, s.created_at, s.session_id))

    def find_next(self, now: datetime) -> Optional[QRSession]:
        items = [s for s in self._active() if s.start_at > now]
        if not items:
            return None
        return min(items, key=lambda s: (s.start_at, s.created_at, s.session_id))

    def list_ended_active(self, now: datetime) -> Sequence[QRSession]:
        items = [s for s in self._active() if s.end_at <= now]
        items.sort(key=lambda s: (s.end_at, s.session_id))
        return items

    def count_checkins_between(self, *, start: datetime, end: datetime, user_id: Optional[str] = None) -> int:
        with self._store.read() as t:
            return sum(
                1
                for r in t.checkins
                if start <= r.checked_in_at < end and (user_id is None or r.user_id == user_id)
            )

    def list_checkins_for_user(self, user_id: str, limit: int) -> Sequence[CheckInRecord]:
        with self._store.read() as t:
            items = [r for r in t.checkins if r.user_id == user_id]
        items.sort(key=lambda r: (r.checked_in_at, r.record_id), reverse=True)
        return items[: int(limit)]

    def list_penalties_for_user(self, user_id: str, limit: int) -> Sequence[PenaltyRecord]:
        with self._store.read() as t:
            items = [r for r in t.penalties if r.user_id == user_id]
        items.sort(key=lambda r: (r.applied_at, r.record_id), reverse=True)
        return items[: int(limit)]

    @contextmanager
    def transaction(self) -> Iterator[SessionTransaction]:
        with self._store.atomic() as t:
            yield _MemorySessionTransaction(self._store, t)
