from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import day_bounds, ensure_utc, now_utc
from ..common.validators import require_non_empty, require_non_negative_int
from ..core.exceptions import InvalidSelection, NotFound
from ..profiles.model import Profile
from ..profiles.repository import ProfileRepository
from .model import CheckInStatus, QRSession, SessionStats
from .repository import SessionRepository
from .selection import SelectionResolver, UserSelection
from .tokens import generate_token, new_session_id

logger = logging.getLogger(__name__)


class SessionService:
    """Use cases: schedule QR sessions and answer read-only questions about them."""

    def __init__(
        self,
        sessions: SessionRepository,
        profiles: ProfileRepository,
        *,
        resolver: Optional[SelectionResolver] = None,
    ):
        self._sessions = sessions
        self._profiles = profiles
        self._resolver = resolver or SelectionResolver(profiles)

    def create_session(
        self,
        *,
        title: str,
        start_at: datetime,
        end_at: datetime,
        exp_reward: int,
        exp_penalty: int,
        created_by: str,
        selection: UserSelection,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Create a session and return its check-in token (not its id).

        The participant list is resolved here, once, and stored with the session.
        """
        title = require_non_empty(title, "Title")
        created_by = require_non_empty(created_by, "Creator")
        exp_reward = require_non_negative_int(exp_reward, "EXP reward")
        exp_penalty = require_non_negative_int(exp_penalty, "EXP penalty")

        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        if end_at <= start_at:
            raise InvalidSelection("End time must be after start time")

        all_users = self._resolver.resolve(selection)
        if not all_users:
            raise InvalidSelection("No users found with the specified criteria")

        created_at = ensure_utc(now) if now else now_utc()
        session = QRSession(
            session_id=new_session_id(),
            title=title,
            description=description.strip() if description and description.strip() else None,
            start_at=start_at,
            end_at=end_at,
            token=generate_token(created_at),
            created_by=created_by,
            created_at=created_at,
            is_active=True,
            exp_reward=exp_reward,
            exp_penalty=exp_penalty,
            all_users=tuple(all_users),
        )
        self._sessions.create(session)
        logger.info(
            "QR session %s created by %s (%d expected users, window %s..%s)",
            session.session_id,
            created_by,
            len(all_users),
            start_at.isoformat(),
            end_at.isoformat(),
        )
        return session.token

    def preview_affected_users(self, selection: UserSelection) -> Sequence[Profile]:
        return self._resolver.matching_profiles(selection)

    def get_session(self, session_id: str) -> QRSession:
        session = self._sessions.get_by_id(session_id)
        if not session:
            raise NotFound("Session not found")
        return session

    def list_sessions(self) -> Sequence[QRSession]:
        return self._sessions.list_all()

    def list_active_sessions(self, *, now: Optional[datetime] = None) -> Sequence[QRSession]:
        """Current or upcoming sessions."""
        return self._sessions.list_unfinished(ensure_utc(now) if now else now_utc())

    def deactivate_session(self, session_id: str) -> None:
        with self._sessions.transaction() as tx:
            if not tx.deactivate_session(session_id):
                raise NotFound("Session not found")
        logger.info("QR session %s deactivated", session_id)

    def session_stats(self, session_id: str) -> SessionStats:
        session = self.get_session(session_id)
        total_users = len(session.all_users)
        total_attendees = len(session.attendees)
        rate = (total_attendees / total_users) * 100 if total_users > 0 else 0.0
        return SessionStats(
            total_attendees=total_attendees,
            total_users=total_users,
            attendance_rate=rate,
            penalties_applied=len(session.penalized_users),
        )

    def current_session_for_user(self, user_id: str, *, now: Optional[datetime] = None) -> Optional[QRSession]:
        session = self._sessions.find_current(ensure_utc(now) if now else now_utc())
        if not session or user_id in session.attendees:
            return None
        return session

    def next_session(self, *, now: Optional[datetime] = None) -> Optional[QRSession]:
        return self._sessions.find_next(ensure_utc(now) if now else now_utc())

    def today_check_in_count(self, *, now: Optional[datetime] = None, user_id: Optional[str] = None) -> int:
        start, end = day_bounds(now or now_utc())
        return self._sessions.count_checkins_between(start=start, end=end, user_id=user_id)

    def user_status(self, user_id: str, *, now: Optional[datetime] = None) -> CheckInStatus:
        now = ensure_utc(now) if now else now_utc()
        return CheckInStatus(
            current_session=self.current_session_for_user(user_id, now=now),
            next_session=self.next_session(now=now),
            today_check_ins=self.today_check_in_count(now=now, user_id=user_id),
        )
