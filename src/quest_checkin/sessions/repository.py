from __future__ import annotations

from datetime import datetime
from typing import ContextManager, Optional, Protocol, Sequence

from ..profiles.model import Profile
from .model import CheckInRecord, PenaltyRecord, QRSession


class SessionTransaction(Protocol):
    """Unit of work spanning one session and the profiles it touches.

    Everything done through one transaction commits together or not at all.
    ``lock_*`` reads take the row for the rest of the transaction so that a
    concurrent check-in or reconciliation of the same session waits and then
    sees the committed state.
    """

    def lock_session(self, session_id: str) -> Optional[QRSession]:
        raise NotImplementedError

    def lock_profile(self, user_id: str) -> Optional[Profile]:
        raise NotImplementedError

    def add_attendee(self, *, session_id: str, user_id: str) -> bool:
        """Conditional append; returns False when the user already attended."""

        raise NotImplementedError

    def add_penalized_user(self, *, session_id: str, user_id: str) -> bool:
        """Conditional append; returns False when the user was already penalized."""

        raise NotImplementedError

    def create_checkin_record(
        self,
        *,
        session_id: str,
        user_id: str,
        checked_in_at: datetime,
        exp_earned: int,
    ) -> CheckInRecord:
        raise NotImplementedError

    def create_penalty_record(
        self,
        *,
        session_id: str,
        user_id: str,
        applied_at: datetime,
        exp_lost: int,
        reason: str,
    ) -> PenaltyRecord:
        raise NotImplementedError

    def save_profile(self, profile: Profile) -> None:
        raise NotImplementedError

    def deactivate_session(self, session_id: str) -> bool:
        raise NotImplementedError


class SessionRepository(Protocol):
    """Repository interface for QR sessions and their attendance ledger.

    Note (DIP): services depend on this interface, not on a concrete store.
    """

    def create(self, session: QRSession) -> str:
        raise NotImplementedError

    def get_by_id(self, session_id: str) -> Optional[QRSession]:
        raise NotImplementedError

    def get_active_by_token(self, token: str) -> Optional[QRSession]:
        raise NotImplementedError

    def list_all(self) -> Sequence[QRSession]:
        """All sessions, newest created first."""

        raise NotImplementedError

    def list_unfinished(self, now: datetime) -> Sequence[QRSession]:
        """Active sessions with ``end_at > now``, ordered by end then start."""

        raise NotImplementedError

    def find_current(self, now: datetime) -> Optional[QRSession]:
        """Active session open at ``now`` with the latest start."""

        raise NotImplementedError

    def find_next(self, now: datetime) -> Optional[QRSession]:
        """Active session with the soonest start after ``now``."""

        raise NotImplementedError

    def list_ended_active(self, now: datetime) -> Sequence[QRSession]:
        """Active sessions with ``end_at <= now`` (sweep candidates)."""

        raise NotImplementedError

    def count_checkins_between(self, *, start: datetime, end: datetime, user_id: Optional[str] = None) -> int:
        raise NotImplementedError

    def list_checkins_for_user(self, user_id: str, limit: int) -> Sequence[CheckInRecord]:
        raise NotImplementedError

    def list_penalties_for_user(self, user_id: str, limit: int) -> Sequence[PenaltyRecord]:
        raise NotImplementedError

    def transaction(self) -> ContextManager[SessionTransaction]:
        raise NotImplementedError
