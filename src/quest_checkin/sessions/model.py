from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import CheckInState


@dataclass(frozen=True)
class QRSession:
    """Domain entity: a time-boxed QR check-in window.

    ``token`` is what participants scan. ``all_users`` is frozen when the
    session is created; ``attendees`` and ``penalized_users`` only grow.
    """

    session_id: str
    title: str
    description: Optional[str]
    start_at: datetime
    end_at: datetime
    token: str
    created_by: str
    created_at: datetime
    is_active: bool
    exp_reward: int
    exp_penalty: int
    all_users: tuple[str, ...] = ()
    attendees: tuple[str, ...] = ()
    penalized_users: tuple[str, ...] = ()

    def is_open(self, now: datetime) -> bool:
        return self.start_at <= now < self.end_at

    def has_ended(self, now: datetime) -> bool:
        return now >= self.end_at

    def state_for(self, user_id: str, now: datetime) -> CheckInState:
        if now < self.start_at:
            return CheckInState.NOT_STARTED
        if now >= self.end_at:
            return CheckInState.ENDED
        if user_id in self.attendees:
            return CheckInState.CHECKED_IN
        return CheckInState.ACTIVE

    def missed_users(self) -> list[str]:
        attended = set(self.attendees)
        penalized = set(self.penalized_users)
        return [u for u in self.all_users if u not in attended and u not in penalized]


@dataclass(frozen=True)
class CheckInRecord:
    record_id: int
    user_id: str
    session_id: str
    checked_in_at: datetime
    exp_earned: int


@dataclass(frozen=True)
class PenaltyRecord:
    record_id: int
    user_id: str
    session_id: str
    applied_at: datetime
    exp_lost: int
    reason: str


@dataclass(frozen=True)
class SessionStats:
    total_attendees: int
    total_users: int
    attendance_rate: float
    penalties_applied: int


@dataclass(frozen=True)
class CheckInStatus:
    """Read-model for the user's check-in screen."""

    current_session: Optional[QRSession]
    next_session: Optional[QRSession]
    today_check_ins: int


@dataclass
class SweepReport:
    penalized_by_session: dict[str, int] = field(default_factory=dict)
    failed_sessions: list[str] = field(default_factory=list)

    @property
    def total_penalized(self) -> int:
        return sum(self.penalized_by_session.values())
