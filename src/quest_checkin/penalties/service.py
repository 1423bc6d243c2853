from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import ensure_utc, now_utc
from ..core.constants import DEFAULT_HISTORY_LIMIT, PENALTY_REASON_TEMPLATE
from ..core.exceptions import DomainError, NotFound, PersistenceError, SessionStillActive
from ..profiles.progression import apply_penalty
from ..sessions.model import PenaltyRecord, SweepReport
from ..sessions.repository import SessionRepository

logger = logging.getLogger(__name__)


class PenaltyService:
    """Use case: penalize expected participants who never checked in.

    Reconciliation is idempotent per session: users who attended or were
    already penalized are never candidates, and the candidate set is computed
    from the session row locked inside the same transaction that writes.
    """

    def __init__(self, sessions: SessionRepository):
        self._sessions = sessions

    def apply_penalties(self, session_id: str, *, now: Optional[datetime] = None) -> list[PenaltyRecord]:
        now = ensure_utc(now) if now else now_utc()
        return self._reconcile(session_id, now=now, deactivate=False)

    def sweep_ended_sessions(self, *, now: Optional[datetime] = None) -> SweepReport:
        """Reconcile and deactivate every active session whose window has closed.

        Meant for a cron-like trigger; running it twice, or alongside a manual
        reconciliation of the same session, penalizes nobody twice.
        """
        now = ensure_utc(now) if now else now_utc()
        report = SweepReport()

        for session in self._sessions.list_ended_active(now):
            try:
                records = self._reconcile(session.session_id, now=now, deactivate=True)
            except (DomainError, PersistenceError):
                logger.exception("sweep failed for session %s", session.session_id)
                report.failed_sessions.append(session.session_id)
                continue
            report.penalized_by_session[session.session_id] = len(records)

        logger.info(
            "penalty sweep done: %d sessions closed, %d users penalized, %d failures",
            len(report.penalized_by_session),
            report.total_penalized,
            len(report.failed_sessions),
        )
        return report

    def history(self, user_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[PenaltyRecord]:
        return self._sessions.list_penalties_for_user(user_id, max(1, int(limit)))

    def _reconcile(self, session_id: str, *, now: datetime, deactivate: bool) -> list[PenaltyRecord]:
        records: list[PenaltyRecord] = []

        with self._sessions.transaction() as tx:
            session = tx.lock_session(session_id)
            if not session:
                raise NotFound("Session not found")
            if not session.has_ended(now):
                raise SessionStillActive("Session has not ended yet")

            reason = PENALTY_REASON_TEMPLATE.format(title=session.title)
            # Profile rows are locked in id order so concurrent reconciliations cannot deadlock.
            for user_id in sorted(session.missed_users()):
                profile = tx.lock_profile(user_id)
                if not profile:
                    logger.warning("session %s: no profile for %s, penalty skipped", session_id, user_id)
                    continue

                change = apply_penalty(exp=profile.exp, level=profile.level, penalty=session.exp_penalty)
                tx.save_profile(
                    replace(
                        profile,
                        exp=change.exp,
                        level=change.level,
                        total_penalties=profile.total_penalties + 1,
                        last_penalty=now,
                    )
                )
                records.append(
                    tx.create_penalty_record(
                        session_id=session_id,
                        user_id=user_id,
                        applied_at=now,
                        exp_lost=change.delta,
                        reason=reason,
                    )
                )
                tx.add_penalized_user(session_id=session_id, user_id=user_id)

            if deactivate:
                tx.deactivate_session(session_id)

        logger.info("penalties applied for session %s: %d users penalized", session_id, len(records))
        return records
