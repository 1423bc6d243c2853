from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import BinaryIO, Optional, Sequence

from ..common.datetime_utils import ensure_utc, now_utc
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import CheckInState
from ..core.exceptions import AlreadyCheckedIn, InvalidToken, NotFound, SessionEnded, SessionNotStarted
from ..profiles.progression import apply_reward
from ..sessions.model import CheckInRecord
from ..sessions.repository import SessionRepository

logger = logging.getLogger(__name__)


def decode_qr_image(stream: BinaryIO) -> Optional[str]:
    """Return the payload of the first QR code found in an image, if any."""
    # zbar is a native library; import lazily so the API still starts where it is missing.
    from PIL import Image
    from pyzbar.pyzbar import decode as pyzbar_decode

    img = Image.open(stream).convert("RGB")
    decoded = pyzbar_decode(img)
    if not decoded:
        return None
    return decoded[0].data.decode("utf-8").strip()


class CheckInService:
    """Use case: validate a scanned token and record attendance exactly once."""

    def __init__(self, sessions: SessionRepository):
        self._sessions = sessions

    def check_in(self, token: str, user_id: str, *, now: Optional[datetime] = None) -> CheckInRecord:
        now = ensure_utc(now) if now else now_utc()
        token = (token or "").strip()
        if not token:
            raise InvalidToken("Invalid QR code")

        found = self._sessions.get_active_by_token(token)
        if not found:
            raise InvalidToken("Invalid QR code")

        with self._sessions.transaction() as tx:
            # Re-read under lock: the lookup above may be stale by now.
            session = tx.lock_session(found.session_id)
            if not session or not session.is_active or session.token != token:
                raise InvalidToken("Invalid QR code")

            state = session.state_for(user_id, now)
            if state == CheckInState.NOT_STARTED:
                raise SessionNotStarted("Check-in session has not started yet")
            if state == CheckInState.ENDED:
                raise SessionEnded("Check-in session has ended")
            if state == CheckInState.CHECKED_IN:
                raise AlreadyCheckedIn("You have already checked in for this session")

            profile = tx.lock_profile(user_id)
            if not profile:
                raise NotFound("User not found")

            if not tx.add_attendee(session_id=session.session_id, user_id=user_id):
                raise AlreadyCheckedIn("You have already checked in for this session")

            record = tx.create_checkin_record(
                session_id=session.session_id,
                user_id=user_id,
                checked_in_at=now,
                exp_earned=session.exp_reward,
            )
            change = apply_reward(exp=profile.exp, level=profile.level, reward=session.exp_reward)
            tx.save_profile(
                replace(
                    profile,
                    exp=change.exp,
                    level=change.level,
                    total_check_ins=profile.total_check_ins + 1,
                    last_check_in=now,
                )
            )

        logger.info(
            "user %s checked in to session %s (+%d EXP, level %d)",
            user_id,
            session.session_id,
            session.exp_reward,
            change.level,
        )
        return record

    def check_in_from_image(self, stream: BinaryIO, user_id: str, *, now: Optional[datetime] = None) -> CheckInRecord:
        try:
            token = decode_qr_image(stream)
        except OSError:
            raise InvalidToken("Uploaded file is not a readable image")
        if not token:
            raise InvalidToken("No QR code found in the image")
        return self.check_in(token, user_id, now=now)

    def history(self, user_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[CheckInRecord]:
        return self._sessions.list_checkins_for_user(user_id, max(1, int(limit)))
