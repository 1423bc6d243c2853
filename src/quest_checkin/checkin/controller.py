from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, request

from ..common.web import (
    admin_required,
    current_user_id,
    domain_error_response,
    fail,
    login_required,
    ok,
    persistence_error_response,
)
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.exceptions import DomainError, PersistenceError

logger = logging.getLogger(__name__)


def public_session_view(session) -> Optional[dict]:
    """Session fields a participant may see; the token and member lists stay admin-only."""
    if session is None:
        return None
    return {
        "session_id": session.session_id,
        "title": session.title,
        "description": session.description,
        "start_at": session.start_at,
        "end_at": session.end_at,
        "exp_reward": session.exp_reward,
        "exp_penalty": session.exp_penalty,
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/checkin/status", methods=["GET"], endpoint="checkin_status")
    @login_required
    def checkin_status():
        try:
            status = container.session_service.user_status(current_user_id())
            return ok(
                {
                    "current_session": public_session_view(status.current_session),
                    "next_session": public_session_view(status.next_session),
                    "today_check_ins": status.today_check_ins,
                }
            )
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/checkin", methods=["POST"], endpoint="checkin")
    @login_required
    def checkin():
        data = request.get_json(silent=True) or {}
        try:
            record = container.checkin_service.check_in(str(data.get("token", "")), current_user_id())
            return ok(record)
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)
        except Exception:
            logger.exception("check-in failed")
            return fail("internal_error", "System error during check-in", 500)

    @app.route("/api/checkin/image", methods=["POST"], endpoint="checkin_image")
    @login_required
    def checkin_image():
        """Accept an uploaded photo, decode the QR code in it, and check in."""
        if "image" not in request.files:
            return fail("missing_image", "An image file is required", 400)
        try:
            record = container.checkin_service.check_in_from_image(request.files["image"].stream, current_user_id())
            return ok(record)
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)
        except Exception:
            logger.exception("image check-in failed")
            return fail("internal_error", "System error during check-in", 500)

    @app.route("/api/admin/checkins/today", methods=["GET"], endpoint="admin_today_checkins")
    @admin_required
    def admin_today_checkins():
        try:
            return ok({"today_check_ins": container.session_service.today_check_in_count()})
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/checkin/history", methods=["GET"], endpoint="checkin_history")
    @login_required
    def checkin_history():
        limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)
        try:
            return ok(container.checkin_service.history(current_user_id(), limit=limit))
        except PersistenceError as e:
            return persistence_error_response(e)
