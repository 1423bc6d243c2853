from __future__ import annotations

import io
import logging

import qrcode
from flask import Flask, request, send_file

from ..common.datetime_utils import parse_iso_datetime
from ..common.web import (
    admin_required,
    current_user_id,
    domain_error_response,
    fail,
    ok,
    persistence_error_response,
)
from ..container import Container
from ..core.exceptions import DomainError, PersistenceError, ValidationError
from .selection import UserSelection

logger = logging.getLogger(__name__)


def render_token_png(token: str) -> io.BytesIO:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(token)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return buf


def _parse_when(data: dict, field: str):
    value = data.get(field)
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def register(app: Flask, container: Container) -> None:
    @app.route("/api/admin/sessions", methods=["GET"], endpoint="admin_list_sessions")
    @admin_required
    def admin_list_sessions():
        try:
            if request.args.get("scope") == "active":
                sessions = container.session_service.list_active_sessions()
            else:
                sessions = container.session_service.list_sessions()
            return ok(sessions)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions", methods=["POST"], endpoint="admin_create_session")
    @admin_required
    def admin_create_session():
        data = request.get_json(silent=True) or {}
        try:
            token = container.session_service.create_session(
                title=data.get("title", ""),
                description=data.get("description"),
                start_at=_parse_when(data, "start_at"),
                end_at=_parse_when(data, "end_at"),
                exp_reward=data.get("exp_reward", 0),
                exp_penalty=data.get("exp_penalty", 0),
                created_by=current_user_id(),
                selection=UserSelection.from_payload(data.get("selection")),
            )
            return ok({"token": token}, status=201)
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)
        except Exception:
            logger.exception("failed to create QR session")
            return fail("internal_error", "Failed to generate QR code", 500)

    @app.route("/api/admin/sessions/preview", methods=["POST"], endpoint="admin_preview_selection")
    @admin_required
    def admin_preview_selection():
        data = request.get_json(silent=True) or {}
        try:
            users = container.session_service.preview_affected_users(UserSelection.from_payload(data))
            return ok({"total_users": len(users), "users": users})
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions/<session_id>", methods=["GET"], endpoint="admin_get_session")
    @admin_required
    def admin_get_session(session_id: str):
        try:
            return ok(container.session_service.get_session(session_id))
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions/<session_id>/stats", methods=["GET"], endpoint="admin_session_stats")
    @admin_required
    def admin_session_stats(session_id: str):
        try:
            return ok(container.session_service.session_stats(session_id))
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions/<session_id>/deactivate", methods=["POST"], endpoint="admin_deactivate_session")
    @admin_required
    def admin_deactivate_session(session_id: str):
        try:
            container.session_service.deactivate_session(session_id)
            return ok()
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions/<session_id>/qr.png", methods=["GET"], endpoint="admin_session_qr")
    @admin_required
    def admin_session_qr(session_id: str):
        """Scannable image of the session token, for display or printing."""
        try:
            session = container.session_service.get_session(session_id)
            return send_file(render_token_png(session.token), mimetype="image/png")
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)
