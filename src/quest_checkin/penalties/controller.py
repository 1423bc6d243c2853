from __future__ import annotations

from flask import Flask, request

from ..common.web import (
    admin_required,
    current_user_id,
    domain_error_response,
    login_required,
    ok,
    persistence_error_response,
)
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.exceptions import DomainError, PersistenceError


def register(app: Flask, container: Container) -> None:
    @app.route("/api/penalties/history", methods=["GET"], endpoint="penalty_history")
    @login_required
    def penalty_history():
        limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)
        try:
            return ok(container.penalty_service.history(current_user_id(), limit=limit))
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/sessions/<session_id>/penalties", methods=["POST"], endpoint="admin_apply_penalties")
    @admin_required
    def admin_apply_penalties(session_id: str):
        try:
            records = container.penalty_service.apply_penalties(session_id)
            return ok({"penalized": len(records), "records": records})
        except DomainError as e:
            return domain_error_response(e)
        except PersistenceError as e:
            return persistence_error_response(e)

    @app.route("/api/admin/penalties/sweep", methods=["POST"], endpoint="admin_sweep_penalties")
    @admin_required
    def admin_sweep_penalties():
        try:
            report = container.penalty_service.sweep_ended_sessions()
            return ok(
                {
                    "penalized_by_session": report.penalized_by_session,
                    "failed_sessions": report.failed_sessions,
                    "total_penalized": report.total_penalized,
                }
            )
        except PersistenceError as e:
            return persistence_error_response(e)
