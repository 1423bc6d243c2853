"""Shared helpers for the JSON controllers.

Identity comes from the Flask session, which the external identity provider's
login flow fills with ``user_id`` and ``role``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Any

from flask import jsonify, session

from ..core.enums import Role
from ..core.exceptions import (
    AlreadyCheckedIn,
    AuthorizationError,
    DomainError,
    NotFound,
    PersistenceError,
    SessionEnded,
    SessionNotStarted,
    SessionStillActive,
)

logger = logging.getLogger(__name__)

_CONFLICTS = (AlreadyCheckedIn, SessionEnded, SessionNotStarted, SessionStillActive)


def to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {k: to_jsonable(v) for k, v in asdict(value).items()}
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def ok(payload: Any = None, status: int = 200):
    body = {"success": True}
    if payload is not None:
        body["data"] = to_jsonable(payload)
    return jsonify(body), status


def fail(code: str, message: str, status: int):
    return jsonify({"success": False, "error": code, "message": message}), status


def domain_error_response(e: DomainError):
    if isinstance(e, NotFound):
        status = 404
    elif isinstance(e, AuthorizationError):
        status = 403
    elif isinstance(e, _CONFLICTS):
        status = 409
    else:
        status = 400
    return fail(e.code, str(e), status)


def persistence_error_response(e: PersistenceError):
    logger.error("storage failure: %s", e)
    return fail(e.code, "Storage is unavailable, the action was not confirmed", 503)


def current_user_id() -> str:
    return str(session["user_id"])


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return fail("unauthenticated", "Please sign in to continue", 401)
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return fail("unauthenticated", "Please sign in to continue", 401)
        if session.get("role") != Role.ADMIN.value:
            return fail(AuthorizationError.code, "Administrator access required", 403)
        return view(*args, **kwargs)

    return wrapper
