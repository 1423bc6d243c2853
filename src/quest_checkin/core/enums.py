from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles used for authorization."""

    ADMIN = "admin"
    USER = "user"


class CheckInState(str, Enum):
    """Where a (session, user) pair sits in the check-in lifecycle."""

    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"
    CHECKED_IN = "CHECKED_IN"
    ENDED = "ENDED"


class StorageBackend(str, Enum):
    MYSQL = "mysql"
    MEMORY = "memory"
