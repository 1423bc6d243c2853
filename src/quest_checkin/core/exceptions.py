class DomainError(Exception):
    """Base exception for business rule violations."""

    code = "domain_error"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "validation_error"


class InvalidSelection(ValidationError):
    """Raised when a session would have no participants or an empty time window."""

    code = "invalid_selection"


class InvalidToken(DomainError):
    """Raised when a scanned token matches no active session."""

    code = "invalid_token"


class SessionNotStarted(DomainError):
    code = "session_not_started"


class SessionEnded(DomainError):
    code = "session_ended"


class AlreadyCheckedIn(DomainError):
    code = "already_checked_in"


class SessionStillActive(DomainError):
    """Raised when penalties are requested before a session has ended."""

    code = "session_still_active"


class NotFound(DomainError):
    code = "not_found"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    code = "forbidden"


class PersistenceError(Exception):
    """Raised when the backing store fails; the write must not be assumed to have happened."""

    code = "persistence_error"
