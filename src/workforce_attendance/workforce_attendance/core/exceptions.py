from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations.

    ``code`` is the stable identifier clients switch on; ``category`` groups
    codes by how a client should react (fix input, resync, retry later).
    """

    code = "DOMAIN_ERROR"
    category = "domain"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"code": self.code, "category": self.category, "message": self.message}


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules. Never retried."""

    code = "VALIDATION_ERROR"
    category = "validation"


class AuthenticationError(DomainError):
    """Raised when no verified identity accompanies a request."""

    code = "UNAUTHENTICATED"
    category = "auth"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    code = "FORBIDDEN"
    category = "auth"


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    category = "not_found"


class ConflictError(DomainError):
    """The command reached the service and was denied by current state."""

    code = "CONFLICT"
    category = "conflict"


class SessionConflict(ConflictError):
    code = "SESSION_CONFLICT"


class NoActiveSession(ConflictError):
    code = "NO_ACTIVE_SESSION"


class OpenBreakExists(ConflictError):
    code = "OPEN_BREAK_EXISTS"


class SessionNotActive(ConflictError):
    code = "SESSION_NOT_ACTIVE"


class BreakAlreadyOpen(ConflictError):
    code = "BREAK_ALREADY_OPEN"


class NoOpenBreak(ConflictError):
    code = "NO_OPEN_BREAK"


class AlreadyDecided(ConflictError):
    code = "ALREADY_DECIDED"


class TransientError(DomainError):
    """Store or channel temporarily unavailable. Clients retry with backoff."""

    code = "TRANSIENT_ERROR"
    category = "transient"


class ConcurrentUpdate(TransientError):
    code = "CONCURRENT_UPDATE"


class StoreUnavailable(TransientError):
    code = "STORE_UNAVAILABLE"


class ChannelClosed(TransientError):
    code = "CHANNEL_CLOSED"


class StaleCommand(DomainError):
    """The command's context no longer exists; resync before resubmitting."""

    code = "STALE_COMMAND"
    category = "stale"


class ResyncRequired(DomainError):
    """Requested replay falls outside the retention window."""

    code = "RESYNC_REQUIRED"
    category = "stale"
