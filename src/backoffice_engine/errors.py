"""Error taxonomy shared by the access resolver, services and API layer."""

from __future__ import annotations


class BackofficeError(Exception):
    """Base class for all domain errors surfaced to callers."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnauthorizedError(BackofficeError):
    """No authenticated actor on the request."""

    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(BackofficeError):
    """Actor is authenticated but its role or scope does not allow the write."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(BackofficeError):
    """Entity is absent or outside the actor's visible scope."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found")


class ValidationError(BackofficeError):
    """A required field is missing or a value is invalid."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidTransitionError(BackofficeError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(BackofficeError):
    """The row was modified concurrently since it was read."""

    code = "CONFLICT"
    status_code = 409


class TransientError(BackofficeError):
    """Storage or infrastructure failure; safe for the caller to retry."""

    code = "TRANSIENT"
    status_code = 503
