"""
Domain exceptions raised by services.

Routers let them propagate; create_app() registers a handler that turns
them into `{"detail": message}` responses with the carried status code.
"""


class DomainError(Exception):
    """A business-rule violation with an HTTP status attached."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class TransitionError(ConflictError):
    """An illegal state transition (workflow step out of order)."""


class InvitationError(DomainError):
    """Invitation cannot be used: unknown (404), expired (410) or not pending (409)."""
