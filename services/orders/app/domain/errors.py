"""Order domain errors.

Each error carries the HTTP status the API layer answers with; the
exception handlers in ``app.main`` do the translation.
"""
from typing import Any, Optional


class OrderError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"detail": self.message, **self.extra}


class ValidationError(OrderError):
    """Malformed or missing input, detected before any write."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message, errors=errors or [])
        self.errors = errors or []


class InvalidTransitionError(OrderError):
    status_code = 409

    def __init__(self, current: str, attempted: str):
        super().__init__(
            f"Cannot move order from {current} to {attempted}",
            current=current,
            attempted=attempted,
        )
        self.current = current
        self.attempted = attempted


class NotFoundError(OrderError):
    status_code = 404


class PersistenceError(OrderError):
    status_code = 500


class AuthenticationError(OrderError):
    status_code = 401


class AuthorizationError(OrderError):
    status_code = 403
