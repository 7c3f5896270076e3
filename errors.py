"""Operational errors raised by the attempt, scoring and quiz services.

Each error carries a stable machine-readable ``kind`` and the HTTP status it
maps to. Anything that is not an ``AppError`` is treated as an internal
failure by the API layer.
"""

from __future__ import annotations


class AppError(Exception):
    kind = "internal"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = 403
    default_message = "Access forbidden"


class InvalidStateError(AppError):
    kind = "invalid_state"
    status_code = 409
    default_message = "Operation not allowed in the current state"


class InputValidationError(AppError):
    kind = "validation_error"
    status_code = 400
    default_message = "Validation failed"


class ConflictError(AppError):
    """Concurrent writers kept invalidating the same record."""

    kind = "conflict"
    status_code = 409
    default_message = "Resource was modified concurrently, please retry"
