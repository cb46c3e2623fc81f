"""Domain errors raised by the points core.

Each error carries the HTTP status and a stable machine-readable code so the
API layer can render it without knowing which service raised it, and the UI
can react differently to "not enough points" and "already claimed".
"""

from __future__ import annotations


class PointsError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code: int = 500
    code: str = "points_error"
    default_message: str = "Points operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(PointsError):
    """Entity is absent or not visible to the caller."""

    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Forbidden(PointsError):
    """Caller does not own the entity chain."""

    status_code = 403
    code = "forbidden"
    default_message = "Not authorized"


class ValidationError(PointsError, ValueError):
    """Malformed or semantically invalid input."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class InsufficientPoints(PointsError):
    """Balance is lower than the reward cost."""

    status_code = 400
    code = "insufficient_points"
    default_message = "Not enough points to claim this reward"


class AlreadyClaimed(PointsError):
    """Reward already has a claim."""

    status_code = 409
    code = "already_claimed"
    default_message = "This reward has already been claimed"


class ConstraintViolation(PointsError):
    """A concurrent write won the race at the database level. Safe to retry."""

    status_code = 409
    code = "constraint_violation"
    default_message = "Conflicting concurrent update, please retry"


class InternalError(PointsError):
    """Unexpected store failure."""

    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"
