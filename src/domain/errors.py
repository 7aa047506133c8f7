"""
Domain errors.

Every business-rule failure is raised as a ``DomainError`` carrying a stable
machine-readable ``code``.  The API layer maps the subclass to an HTTP status
and renders ``{"code", "message", "details"}``; nothing below the API knows
about HTTP.
"""

from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base class for all business-rule violations."""

    status_code = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(DomainError):
    """Input or temporal precondition is invalid."""

    status_code = 422


class NotFoundError(DomainError):
    status_code = 404


class ForbiddenError(DomainError):
    """Caller does not own the resource it is acting on."""

    status_code = 403


class ConflictError(DomainError):
    """Operation conflicts with the current state of the resource."""

    status_code = 409


class InvalidStateTransition(ConflictError):
    """Raised when a status change violates an entity's state machine."""

    def __init__(self, current: Any, target: Any, code: str = "invalid_status_transition"):
        super().__init__(
            f"Cannot transition from {_value(current)} to {_value(target)}",
            code,
            {"from": _value(current), "to": _value(target)},
        )


class CapacityExceeded(ConflictError):
    """The atomic seat allocation was refused.  Terminal; do not retry."""

    def __init__(self, trip_id: int, requested: int, remaining: Optional[int] = None):
        details: dict[str, Any] = {"trip_id": trip_id, "requested_seats": requested}
        if remaining is not None:
            details["remaining_seats"] = remaining
        super().__init__("Not enough seats left on this trip", "capacity_exceeded", details)


def _value(status: Any) -> Any:
    return getattr(status, "value", status)
