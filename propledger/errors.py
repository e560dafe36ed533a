"""Domain error taxonomy and response helpers.

Every failure raised by the services is an AppError carrying a machine
readable code and the HTTP status the controller layer should answer with.
"""

from http import HTTPStatus
from typing import Any, Dict


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = HTTPStatus.BAD_REQUEST):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class NotFoundError(AppError):
    """Referenced entity id does not resolve to a live row."""

    def __init__(self, entity: str, entity_id: Any, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity} not found for ID: {entity_id}",
            "not_found",
            HTTPStatus.NOT_FOUND,
        )


class InvalidStateError(AppError):
    """Request violates a domain invariant."""

    def __init__(self, message: str, code: str = "invalid_state"):
        super().__init__(message, code, HTTPStatus.BAD_REQUEST)


class OverpaymentError(InvalidStateError):
    """Payments for a bill would exceed its total amount."""

    def __init__(self, message: str):
        super().__init__(message, "overpayment")


class DuplicateReadingError(InvalidStateError):
    """A live reading already exists for the meter/submeter on that date."""

    def __init__(self, message: str):
        super().__init__(message, "duplicate_reading")


class RegressiveReadingError(InvalidStateError):
    """Reading value breaks the non-decreasing order of the meter."""

    def __init__(self, message: str):
        super().__init__(message, "regressive_reading")


class ConsumptionInconsistencyError(InvalidStateError):
    """Stored readings yield a negative consumption over a range."""

    def __init__(self, message: str):
        super().__init__(message, "consumption_inconsistency")


class ActiveLeaseExistsError(InvalidStateError):
    """Unit already has an active lease."""

    def __init__(self, unit_id: int):
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id} already has an active lease", "active_lease_exists")


class ValidationFailureError(AppError):
    """Malformed or inconsistent combination of input fields."""

    def __init__(self, message: str):
        super().__init__(message, "validation_failed", HTTPStatus.BAD_REQUEST)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }


__all__ = [
    "AppError",
    "NotFoundError",
    "InvalidStateError",
    "OverpaymentError",
    "DuplicateReadingError",
    "RegressiveReadingError",
    "ConsumptionInconsistencyError",
    "ActiveLeaseExistsError",
    "ValidationFailureError",
    "error_response",
]
