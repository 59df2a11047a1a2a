"""
Domain-specific exceptions for the Ticketing API.

These exceptions represent business logic violations and are mapped
to appropriate HTTP status codes in the API layer.
"""

from typing import Any


class TicketingError(Exception):
    """Base exception for all ticketing domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(TicketingError):
    """
    Raised when input data fails a business validation.

    Examples:
    - Ticket sales window not open
    - Incomplete draft sections on publish
    - Transfer to yourself

    HTTP Status: 400 Bad Request
    """

    pass


class NotFoundError(TicketingError):
    """
    Raised when a requested resource does not exist or is not visible
    to the caller.

    HTTP Status: 404 Not Found
    """

    pass


class UnauthorizedError(TicketingError):
    """
    Raised when the caller is not authenticated.

    Examples:
    - Missing bearer token
    - Expired or revoked session
    - Invalid credentials on login

    HTTP Status: 401 Unauthorized
    """

    pass


class ForbiddenError(TicketingError):
    """
    Raised when the caller is authenticated but not allowed to act.

    Examples:
    - No membership row for the event's organization
    - Membership role not in the allowed roles
    - Buying tickets for an event that is not on sale

    HTTP Status: 403 Forbidden
    """

    pass


class ConflictError(TicketingError):
    """
    Raised when an operation conflicts with existing data.

    Examples:
    - Duplicate email or membership
    - Ticket already checked in
    - Pending transfer already exists

    HTTP Status: 409 Conflict
    """

    pass


class InvalidStateError(ConflictError):
    """
    Raised when a status transition is not allowed.

    HTTP Status: 409 Conflict
    """

    pass


class CapacityError(ConflictError):
    """
    Raised when inventory cannot satisfy a request.

    Examples:
    - Not enough GA tickets left
    - Seat already sold or held

    HTTP Status: 409 Conflict
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    UnauthorizedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStateError: 409,
    CapacityError: 409,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
