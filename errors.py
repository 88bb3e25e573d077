"""Error hierarchy for the building management service.

Every error carries the HTTP status it maps to and a human readable message.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    """Raised when input is missing or malformed."""

    status_code = 400


class UnauthorizedError(ServiceError):
    """Raised when a bearer credential is missing or invalid."""

    status_code = 401


class ForbiddenError(ServiceError):
    """Raised when the caller's identity or role does not allow the operation."""

    status_code = 403


class NotFoundError(ServiceError):
    """Raised when a referenced agreement, user, coupon or admin does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Raised on a duplicate agreement or a duplicate monthly payment."""

    status_code = 409


class InternalError(ServiceError):
    """Raised when the document store or the payment provider fails."""

    status_code = 500
