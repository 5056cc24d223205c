"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400, details=details)


class InvalidTransitionException(BadRequestException):
    """Requested status change is not allowed from the current status."""


class SlotUnavailableException(BadRequestException):
    """Time slot is taken or outside the doctor's hours."""


class CutoffExceededException(BadRequestException):
    """Patient request submitted too close to the appointment start."""


class AppointmentLockedException(BadRequestException):
    """Patient booking is locked after repeated no-shows."""

    def __init__(self, no_show_count: int, message: str | None = None):
        """Initialize with the current no-show count surfaced to the caller."""
        self.no_show_count = no_show_count
        super().__init__(
            message
            or (
                f"Booking is locked after {no_show_count} missed appointments. "
                "Please contact the clinic to restore booking access."
            ),
            details={"no_show_count": no_show_count, "appointment_locked": True},
        )


class ActiveBookingExistsException(BadRequestException):
    """Portal account already holds an outstanding future appointment."""


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429)
