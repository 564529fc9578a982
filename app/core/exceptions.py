"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class SlotConflictException(ConflictException):
    """A live appointment already holds the requested doctor/date/slot."""

    def __init__(self, message: str = "This time slot is already booked"):
        """Initialize with 409 status code."""
        super().__init__(message)


class InvalidTransitionException(BadRequestException):
    """Requested status change is not an edge of the appointment lifecycle."""

    def __init__(self, from_status: str, to_status: str):
        """Initialize with the offending from/to pair."""
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change status from {from_status} to {to_status}")


class PolicyDeniedException(BadRequestException):
    """Cancellation refused by the cancellation policy."""

    def __init__(self, message: str = "Cancellation not allowed"):
        """Initialize with 400 status code."""
        super().__init__(message)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class BulkOperationException(AppException):
    """A member of a batch failed; the whole batch was rolled back."""

    def __init__(self, index: int, cause: AppException):
        """Wrap the failing member's error, keeping its status code."""
        self.index = index
        self.cause = cause
        super().__init__(
            f"Operation {index} failed: {cause.message}. All changes have been rolled back.",
            status_code=cause.status_code,
        )
