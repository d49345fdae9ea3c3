"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    error_code: str = "InternalError"
    retryable: bool = False

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    error_code = "ValidationFailed"

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    error_code = "NotFound"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ForbiddenError(AppException):
    """Actor is not allowed to perform the requested action."""

    error_code = "Forbidden"

    def __init__(self, detail: str = "You don't have permission to perform this action") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidTransitionError(AppException):
    """Action is not valid from the booking's current status."""

    error_code = "InvalidTransition"

    def __init__(self, current: str, action: str) -> None:
        self.current = current
        self.action = action
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Action '{action}' is not allowed for a booking in status '{current}'",
        )


class TerminalStateError(AppException):
    """Booking is finalized and accepts no further actions."""

    error_code = "TerminalState"

    def __init__(self, current: str) -> None:
        self.current = current
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Booking is already {current} and can no longer be changed",
        )


class VersionConflictError(AppException):
    """Stored version changed between read and conditional write."""

    error_code = "VersionConflict"
    retryable = True

    def __init__(self, booking_id: str, expected_version: int) -> None:
        self.booking_id = booking_id
        self.expected_version = expected_version
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Booking {booking_id} was modified concurrently (expected version {expected_version})",
        )


class ConflictError(AppException):
    """Concurrent writers kept winning until the retry bound was exhausted."""

    error_code = "Conflict"
    retryable = True

    def __init__(self, detail: str = "The booking is being modified concurrently. Please retry.") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class DependencyUnavailable(AppException):
    """Booking store or worker lookup is unreachable."""

    error_code = "DependencyUnavailable"
    retryable = True

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"Dependency '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
