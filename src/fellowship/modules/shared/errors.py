"""
Service Errors

Every module's service layer raises subclasses of ``ServiceError``. Routers
translate them into ``HTTPException(status_code, {"error", "message"})``.
"""

from typing import NoReturn

from fastapi import HTTPException, status


GOOGLE_REMEDIATION = "Please ensure the Google account is connected."


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


def handle_service_error(e: ServiceError) -> NoReturn:
    """Convert a service error to an HTTPException."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def internal_error() -> HTTPException:
    """Generic 500 for unexpected failures; details stay in the server log."""
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


class GoogleNotConnectedError(ServiceError):
    """Raised when an operation needs the institution's Google account and none is stored."""

    def __init__(self):
        super().__init__(
            message="Google account not connected. Please connect your Google account in Settings.",
            error_code="GOOGLE_NOT_CONNECTED",
            status_code=400,
        )


class StorageUnavailableError(ServiceError):
    """Raised when a required Google Drive call fails."""

    def __init__(self, action: str):
        super().__init__(
            message=f"Could not {action} in Google Drive. {GOOGLE_REMEDIATION}",
            error_code="STORAGE_UNAVAILABLE",
            status_code=502,
        )
