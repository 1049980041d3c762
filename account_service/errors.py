"""Helpers for building the standardized API error responses."""

from fastapi import HTTPException, status

from .schemas import ErrorCode

LOGIN_REDIRECT = "/auth/login"


def api_error(status_code: int, error: str, message: str, details: dict | None = None) -> HTTPException:
    """Build an HTTPException carrying the {error, message, details} payload."""
    return HTTPException(
        status_code=status_code,
        detail={
            "error": error,
            "message": message,
            "details": details or {},
        },
    )


def unauthenticated(message: str = "Please sign in to continue.") -> HTTPException:
    """Client has no valid session; send it back to the login screen."""
    return api_error(
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.UNAUTHENTICATED,
        message,
        {"redirect": LOGIN_REDIRECT},
    )


def operation_failed(action: str) -> HTTPException:
    """Generic failure for unexpected store errors. Detail stays in the server log."""
    return api_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.OPERATION_FAILED,
        f"An error occurred while {action}.",
    )
