"""Custom exceptions and error handling for the Checkin API."""

from typing import Any

from fastapi import HTTPException, status


class CheckinException(HTTPException):
    """Base exception for the Checkin API."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str | None = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        body = {"detail": self.detail, "error_code": self.error_code}
        body.update(self.extra)
        return body


# Authentication Errors (401, 403)
class AuthenticationError(CheckinException):
    """Raised when the request carries no valid session."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
        )


class InvalidCredentialsError(CheckinException):
    """Raised when login credentials are invalid."""

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_CREDENTIALS",
        )


class PermissionDeniedError(CheckinException):
    """
    Raised when the user lacks permission for an action.

    When the denial is role based, the required and current roles are
    included in the response so clients can explain the denial.
    """

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action",
        required_role: str | None = None,
        current_role: str | None = None,
    ):
        extra = {}
        if required_role:
            extra["required_role"] = required_role
        if current_role:
            extra["current_role"] = current_role
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
            extra=extra,
        )
        self.required_role = required_role
        self.current_role = current_role


# Resource Errors (404, 409)
class NotFoundError(CheckinException):
    """Raised when a resource is not found."""

    def __init__(self, resource: str = "Resource", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} not found",
            error_code="NOT_FOUND",
        )


class ConflictError(CheckinException):
    """Raised when a request conflicts with the current state of a resource."""

    def __init__(self, detail: str = "Resource conflict"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT",
        )


# Validation Errors (400)
class ValidationError(CheckinException):
    """Raised when input validation fails."""

    def __init__(self, detail: str = "Invalid input", error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
        )


class FormulaError(ValidationError):
    """Raised when a formula is invalid or cannot be evaluated."""

    def __init__(self, detail: str = "Invalid formula"):
        super().__init__(detail=detail, error_code="FORMULA_ERROR")


# Upstream Errors (502)
class ExternalFetchError(CheckinException):
    """Raised when an integration's external source cannot be reached or parsed."""

    def __init__(self, detail: str = "Failed to fetch data from external source"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code="EXTERNAL_FETCH_ERROR",
        )


# Share link states (404, 410)
class ShareLinkStateError(CheckinException):
    """
    Raised when a public share link cannot be served.

    Clients branch on ``error_code`` (or ``reason``), never on the message.
    """

    STATES = {
        "not_found": (status.HTTP_404_NOT_FOUND, "SHARE_LINK_NOT_FOUND", "Share link not found"),
        "expired": (status.HTTP_410_GONE, "SHARE_LINK_EXPIRED", "This share link has expired"),
        "inactive": (status.HTTP_410_GONE, "SHARE_LINK_INACTIVE", "This share link has been deactivated"),
    }

    def __init__(self, reason: str):
        status_code, error_code, detail = self.STATES[reason]
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_code=error_code,
            extra={"reason": reason},
        )
        self.reason = reason
