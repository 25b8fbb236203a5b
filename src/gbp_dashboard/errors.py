"""
Error types and user-facing error handling
Every user action reports back through ActionResult
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from . import config

logger = logging.getLogger(__name__)


# =========================
# Custom Exceptions
# =========================
class DashboardError(Exception):
    """Base exception for dashboard errors"""
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message)
        if code:
            self.code = code


class NotAuthenticatedError(DashboardError):
    """Raised when an action is attempted without a user"""
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFoundError(DashboardError):
    """Raised when a row is missing or not owned by the user"""
    code = "NOT_FOUND"


class ConfigurationError(DashboardError):
    """Raised when required credentials are not configured"""
    code = "CONFIGURATION_ERROR"


class GoogleAPIError(DashboardError):
    """Base exception for Google Business Profile API errors"""
    code = "GOOGLE_API_ERROR"

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None
    ):
        super().__init__(message, code)
        self.status_code = status_code
        self.payload = payload or {}


class AuthenticationError(GoogleAPIError):
    """Raised on 401 or an invalid grant"""
    code = "AUTH_EXPIRED"


class PermissionDeniedError(GoogleAPIError):
    """Raised on 403"""
    code = "PERMISSION_DENIED"


class RateLimitError(GoogleAPIError):
    """Raised when the API rate limit is hit"""
    code = "RATE_LIMIT"


class TokenRefreshError(DashboardError):
    """Raised when an OAuth refresh fails for a reason other than revocation"""
    code = "TOKEN_REFRESH_FAILED"


class AIGenerationError(DashboardError):
    """Raised when the AI provider fails to return usable content"""
    code = "AI_GENERATION_FAILED"


# =========================
# Error Classification
# =========================
class ErrorKind(str, Enum):
    """Coarse error classes used to pick the message shown to the user"""
    AUTH_EXPIRED = "auth_expired"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMITED = "rate_limited"
    GENERIC = "generic"


USER_MESSAGES: Dict[str, str] = {
    "VALIDATION_ERROR": "Please check your input data",
    "UNAUTHORIZED": "You are not authorized to access this resource",
    "FORBIDDEN": "Access denied",
    "NOT_FOUND": "Resource not found",
    "RATE_LIMIT_EXCEEDED": "Too many requests, please try again later",
    "INTERNAL_ERROR": "An internal error occurred, please try again later",
    "TOKEN_EXPIRED": "Your session has expired, please sign in again",
    "TOKEN_REFRESH_FAILED": "Failed to refresh session. Please reconnect your account.",
    "TOKEN_REFRESH_ERROR": "Authentication error. Please reconnect your account.",
    "ACCOUNT_NOT_FOUND": "Account not found",
    "LOCATION_NOT_FOUND": "Location not found",
    "INVALID_GRANT": "Authentication expired. Please reconnect your Google account.",
    "INSUFFICIENT_SCOPES": "Insufficient permissions. Please reconnect with required permissions.",
    "DATABASE_SCHEMA_ERROR": "Database configuration error. Please contact support.",
    "DUPLICATE_ERROR": "This record already exists",
    "REFERENCE_ERROR": "Invalid reference",
    "AUTH_ERROR": "Authentication failed",
    "SYNC_FAILED": "Synchronization failed. Please try again.",
    "NO_REFRESH_TOKEN": "No refresh token available. Please reconnect your account.",
    "ACCOUNT_INACTIVE": "Account is inactive",
    "UNSUPPORTED_POST_TYPE": "This post type is not supported",
    "AUTH_EXPIRED": "Authentication expired. Please reconnect your Google account in Settings.",
    "PERMISSION_DENIED": "Permission denied. Please check your Google Business Profile permissions.",
    "RATE_LIMIT": "Too many requests. Please try again in a few minutes.",
    "CONFIGURATION_ERROR": "This feature is not configured. Please contact support.",
    "AI_GENERATION_FAILED": "AI service failed to generate content.",
}


def get_user_message(code: str, fallback: Optional[str] = None) -> str:
    """Friendly message for an error code"""
    return USER_MESSAGES.get(code, fallback or USER_MESSAGES["INTERNAL_ERROR"])


def get_error_code(error: BaseException) -> str:
    """
    Derive an error code from an arbitrary exception

    Dashboard errors carry their own code; anything else is classified
    from its message text (database and OAuth failures surface this way).
    """
    if isinstance(error, ValidationError):
        return "VALIDATION_ERROR"

    message = str(error).lower()

    # Database errors
    if "column" in message and "does not exist" in message:
        return "DATABASE_SCHEMA_ERROR"
    if "duplicate key" in message or "constraint error" in message:
        return "DUPLICATE_ERROR"
    if "foreign key" in message:
        return "REFERENCE_ERROR"

    # Authentication errors
    if "invalid_grant" in message or "invalid grant" in message:
        return "INVALID_GRANT"
    if "refresh token" in message and "not available" in message:
        return "NO_REFRESH_TOKEN"

    if isinstance(error, DashboardError):
        return error.code

    if "authentication" in message or "unauthorized" in message:
        return "AUTH_ERROR"

    if "token" in message:
        if "expired" in message:
            return "TOKEN_EXPIRED"
        if "refresh" in message:
            return "TOKEN_REFRESH_ERROR"

    if "insufficient" in message and "scope" in message:
        return "INSUFFICIENT_SCOPES"

    return "INTERNAL_ERROR"


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception onto one of the four user-facing error kinds"""
    if isinstance(error, AuthenticationError):
        return ErrorKind.AUTH_EXPIRED
    if isinstance(error, PermissionDeniedError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(error, RateLimitError):
        return ErrorKind.RATE_LIMITED

    code = get_error_code(error)
    if code in ("INVALID_GRANT", "NO_REFRESH_TOKEN", "TOKEN_EXPIRED",
                "TOKEN_REFRESH_ERROR", "TOKEN_REFRESH_FAILED", "AUTH_EXPIRED"):
        return ErrorKind.AUTH_EXPIRED
    if code in ("INSUFFICIENT_SCOPES", "FORBIDDEN", "PERMISSION_DENIED"):
        return ErrorKind.PERMISSION_DENIED
    if code in ("RATE_LIMIT", "RATE_LIMIT_EXCEEDED"):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.GENERIC


def toast_for(error: BaseException) -> Tuple[ErrorKind, str, Optional[str]]:
    """
    Build the notification shown for a failed action

    Returns:
        (kind, message, action_link); only auth problems carry a link
    """
    kind = classify_error(error)
    if kind == ErrorKind.AUTH_EXPIRED:
        return kind, USER_MESSAGES["AUTH_EXPIRED"], config.RECONNECT_LINK
    if kind == ErrorKind.PERMISSION_DENIED:
        return kind, USER_MESSAGES["PERMISSION_DENIED"], None
    if kind == ErrorKind.RATE_LIMITED:
        return kind, USER_MESSAGES["RATE_LIMIT"], None
    return kind, str(error) or USER_MESSAGES["INTERNAL_ERROR"], None


def format_validation_error(error: ValidationError) -> str:
    """Join pydantic error messages into a single line"""
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return f"Validation error: {', '.join(parts)}"


# =========================
# Action Results
# =========================
@dataclass
class ActionResult:
    """Outcome of a user action, ready to be rendered as a notification"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, message: Optional[str] = None, data: Any = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: str, error_code: Optional[str] = None, data: Any = None) -> "ActionResult":
        return cls(success=False, error=error, error_code=error_code, data=data)

    @classmethod
    def from_exception(cls, exc: BaseException, data: Any = None) -> "ActionResult":
        """Convert a caught exception into a failed result"""
        if isinstance(exc, ValidationError):
            return cls.fail(format_validation_error(exc), "VALIDATION_ERROR", data)

        code = get_error_code(exc)
        kind = classify_error(exc)
        if kind == ErrorKind.GENERIC:
            message = str(exc) or get_user_message(code)
        else:
            _, message, _ = toast_for(exc)
        return cls.fail(message, code, data)

    @property
    def kind(self) -> Optional[ErrorKind]:
        if self.success:
            return None
        if self.error_code in ("AUTH_EXPIRED", "INVALID_GRANT", "NO_REFRESH_TOKEN",
                               "TOKEN_EXPIRED", "TOKEN_REFRESH_ERROR", "TOKEN_REFRESH_FAILED"):
            return ErrorKind.AUTH_EXPIRED
        if self.error_code in ("PERMISSION_DENIED", "INSUFFICIENT_SCOPES", "FORBIDDEN"):
            return ErrorKind.PERMISSION_DENIED
        if self.error_code in ("RATE_LIMIT", "RATE_LIMIT_EXCEEDED"):
            return ErrorKind.RATE_LIMITED
        return ErrorKind.GENERIC

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.message is not None:
            result["message"] = self.message
        if self.error is not None:
            result["error"] = self.error
        if self.error_code is not None:
            result["errorCode"] = self.error_code
        if self.data is not None:
            result["data"] = self.data
        return result
