"""Error taxonomy for the authorization guard and its HTTP surface.

Every failure the guard can produce is a tagged ``CollaboraError`` subclass.
The HTTP status is looked up by error code in ``STATUS_BY_CODE``; handlers
never inspect message text to pick a status.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable machine-readable error codes returned to clients."""

    MISSING_FIELDS = "missing_fields"
    VALIDATION_FAILED = "validation_failed"
    INVALID_ACTION = "invalid_action"
    INVALID_TENANT = "invalid_tenant"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHORIZED = "unauthorized"
    ACCOUNT_INACTIVE = "account_inactive"
    ACCOUNT_LOCKED = "account_locked"
    PERMISSION_DENIED = "permission_denied"
    ROLE_RESTRICTION = "role_restriction"
    ACCESS_DENIED = "access_denied"
    INVALID_CSRF_TOKEN = "invalid_csrf_token"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    INVALID_SESSION_STATE = "invalid_session_state"
    SERVER_ERROR = "server_error"


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.MISSING_FIELDS: 400,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.INVALID_ACTION: 400,
    ErrorCode.INVALID_TENANT: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.ACCOUNT_INACTIVE: 403,
    ErrorCode.ACCOUNT_LOCKED: 403,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.ROLE_RESTRICTION: 403,
    ErrorCode.ACCESS_DENIED: 403,
    ErrorCode.INVALID_CSRF_TOKEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
    ErrorCode.INVALID_SESSION_STATE: 500,
    ErrorCode.SERVER_ERROR: 500,
}


def status_for(code: ErrorCode) -> int:
    """Return the HTTP status code for an error code (500 if unmapped)."""
    return STATUS_BY_CODE.get(code, 500)


class CollaboraError(Exception):
    """Base class for all expected application errors.

    Attributes:
        code: Tagged error code (drives the HTTP status)
        message: Human-readable, client-safe message
        fields: Names of request fields involved in the failure
    """

    code: ErrorCode = ErrorCode.SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, fields: Optional[list[str]] = None):
        self.message = message or self.default_message
        self.fields = list(fields or [])
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return status_for(self.code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "fields": self.fields,
        }


class MissingFields(CollaboraError):
    code = ErrorCode.MISSING_FIELDS
    default_message = "Required fields are missing"


class ValidationFailed(CollaboraError):
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Request validation failed"


class InvalidAction(CollaboraError):
    code = ErrorCode.INVALID_ACTION
    default_message = "Unknown action"


class InvalidTenant(CollaboraError):
    code = ErrorCode.INVALID_TENANT
    default_message = "Tenant is not valid or not active"


class InvalidCredentials(CollaboraError):
    code = ErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid credentials"


class Unauthorized(CollaboraError):
    code = ErrorCode.UNAUTHORIZED
    default_message = "Authentication required"


class AccountInactive(CollaboraError):
    code = ErrorCode.ACCOUNT_INACTIVE
    default_message = "Account is not active"


class AccountLocked(CollaboraError):
    code = ErrorCode.ACCOUNT_LOCKED
    default_message = "Account temporarily locked. Try again later."


class PermissionDenied(CollaboraError):
    code = ErrorCode.PERMISSION_DENIED
    default_message = "Permission denied"


class RoleRestriction(CollaboraError):
    code = ErrorCode.ROLE_RESTRICTION
    default_message = "Standard users cannot switch tenant"


class AccessDenied(CollaboraError):
    code = ErrorCode.ACCESS_DENIED
    default_message = "Access to this tenant is not authorized"


class InvalidCsrfToken(CollaboraError):
    code = ErrorCode.INVALID_CSRF_TOKEN
    default_message = "Invalid or missing CSRF token"


class NotFound(CollaboraError):
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found"


class MethodNotAllowed(CollaboraError):
    code = ErrorCode.METHOD_NOT_ALLOWED
    default_message = "Method not allowed"


class InvalidSessionState(CollaboraError):
    code = ErrorCode.INVALID_SESSION_STATE
    default_message = "Invalid session state"


class ServerError(CollaboraError):
    code = ErrorCode.SERVER_ERROR
    default_message = "Internal server error"
