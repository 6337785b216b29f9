"""Pega MCP custom exceptions.

Exception Design Principles:
1. HTTP outcomes from the DX API are never raised - the client normalizes them
   into a Result. Exceptions are reserved for failures before a request can be made.
2. Split on domain of actionable information:
   - Recoverable by user reconfiguration (ConfigError)
   - Recoverable by fixing credentials or the OAuth2 client registration (AuthenticationError)
3. Each exception carries the error type it maps to in the closed error taxonomy.
"""

from enum import StrEnum


class ErrorType(StrEnum):
    """Closed taxonomy of error kinds reported in Result.error.type."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    VALIDATION_FAIL = "VALIDATION_FAIL"
    LOCKED = "LOCKED"
    FAILED_DEPENDENCY = "FAILED_DEPENDENCY"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


class PegaMCPError(Exception):
    """Base exception for all Pega MCP errors.

    Provides rich context and actionable suggestions beyond standard exceptions.
    All Pega MCP custom exceptions inherit from this base class.
    """

    error_type: ErrorType = ErrorType.CONNECTION_ERROR

    def __init__(
        self,
        message: str,  # the error message
        *,
        errors: list[str] = None,  # detailed list of errors (if available)
        suggestions: list[str] = None,  # remedial actions
        context: dict = None,  # additional detailed context
    ):
        """Initialize PegaMCPError.

        Args:
            message: Primary error message for users
            errors: List of specific error details
            suggestions: List of actionable suggestions for resolution
            context: Additional context information as key-value pairs
        """
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        self.context = context or {}


class ConfigError(PegaMCPError):
    """Configuration errors - recoverable by user reconfiguration.

    Covers problems detected before any network activity:
    - Missing PEGA_BASE_URL / PEGA_CLIENT_ID / PEGA_CLIENT_SECRET
    - Incomplete or contradictory sessionCredentials
    - Malformed sessionCredentials JSON
    """

    error_type = ErrorType.CONFIG_ERROR


class AuthenticationError(PegaMCPError):
    """Token acquisition errors - recoverable by fixing credentials.

    Raised when the OAuth2 token endpoint rejects the client credentials,
    answers without an access_token, or when a directly supplied token has
    expired and cannot be re-acquired.
    """

    error_type = ErrorType.AUTHENTICATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status = status
        self.body = body
        if status is not None:
            self.context.setdefault("status", status)
