from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, Literal

import httpx
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .config import build_api_base_url, build_token_url
from .exceptions import ErrorType, PegaMCPError

# =============================================================================
# NORMALIZED CLIENT RESULT
# =============================================================================
# Every PegaClient operation returns a Result - HTTP failures are data, not
# exceptions.


class ErrorInfo(BaseModel):
    """Error branch of a Result."""

    type: ErrorType = Field(..., description="Error kind from the closed taxonomy")
    message: str = Field(..., description="Short human-readable summary")
    details: str | None = Field(None, description="Server or transport detail text")
    status: int | None = Field(None, description="HTTP status, when a response exists")
    error_details: list[dict[str, Any]] | None = Field(
        None, description="Pega errorDetails array, preserved verbatim"
    )


class Result(BaseModel):
    """Normalized outcome of a DX API operation."""

    success: bool
    data: Any | None = None
    etag: str | None = Field(None, description="eTag for optimistic locking")
    status: int | None = None
    error: ErrorInfo | None = None

    @model_validator(mode="after")
    def _one_branch(self) -> "Result":
        if self.success and self.error is not None:
            raise ValueError("successful Result must not carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed Result must carry an error")
        if not self.success and self.data is not None:
            raise ValueError("failed Result must not carry data")
        return self

    @classmethod
    def ok(
        cls, data: Any = None, *, etag: str | None = None, status: int | None = None
    ) -> "Result":
        return cls(success=True, data=data, etag=etag, status=status)

    @classmethod
    def fail(
        cls,
        error_type: ErrorType,
        message: str,
        *,
        details: str | None = None,
        status: int | None = None,
        error_details: list[dict[str, Any]] | None = None,
    ) -> "Result":
        return cls(
            success=False,
            status=status,
            error=ErrorInfo(
                type=error_type,
                message=message,
                details=details,
                status=status,
                error_details=error_details,
            ),
        )


# =============================================================================
# AUTHENTICATION MODELS
# =============================================================================


class AuthMode(StrEnum):
    """How a session obtains its bearer token."""

    OAUTH = "oauth"
    TOKEN = "token"


class CachedToken(BaseModel):
    """A bearer token owned by exactly one session.

    Immutable - a refresh replaces the whole entry in the TokenCache.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., repr=False)
    issued_at: datetime
    expires_at: datetime | None = Field(
        None, description="None only for a direct token supplied without expiry"
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once expires_at has passed."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at

    def needs_refresh(self, buffer_seconds: float, now: datetime | None = None) -> bool:
        """True once within buffer_seconds of expiry.

        The buffer is capped at half the token lifetime so that short-lived
        tokens are still reused.
        """
        if self.expires_at is None:
            return False
        lifetime = (self.expires_at - self.issued_at).total_seconds()
        buffer = min(buffer_seconds, max(lifetime, 0) / 2)
        return (now or datetime.now(UTC)) >= self.expires_at - timedelta(seconds=buffer)


class TokenInfo(BaseModel):
    """Diagnostic snapshot of a session's token state (never the token itself)."""

    auth_mode: AuthMode
    cache_key: str
    has_token: bool
    is_expired: bool
    expires_at: datetime | None = None
    expires_in_minutes: int = 0
    config_source: Literal["environment", "session"]


class SessionCredentials(BaseModel):
    """Inline credentials a tool call may carry instead of the environment defaults.

    Accepts the camelCase keys used on the wire (baseUrl, clientId, ...) as
    well as snake_case names.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    session_id: str | None = Field(None, description="Optional stable session ID")
    base_url: str | None = Field(None, description="Pega base URL")
    api_version: str | None = Field(None, description="API version, defaults to v2")
    client_id: str | None = Field(None, description="OAuth2 client ID (oauth mode)")
    client_secret: str | None = Field(
        None, repr=False, description="OAuth2 client secret (oauth mode)"
    )
    access_token: str | None = Field(
        None, repr=False, description="Direct access token (token mode)"
    )
    token_expiry: float | None = Field(
        None, gt=0, description="Token expiry in seconds from now (token mode)"
    )

    @model_validator(mode="after")
    def _exactly_one_mode(self) -> "SessionCredentials":
        if not self.base_url:
            raise ValueError("baseUrl is required and must be a non-empty string")
        has_oauth = bool(self.client_id and self.client_secret)
        has_token = bool(self.access_token)
        if not has_oauth and not has_token:
            raise ValueError("Either provide clientId+clientSecret or accessToken")
        if has_oauth and has_token:
            raise ValueError("Cannot provide both OAuth credentials and access token")
        return self

    @computed_field
    @property
    def auth_mode(self) -> AuthMode:
        return AuthMode.TOKEN if self.access_token else AuthMode.OAUTH


class Session(BaseModel):
    """A logical authentication context: one base URL, one credential set.

    Not an HTTP session - the token itself lives in the TokenCache under
    session_id.
    """

    session_id: str = Field(..., description="Derived cache key")
    base_url: str
    auth_mode: AuthMode
    api_version: str
    client_id: str | None = None
    client_secret: str | None = Field(None, repr=False)
    access_token: str | None = Field(None, repr=False)
    token_expires_at: datetime | None = None
    source: Literal["environment", "session"] = "environment"
    fingerprint: str | None = Field(None, description="Hash of the credential set")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_accessed: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field
    @property
    def token_url(self) -> str:
        """URL of the OAuth2 token endpoint."""
        return build_token_url(self.base_url)

    @computed_field
    @property
    def api_base_url(self) -> str:
        """Version-aware base URL for DX API requests."""
        return build_api_base_url(self.base_url, self.api_version)

    def touch(self) -> None:
        self.last_accessed = datetime.now(UTC)

    def is_stale(self, ttl_seconds: float, now: datetime | None = None) -> bool:
        """True when idle past ttl_seconds or holding an expired direct token."""
        now = now or datetime.now(UTC)
        if now - self.last_accessed > timedelta(seconds=ttl_seconds):
            return True
        return (
            self.auth_mode == AuthMode.TOKEN
            and self.token_expires_at is not None
            and now >= self.token_expires_at
        )


# =============================================================================
# UNIFIED TOOL RESPONSE MODEL
# =============================================================================
# Single response type for all MCP tools

_SUGGESTIONS_BY_ERROR_TYPE = {
    ErrorType.NOT_FOUND: [
        "Verify the ID is correct and the resource exists in the system"
    ],
    ErrorType.FORBIDDEN: [
        "Check that the operator has the privileges needed for this resource"
    ],
    ErrorType.UNAUTHORIZED: [
        "The token was rejected after one refresh - verify the credentials are still valid"
    ],
    ErrorType.BAD_REQUEST: ["Check the parameters and their format"],
    ErrorType.CONFLICT: [
        "The case was modified concurrently - fetch a fresh eTag and retry"
    ],
    ErrorType.PRECONDITION_FAILED: [
        "The eTag is stale - call get_case or get_case_action to obtain a fresh eTag"
    ],
    ErrorType.LOCKED: [
        "The case is locked by another operator - retry later or release the lock"
    ],
    ErrorType.VALIDATION_FAIL: ["Review errorDetails for the fields that failed"],
    ErrorType.TOO_MANY_REQUESTS: ["Wait before retrying the request"],
    ErrorType.CONNECTION_ERROR: [
        "Verify the Pega instance URL and network connectivity"
    ],
    ErrorType.INTERNAL_SERVER_ERROR: [
        "The Pega Platform encountered an internal error - try again or contact support"
    ],
    ErrorType.AUTHENTICATION_ERROR: [
        "Verify baseUrl is correct and accessible",
        "Check clientId and clientSecret, or supply a fresh accessToken",
        "Ensure the OAuth2 client registration exists in Pega Infinity",
    ],
    ErrorType.CONFIG_ERROR: [
        "Set PEGA_BASE_URL, PEGA_CLIENT_ID and PEGA_CLIENT_SECRET",
        "Or pass sessionCredentials with baseUrl plus clientId+clientSecret or accessToken",
    ],
    ErrorType.NOT_IMPLEMENTED: [
        "Switch PEGA_API_VERSION (or sessionCredentials.apiVersion) to a version that supports this operation"
    ],
}


class Response(BaseModel):
    """Unified response type for all MCP tools."""

    status: Literal["success", "error"] = Field(
        ..., description="Response status indicating outcome"
    )
    message: str = Field(..., description="Human-readable summary of the response")
    data: Any | None = Field(
        None,
        description="Response payload - can be dict, pydantic model, or any serializable type",
    )
    errors: list[str] = Field(
        default_factory=list, description="List of error messages"
    )
    suggestions: list[str] = Field(
        default_factory=list, description="Actionable suggestions for the user"
    )
    metadata: dict[str, Any] | None = Field(
        None, description="Additional context and domain-specific information"
    )

    @classmethod
    def from_result(
        cls,
        result: Result,
        message: str,
        *,
        suggestions: list[str] | None = None,
    ) -> "Response":
        """Create Response from a client Result.

        Args:
            result: Result returned by a PegaClient operation
            message: Summary used on success
            suggestions: Suggestions used on success

        Returns:
            Response carrying the data (and eTag) or the normalized error
        """
        if result.success:
            metadata = {}
            if result.etag:
                metadata["eTag"] = result.etag
            if result.status is not None:
                metadata["status_code"] = result.status
            return cls(
                status="success",
                message=message,
                data=result.data,
                suggestions=suggestions or [],
                metadata=metadata or None,
            )

        error = result.error
        errors = [error.details] if error.details else []
        for detail in error.error_details or []:
            text = detail.get("localizedValue") or detail.get("message")
            if text and str(text) not in errors:
                errors.append(str(text))
        metadata = {"error_type": str(error.type)}
        if error.status is not None:
            metadata["status_code"] = error.status
        if error.error_details:
            metadata["errorDetails"] = error.error_details
        return cls(
            status="error",
            message=error.message,
            errors=errors,
            suggestions=_SUGGESTIONS_BY_ERROR_TYPE.get(
                error.type, ["Check the parameters and try again"]
            ),
            metadata=metadata,
        )

    @classmethod
    def from_error(cls, error: Exception) -> "Response":
        """Create Response from any Exception, with potentially helpful info for recovery.

        Args:
            error: Any Exception instance

        Returns:
            Response object with error details
        """
        if isinstance(error, PegaMCPError):
            # Use rich context from PegaMCPError
            return cls(
                status="error",
                message=error.message,
                errors=error.errors,
                suggestions=error.suggestions
                or _SUGGESTIONS_BY_ERROR_TYPE.get(error.error_type, []),
                metadata={
                    **error.context,
                    "error_type": str(error.error_type),
                    "exception_type": type(error).__name__,
                },
            )
        elif isinstance(error, httpx.RequestError):
            # Network/connection errors
            metadata = {
                "error_type": str(ErrorType.CONNECTION_ERROR),
                "exception_type": type(error).__name__,
            }
            request = getattr(error, "_request", None)
            if request is not None:
                metadata["url"] = str(request.url)

            return cls(
                status="error",
                message=f"Network error: {str(error)}",
                errors=[str(error)],
                suggestions=_SUGGESTIONS_BY_ERROR_TYPE[ErrorType.CONNECTION_ERROR],
                metadata=metadata,
            )
        else:
            # Generic exception handling
            return cls(
                status="error",
                message=f"Unexpected error: {str(error)}",
                errors=[str(error)],
                suggestions=[
                    "Check server logs for detailed information",
                    "Try again - this may be a temporary issue",
                ],
                metadata={"exception_type": type(error).__name__},
            )
