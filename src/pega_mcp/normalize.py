"""Map raw DX API responses and transport failures onto Result.

Pega error bodies come in two shapes:

V2 (Constellation DX API):
    {
      "errorClassification": "Precondition failed",
      "localizedValue": "The case has been modified by another operator",
      "errorDetails": [
        {"message": "pyCaseNotFound", "localizedValue": "...", "messageParameters": [...]}
      ]
    }

V1 (Traditional DX API):
    {
      "pxObjClass": "Pega-API-CaseManagement",
      "errors": [{"ID": "Pega_API_019", "message": "Insufficient privilege"}]
    }
"""

import logging
from typing import Any

import httpx

from .exceptions import ErrorType, PegaMCPError
from .models import Result

logger = logging.getLogger("pega-mcp.normalize")

ERROR_TYPES_BY_STATUS: dict[int, ErrorType] = {
    400: ErrorType.BAD_REQUEST,
    401: ErrorType.UNAUTHORIZED,
    403: ErrorType.FORBIDDEN,
    404: ErrorType.NOT_FOUND,
    409: ErrorType.CONFLICT,
    412: ErrorType.PRECONDITION_FAILED,
    422: ErrorType.VALIDATION_FAIL,
    423: ErrorType.LOCKED,
    424: ErrorType.FAILED_DEPENDENCY,
    429: ErrorType.TOO_MANY_REQUESTS,
    500: ErrorType.INTERNAL_SERVER_ERROR,
    501: ErrorType.NOT_IMPLEMENTED,
}

ERROR_MESSAGES: dict[ErrorType, str] = {
    ErrorType.BAD_REQUEST: "Invalid request parameters",
    ErrorType.UNAUTHORIZED: "Authentication failed",
    ErrorType.FORBIDDEN: "Access denied - insufficient privileges",
    ErrorType.NOT_FOUND: "Resource not found",
    ErrorType.CONFLICT: "Conflict - the resource was modified concurrently",
    ErrorType.PRECONDITION_FAILED: "Precondition failed - eTag does not match",
    ErrorType.VALIDATION_FAIL: "Validation failed",
    ErrorType.LOCKED: "Resource is locked",
    ErrorType.FAILED_DEPENDENCY: "Failed dependency",
    ErrorType.TOO_MANY_REQUESTS: "Too many requests",
    ErrorType.INTERNAL_SERVER_ERROR: "Internal server error",
    ErrorType.NOT_IMPLEMENTED: "Not implemented",
    ErrorType.CONNECTION_ERROR: "Failed to connect to Pega API",
}

EMPTY_BODY_MESSAGE = "Operation completed successfully"


def error_type_for_status(status_code: int) -> ErrorType:
    """Map an HTTP status onto the taxonomy; unmapped statuses are CONNECTION_ERROR."""
    return ERROR_TYPES_BY_STATUS.get(status_code, ErrorType.CONNECTION_ERROR)


def normalize_response(response: httpx.Response) -> Result:
    """Turn any HTTP response into a Result."""
    if response.is_success:
        data = _parse_body(response)
        return Result.ok(data, etag=extract_etag(response, data), status=response.status_code)

    error_type = error_type_for_status(response.status_code)
    body = _parse_json(response)
    details, error_details = _error_payload(body, response)

    logger.debug(f"HTTP {response.status_code} normalized as {error_type}")
    message = ERROR_MESSAGES.get(error_type)
    if error_type == ErrorType.CONNECTION_ERROR:
        message = f"Unexpected HTTP {response.status_code} response"
    return Result.fail(
        error_type,
        message,
        details=details,
        status=response.status_code,
        error_details=error_details,
    )


def normalize_exception(error: Exception) -> Result:
    """Turn a failure that produced no usable HTTP response into a Result.

    Raises:
        The error itself when it is neither a PegaMCPError nor an httpx transport error.
    """
    if isinstance(error, PegaMCPError):
        details = "; ".join(error.errors) or None
        return Result.fail(
            error.error_type,
            error.message,
            details=details,
            status=getattr(error, "status", None),
        )
    if isinstance(error, httpx.TimeoutException):
        return Result.fail(
            ErrorType.CONNECTION_ERROR,
            ERROR_MESSAGES[ErrorType.CONNECTION_ERROR],
            details=f"Request timed out: {error}",
        )
    if isinstance(error, httpx.RequestError):
        return Result.fail(
            ErrorType.CONNECTION_ERROR,
            ERROR_MESSAGES[ErrorType.CONNECTION_ERROR],
            details=str(error) or type(error).__name__,
        )
    raise error


def extract_etag(response: httpx.Response, data: Any = None) -> str | None:
    """eTag from the ETag header, falling back to an eTag field in the body."""
    etag = response.headers.get("etag")
    if etag:
        return etag
    if isinstance(data, dict):
        return data.get("eTag") or data.get("etag")
    return None


def _parse_body(response: httpx.Response) -> Any:
    # Empty or non-JSON bodies are common for DELETE and PUT (204)
    content_type = response.headers.get("content-type", "")
    if response.content and "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.warning("Unparseable JSON body in successful response")
            return {"message": EMPTY_BODY_MESSAGE}
    text = response.text
    return {"message": text if text else EMPTY_BODY_MESSAGE}


def _parse_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_payload(
    body: Any, response: httpx.Response
) -> tuple[str | None, list[dict[str, Any]] | None]:
    """Pull (details, errorDetails) out of a V2 or V1 error body.

    Only string fields are used as details; errorDetails is kept as sent.
    """
    if not isinstance(body, dict):
        return (response.text or response.reason_phrase or None), None

    error_details = _dict_entries(body.get("errorDetails"))
    if error_details:
        details = _text(body.get("localizedValue")) or _first_message(error_details)
        return details or response.reason_phrase or None, error_details

    v1_errors = _dict_entries(body.get("errors"))
    if v1_errors:
        return _first_message(v1_errors) or response.reason_phrase or None, v1_errors

    details = (
        _text(body.get("localizedValue")) or _text(body.get("message")) or response.reason_phrase
    )
    return details or None, None


def _first_message(entries: list[dict[str, Any]]) -> str | None:
    first = entries[0]
    return _text(first.get("localizedValue")) or _text(first.get("message"))


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _dict_entries(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]
