"""Tests for data models and the tool Response"""

from datetime import UTC, datetime, timedelta

import httpx
import pytest
from pydantic import ValidationError

from pega_mcp.exceptions import AuthenticationError, ConfigError, ErrorType
from pega_mcp.models import (
    AuthMode,
    CachedToken,
    ErrorInfo,
    Response,
    Result,
    Session,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class TestResult:
    """Result invariants"""

    def test_ok(self):
        result = Result.ok({"id": 1}, etag="e1", status=200)

        assert result.success is True
        assert result.error is None
        assert result.etag == "e1"

    def test_fail(self):
        result = Result.fail(ErrorType.NOT_FOUND, "Resource not found", status=404)

        assert result.success is False
        assert result.data is None
        assert result.error.type == ErrorType.NOT_FOUND
        assert result.error.status == 404

    def test_failure_requires_error(self):
        with pytest.raises(ValidationError):
            Result(success=False)

    def test_failure_rejects_data(self):
        with pytest.raises(ValidationError):
            Result(
                success=False,
                data={"x": 1},
                error=ErrorInfo(type=ErrorType.CONFLICT, message="Conflict"),
            )

    def test_success_rejects_error(self):
        with pytest.raises(ValidationError):
            Result(success=True, error=ErrorInfo(type=ErrorType.CONFLICT, message="Conflict"))


class TestCachedToken:
    """Expiry arithmetic"""

    def _token(self, lifetime_seconds: int) -> CachedToken:
        return CachedToken(
            token="t", issued_at=NOW, expires_at=NOW + timedelta(seconds=lifetime_seconds)
        )

    def test_is_expired(self):
        token = self._token(3600)

        assert token.is_expired(NOW + timedelta(seconds=3599)) is False
        assert token.is_expired(NOW + timedelta(seconds=3600)) is True

    def test_needs_refresh_inside_buffer(self):
        token = self._token(3600)

        assert token.needs_refresh(300, NOW + timedelta(seconds=3299)) is False
        assert token.needs_refresh(300, NOW + timedelta(seconds=3300)) is True

    def test_buffer_capped_at_half_lifetime(self):
        token = self._token(60)

        assert token.needs_refresh(300, NOW + timedelta(seconds=10)) is False
        assert token.needs_refresh(300, NOW + timedelta(seconds=30)) is True

    def test_no_expiry_never_expires(self):
        token = CachedToken(token="t", issued_at=NOW)

        assert token.is_expired(NOW + timedelta(days=365)) is False
        assert token.needs_refresh(300, NOW + timedelta(days=365)) is False

    def test_frozen_and_token_hidden(self):
        token = self._token(60)

        with pytest.raises(ValidationError):
            token.token = "other"
        assert "token=" not in repr(token)


class TestSession:
    def _session(self, **kwargs) -> Session:
        defaults = {
            "session_id": "session_s1",
            "base_url": "https://x",
            "auth_mode": AuthMode.TOKEN,
            "api_version": "v2",
            "access_token": "tok",
            "source": "session",
            "created_at": NOW,
            "last_accessed": NOW,
        }
        return Session(**{**defaults, **kwargs})

    def test_urls(self):
        session = self._session(api_version="v1")

        assert session.token_url == "https://x/prweb/PRRestService/oauth2/v1/token"
        assert session.api_base_url == "https://x/prweb/api/v1"

    def test_is_stale_after_ttl(self):
        session = self._session()

        assert session.is_stale(7200, NOW + timedelta(seconds=7200)) is False
        assert session.is_stale(7200, NOW + timedelta(seconds=7201)) is True

    def test_is_stale_with_expired_direct_token(self):
        session = self._session(token_expires_at=NOW + timedelta(seconds=60))

        assert session.is_stale(7200, NOW + timedelta(seconds=61)) is True

    def test_secrets_not_in_repr(self):
        session = self._session(access_token="very-secret-token")
        assert "very-secret-token" not in repr(session)


class TestResponse:
    """Test the Response model"""

    @pytest.mark.parametrize(
        "test_case",
        [
            {
                "name": "success_with_etag",
                "result": Result.ok({"id": "C-1"}, etag="e1", status=200),
                "expected": {
                    "status": "success",
                    "message": "Done",
                    "data": {"id": "C-1"},
                    "errors": [],
                    "metadata": {"eTag": "e1", "status_code": 200},
                },
            },
            {
                "name": "success_without_metadata",
                "result": Result.ok({"id": "C-1"}),
                "expected": {"status": "success", "metadata": None},
            },
            {
                "name": "error_with_details",
                "result": Result.fail(
                    ErrorType.PRECONDITION_FAILED,
                    "Precondition failed - eTag does not match",
                    details="Stale",
                    status=412,
                    error_details=[{"message": "pyCaseNotFound", "localizedValue": "Case not found"}],
                ),
                "expected": {
                    "status": "error",
                    "message": "Precondition failed - eTag does not match",
                    "data": None,
                    "errors": ["Stale", "Case not found"],
                },
            },
        ],
    )
    def test_from_result(self, test_case):
        response = Response.from_result(test_case["result"], "Done")

        for attr, expected_value in test_case["expected"].items():
            actual_value = getattr(response, attr)
            assert (
                actual_value == expected_value
            ), f"{test_case['name']}: expected {attr}={expected_value}, got {actual_value}"

    def test_from_result_error_metadata(self):
        result = Result.fail(
            ErrorType.LOCKED, "Resource is locked", status=423, error_details=[{"message": "x"}]
        )
        response = Response.from_result(result, "ignored")

        assert response.metadata["error_type"] == "LOCKED"
        assert response.metadata["status_code"] == 423
        assert response.metadata["errorDetails"] == [{"message": "x"}]
        assert response.suggestions

    def test_from_error_pega_error(self):
        error = ConfigError("Missing baseUrl", errors=["Missing PEGA_BASE_URL"])
        response = Response.from_error(error)

        assert response.status == "error"
        assert response.errors == ["Missing PEGA_BASE_URL"]
        assert response.metadata["error_type"] == "CONFIG_ERROR"
        assert response.metadata["exception_type"] == "ConfigError"
        assert response.suggestions

    def test_from_error_authentication_context(self):
        error = AuthenticationError("OAuth2 token request failed: 401", status=401)
        response = Response.from_error(error)

        assert response.metadata["status"] == 401
        assert response.metadata["error_type"] == "AUTHENTICATION_ERROR"

    def test_from_error_network(self):
        request = httpx.Request("GET", "https://x/prweb/api/application/v2/casetypes")
        response = Response.from_error(httpx.ConnectError("refused", request=request))

        assert response.metadata["error_type"] == "CONNECTION_ERROR"
        assert response.metadata["url"] == "https://x/prweb/api/application/v2/casetypes"

    def test_from_error_network_without_request(self):
        response = Response.from_error(httpx.ConnectError("refused"))

        assert "url" not in response.metadata

    def test_from_error_generic(self):
        response = Response.from_error(RuntimeError("boom"))

        assert response.message == "Unexpected error: boom"
        assert response.metadata == {"exception_type": "RuntimeError"}
