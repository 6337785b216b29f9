"""Pega client - authenticated DX API calls normalized into Results."""

import functools
import logging
import time
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from .consts import TOKEN_PREFIX_LENGTH
from .exceptions import ErrorType, PegaMCPError
from .models import AuthMode, Result, Session
from .normalize import normalize_exception, normalize_response
from .protocols import TokenProvider

logger = logging.getLogger("pega-mcp.client")


def _segment(value: str) -> str:
    """Percent-encode a path segment; case handles contain spaces."""
    return quote(str(value).strip(), safe="")


def _drop_none(values: dict[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (values or {}).items() if v is not None}


def requires_api_version(version: str):
    """Return NOT_IMPLEMENTED without any network call on the other API version."""

    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self: "PegaClient", *args, **kwargs) -> Result:
            if self.api_version != version:
                return self._unsupported(method.__name__, version)
            return await method(self, *args, **kwargs)

        return wrapper

    return decorator


class PegaClient:
    """Pega DX API client with authentication.

    Responsibilities:
    - Inject the session's bearer token and build versioned URLs
    - Refresh and retry exactly once when a request answers 401
    - Normalize every outcome (HTTP or transport) into a Result

    The DX helpers below are thin: they only encode path, verb and body shape.
    """

    def __init__(
        self,
        session: Session,
        token_provider: TokenProvider,
        http_client: httpx.AsyncClient,
        *,
        timeout_seconds: float | None = None,
    ):
        """Initialize PegaClient.

        Args:
            session: Session whose base URL and API version are used.
            token_provider: Source of bearer tokens for the session.
            http_client: Shared HTTP client.
            timeout_seconds: Default per-request timeout. If None, the
                http_client's own timeout applies.
        """
        self.session = session
        self.token_provider = token_provider
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds

        logger.info(
            f"Pega client created for {session.base_url} "
            f"(API {session.api_version}, {token_provider.auth_mode} mode, "
            f"{session.source} config)"
        )

    @property
    def api_version(self) -> str:
        return self.session.api_version

    # ========================================================================
    # CORE REQUEST
    # ========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        etag: str | None = None,
        files: Any = None,
        timeout: float | None = None,
    ) -> Result:
        """Issue an authenticated DX API request.

        Args:
            method: HTTP verb.
            path: Path below the versioned API base URL, e.g. "/cases/ID".
            json: JSON body.
            params: Query parameters; None values are dropped.
            headers: Extra headers.
            etag: Sent as If-Match for optimistic locking.
            files: Multipart files (httpx format).
            timeout: Per-request timeout in seconds.

        Returns:
            Result - never raises for HTTP or transport failures.
        """
        url = f"{self.session.api_base_url}{path}"
        request_headers = {"Accept": "application/json", **(headers or {})}
        if etag:
            request_headers["If-Match"] = etag

        kwargs: dict[str, Any] = {"params": _drop_none(params), "headers": request_headers}
        if json is not None:
            kwargs["json"] = json
        if files is not None:
            kwargs["files"] = files
        effective_timeout = timeout or self.timeout_seconds
        if effective_timeout:
            kwargs["timeout"] = effective_timeout

        try:
            response = await self._send_with_reauth(method, url, kwargs)
        except (PegaMCPError, httpx.RequestError) as e:
            logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
            return normalize_exception(e)

        return normalize_response(response)

    async def _send_with_reauth(
        self, method: str, url: str, kwargs: dict[str, Any]
    ) -> httpx.Response:
        token = await self.token_provider.get_access_token()
        response = await self._send(method, url, token, kwargs)

        if (
            response.status_code == 401
            and self.token_provider.auth_mode == AuthMode.OAUTH
        ):
            logger.info(f"{method} {url} returned 401 - refreshing token and retrying once")
            self.token_provider.invalidate()
            token = await self.token_provider.get_access_token()
            response = await self._send(method, url, token, kwargs)

        return response

    async def _send(
        self, method: str, url: str, token: str, kwargs: dict[str, Any]
    ) -> httpx.Response:
        headers = {**kwargs["headers"], "Authorization": f"Bearer {token}"}
        logger.debug(f"{method} {url}")
        response = await self.http_client.request(
            method, url, **{**kwargs, "headers": headers}
        )
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    def _unsupported(self, operation: str, required_version: str) -> Result:
        return Result.fail(
            ErrorType.NOT_IMPLEMENTED,
            f"{operation}() is not available in DX API {self.api_version}",
            details=(
                f"This operation requires DX API {required_version}. "
                f"Set PEGA_API_VERSION={required_version} or pass "
                f"apiVersion='{required_version}' in sessionCredentials."
            ),
        )

    # ========================================================================
    # CONNECTIVITY
    # ========================================================================

    async def ping(self) -> Result:
        """Verify authentication by acquiring a token; reports timing and token diagnostics."""
        started = time.perf_counter()
        try:
            token = await self.token_provider.get_access_token()
        except (PegaMCPError, httpx.RequestError) as e:
            logger.warning(f"Ping failed for {self.session.base_url}: {e}")
            return normalize_exception(e)

        duration_ms = round((time.perf_counter() - started) * 1000)
        token_info = self.token_provider.get_token_info()
        return Result.ok(
            {
                "timestamp": datetime.now(UTC).isoformat(),
                "duration_ms": duration_ms,
                "configuration": {
                    "base_url": self.session.base_url,
                    "api_version": self.api_version,
                    "api_base_url": self.session.api_base_url,
                    "token_url": (
                        self.session.token_url
                        if token_info.auth_mode == AuthMode.OAUTH
                        else "Direct Token"
                    ),
                    "auth_mode": str(token_info.auth_mode),
                    "config_source": token_info.config_source,
                },
                "token": {
                    "type": "Bearer",
                    "length": len(token),
                    "prefix": token[:TOKEN_PREFIX_LENGTH] + "...",
                    "expires_in_minutes": token_info.expires_in_minutes,
                },
            }
        )

    # ========================================================================
    # OPTIMISTIC LOCKING
    # ========================================================================

    async def read_current_etag(self, case_id: str, action_id: str | None = None) -> Result:
        """First half of a read-then-write: fetch the case's current eTag.

        Reads the case action when action_id is given, else the case. The
        returned Result carries the eTag; a successful read without one is
        reported as PRECONDITION_FAILED. Nothing prevents another operator
        from modifying the case before the write - the write then fails with
        PRECONDITION_FAILED or CONFLICT and is not retried.
        """
        if action_id:
            result = await self.get_case_action(
                case_id, action_id, view_type="form", exclude_additional_actions=True
            )
        else:
            result = await self.get_case(case_id)

        if result.success and not result.etag:
            return Result.fail(
                ErrorType.PRECONDITION_FAILED,
                "eTag required for this update but none was returned",
                details=(
                    f"Reading case {case_id} succeeded without an eTag header; "
                    "the server may not support optimistic locking for this resource."
                ),
            )
        if result.success:
            logger.debug(f"Fetched eTag {result.etag} for case {case_id}")
        return result

    # ========================================================================
    # CASES
    # ========================================================================

    @requires_api_version("v1")
    async def get_all_cases(self) -> Result:
        return await self.request("GET", "/cases")

    async def create_case(
        self,
        case_type_id: str,
        *,
        content: dict[str, Any] | None = None,
        page_instructions: list[dict] | None = None,
        attachments: list[dict] | None = None,
        parent_case_id: str | None = None,
        process_id: str | None = None,
        view_type: str | None = None,
        page_name: str | None = None,
    ) -> Result:
        body = _drop_none(
            {
                "caseTypeID": case_type_id,
                "processID": process_id,
                "parentCaseID": parent_case_id,
                "content": content,
                "pageInstructions": page_instructions,
                "attachments": attachments,
            }
        )
        return await self.request(
            "POST",
            "/cases",
            json=body,
            params={"viewType": view_type, "pageName": page_name},
        )

    async def get_case(
        self,
        case_id: str,
        *,
        view_type: str | None = None,
        page_name: str | None = None,
        origin_channel: str | None = None,
    ) -> Result:
        headers = {"x-origin-channel": origin_channel} if origin_channel else None
        return await self.request(
            "GET",
            f"/cases/{_segment(case_id)}",
            params={"viewType": view_type, "pageName": page_name},
            headers=headers,
        )

    @requires_api_version("v1")
    async def update_case(
        self,
        case_id: str,
        content: dict[str, Any],
        *,
        etag: str | None = None,
        action_id: str | None = None,
        page_instructions: list[dict] | None = None,
        attachments: list[dict] | None = None,
    ) -> Result:
        """PUT /cases/{ID}. Reads the current eTag first when none is given."""
        if not etag:
            read = await self.read_current_etag(case_id)
            if not read.success:
                return read
            etag = read.etag

        body = _drop_none(
            {
                "content": content,
                "pageInstructions": page_instructions or None,
                "attachments": attachments or None,
            }
        )
        return await self.request(
            "PUT",
            f"/cases/{_segment(case_id)}",
            json=body,
            params={"actionID": action_id},
            headers={"x-origin-channel": "Web"},
            etag=etag,
        )

    async def delete_case(self, case_id: str) -> Result:
        return await self.request("DELETE", f"/cases/{_segment(case_id)}")

    async def get_case_view(self, case_id: str, view_id: str) -> Result:
        return await self.request(
            "GET", f"/cases/{_segment(case_id)}/views/{_segment(view_id)}"
        )

    @requires_api_version("v2")
    async def get_case_stages(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/stages")

    @requires_api_version("v2")
    async def get_case_descendants(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/descendants")

    @requires_api_version("v2")
    async def get_case_ancestors(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/ancestors")

    async def get_case_action(
        self,
        case_id: str,
        action_id: str,
        *,
        view_type: str | None = None,
        exclude_additional_actions: bool | None = None,
    ) -> Result:
        return await self.request(
            "GET",
            f"/cases/{_segment(case_id)}/actions/{_segment(action_id)}",
            params={
                "viewType": view_type,
                "excludeAdditionalActions": exclude_additional_actions,
            },
        )

    @requires_api_version("v2")
    async def perform_case_action(
        self,
        case_id: str,
        action_id: str,
        *,
        etag: str | None = None,
        content: dict[str, Any] | None = None,
        page_instructions: list[dict] | None = None,
        attachments: list[dict] | None = None,
        view_type: str | None = None,
        origin_channel: str | None = None,
    ) -> Result:
        """PATCH /cases/{ID}/actions/{actionID}. Reads the current eTag first when none is given."""
        if not etag:
            read = await self.read_current_etag(case_id, action_id)
            if not read.success:
                return read
            etag = read.etag

        body = _drop_none(
            {
                "content": content,
                "pageInstructions": page_instructions,
                "attachments": attachments,
            }
        )
        headers = {"x-origin-channel": origin_channel} if origin_channel else None
        return await self.request(
            "PATCH",
            f"/cases/{_segment(case_id)}/actions/{_segment(action_id)}",
            json=body,
            params={"viewType": view_type},
            headers=headers,
            etag=etag,
        )

    @requires_api_version("v2")
    async def refresh_case_action(
        self,
        case_id: str,
        action_id: str,
        etag: str,
        *,
        content: dict[str, Any] | None = None,
        page_instructions: list[dict] | None = None,
        refresh_for: str | None = None,
    ) -> Result:
        body = _drop_none({"content": content, "pageInstructions": page_instructions})
        return await self.request(
            "PATCH",
            f"/cases/{_segment(case_id)}/actions/{_segment(action_id)}/refresh",
            json=body,
            params={"refreshFor": refresh_for},
            etag=etag,
        )

    @requires_api_version("v2")
    async def release_case_lock(self, case_id: str, *, view_type: str | None = None) -> Result:
        return await self.request(
            "DELETE",
            f"/cases/{_segment(case_id)}/updates",
            params={"viewType": view_type},
        )

    @requires_api_version("v2")
    async def change_to_next_stage(
        self, case_id: str, etag: str, *, view_type: str | None = None
    ) -> Result:
        return await self.request(
            "POST",
            f"/cases/{_segment(case_id)}/stages/next",
            params={"viewType": view_type},
            etag=etag,
        )

    @requires_api_version("v2")
    async def change_to_stage(
        self, case_id: str, stage_id: str, etag: str, *, view_type: str | None = None
    ) -> Result:
        return await self.request(
            "PUT",
            f"/cases/{_segment(case_id)}/stages/{_segment(stage_id)}",
            params={"viewType": view_type},
            etag=etag,
        )

    @requires_api_version("v2")
    async def add_optional_process(
        self, case_id: str, process_id: str, *, view_type: str | None = None
    ) -> Result:
        return await self.request(
            "POST",
            f"/cases/{_segment(case_id)}/processes/{_segment(process_id)}",
            params={"viewType": view_type},
        )

    # ========================================================================
    # CASE TYPES
    # ========================================================================

    async def get_case_types(self) -> Result:
        return await self.request("GET", "/casetypes")

    async def get_case_type_action(self, case_type_id: str, action_id: str) -> Result:
        return await self.request(
            "GET",
            f"/casetypes/{_segment(case_type_id)}/actions/{_segment(action_id)}",
        )

    # ========================================================================
    # ASSIGNMENTS
    # ========================================================================

    @requires_api_version("v1")
    async def get_all_assignments(self) -> Result:
        return await self.request("GET", "/assignments")

    async def get_next_assignment(self, *, view_type: str | None = None) -> Result:
        return await self.request(
            "GET", "/assignments/next", params={"viewType": view_type}
        )

    async def get_assignment(
        self, assignment_id: str, *, view_type: str | None = None
    ) -> Result:
        return await self.request(
            "GET",
            f"/assignments/{_segment(assignment_id)}",
            params={"viewType": view_type},
        )

    async def get_assignment_action(
        self, assignment_id: str, action_id: str, *, view_type: str | None = None
    ) -> Result:
        return await self.request(
            "GET",
            f"/assignments/{_segment(assignment_id)}/actions/{_segment(action_id)}",
            params={"viewType": view_type},
        )

    @requires_api_version("v2")
    async def perform_assignment_action(
        self,
        assignment_id: str,
        action_id: str,
        etag: str,
        *,
        content: dict[str, Any] | None = None,
        page_instructions: list[dict] | None = None,
        attachments: list[dict] | None = None,
        view_type: str | None = None,
    ) -> Result:
        body = _drop_none(
            {
                "content": content,
                "pageInstructions": page_instructions,
                "attachments": attachments,
            }
        )
        return await self.request(
            "PATCH",
            f"/assignments/{_segment(assignment_id)}/actions/{_segment(action_id)}",
            json=body,
            params={"viewType": view_type},
            etag=etag,
        )

    # ========================================================================
    # ATTACHMENTS
    # ========================================================================

    async def get_case_attachments(
        self, case_id: str, *, include_thumbnails: bool | None = None
    ) -> Result:
        return await self.request(
            "GET",
            f"/cases/{_segment(case_id)}/attachments",
            params={"includeThumbnails": include_thumbnails},
        )

    async def add_case_attachments(self, case_id: str, attachments: list[dict]) -> Result:
        return await self.request(
            "POST",
            f"/cases/{_segment(case_id)}/attachments",
            json={"attachments": attachments},
        )

    async def get_case_attachment_categories(
        self, case_id: str, *, attachment_type: str | None = None
    ) -> Result:
        return await self.request(
            "GET",
            f"/cases/{_segment(case_id)}/attachment_categories",
            params={"type": attachment_type},
        )

    async def get_attachment(self, attachment_id: str) -> Result:
        return await self.request("GET", f"/attachments/{_segment(attachment_id)}")

    async def delete_attachment(self, attachment_id: str) -> Result:
        return await self.request("DELETE", f"/attachments/{_segment(attachment_id)}")

    async def upload_attachment(
        self,
        content: bytes,
        *,
        file_name: str,
        mime_type: str | None = None,
        append_unique_id_to_file_name: bool = True,
    ) -> Result:
        """Upload a file to temporary attachment storage; attach it with add_case_attachments."""
        files = {
            "content": (file_name, content, mime_type or "application/octet-stream")
        }
        return await self.request(
            "POST",
            "/attachments/upload",
            files=files,
            params={"appendUniqueIdToFileName": append_unique_id_to_file_name},
        )

    # ========================================================================
    # DATA VIEWS
    # ========================================================================

    async def get_data_view_metadata(self, data_view_id: str) -> Result:
        return await self.request(
            "GET", f"/data_views/{_segment(data_view_id)}/metadata"
        )

    async def get_list_data_view(
        self, data_view_id: str, request_body: dict[str, Any] | None = None
    ) -> Result:
        """Query a list data view.

        request_body may carry dataViewParameters, query, paging and
        useExtendedTimeout. V1 only understands dataViewParameters, sent as
        query parameters.
        """
        request_body = request_body or {}
        if self.api_version == "v1":
            return await self.request(
                "GET",
                f"/data/{_segment(data_view_id)}",
                params=request_body.get("dataViewParameters"),
            )
        return await self.request(
            "POST", f"/data_views/{_segment(data_view_id)}", json=request_body
        )

    @requires_api_version("v2")
    async def get_data_view_count(
        self, data_view_id: str, request_body: dict[str, Any] | None = None
    ) -> Result:
        return await self.request(
            "POST",
            f"/data_views/{_segment(data_view_id)}/count",
            json=request_body or {},
        )

    @requires_api_version("v2")
    async def get_data_objects(self, *, data_object_type: str | None = None) -> Result:
        return await self.request(
            "GET", "/data_objects", params={"type": data_object_type}
        )

    # ========================================================================
    # PARTICIPANTS
    # ========================================================================

    @requires_api_version("v2")
    async def get_case_participants(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/participants")

    @requires_api_version("v2")
    async def get_participant_roles(self, case_id: str) -> Result:
        return await self.request(
            "GET", f"/cases/{_segment(case_id)}/participant_roles"
        )

    @requires_api_version("v2")
    async def create_case_participant(
        self,
        case_id: str,
        etag: str,
        *,
        content: dict[str, Any] | None = None,
        participant_role_id: str | None = None,
        view_type: str | None = None,
    ) -> Result:
        body = _drop_none({"content": content, "ParticipantRoleID": participant_role_id})
        return await self.request(
            "POST",
            f"/cases/{_segment(case_id)}/participants",
            json=body,
            params={"viewType": view_type},
            etag=etag,
        )

    @requires_api_version("v2")
    async def delete_participant(
        self, case_id: str, participant_id: str, etag: str
    ) -> Result:
        return await self.request(
            "DELETE",
            f"/cases/{_segment(case_id)}/participants/{_segment(participant_id)}",
            etag=etag,
        )

    # ========================================================================
    # FOLLOWERS
    # ========================================================================

    @requires_api_version("v2")
    async def get_case_followers(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/followers")

    @requires_api_version("v2")
    async def add_case_followers(self, case_id: str, users: list[dict]) -> Result:
        return await self.request(
            "POST", f"/cases/{_segment(case_id)}/followers", json={"users": users}
        )

    @requires_api_version("v2")
    async def delete_case_follower(self, case_id: str, follower_id: str) -> Result:
        return await self.request(
            "DELETE",
            f"/cases/{_segment(case_id)}/followers/{_segment(follower_id)}",
        )

    # ========================================================================
    # TAGS
    # ========================================================================

    @requires_api_version("v2")
    async def get_case_tags(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/tags")

    @requires_api_version("v2")
    async def add_case_tags(self, case_id: str, tags: list[dict]) -> Result:
        return await self.request(
            "POST", f"/cases/{_segment(case_id)}/tags", json={"tags": tags}
        )

    @requires_api_version("v2")
    async def delete_case_tag(self, case_id: str, tag_id: str) -> Result:
        return await self.request(
            "DELETE", f"/cases/{_segment(case_id)}/tags/{_segment(tag_id)}"
        )

    # ========================================================================
    # RELATED CASES
    # ========================================================================

    @requires_api_version("v2")
    async def get_related_cases(self, case_id: str) -> Result:
        return await self.request("GET", f"/cases/{_segment(case_id)}/related_cases")

    @requires_api_version("v2")
    async def relate_cases(self, case_id: str, cases: list[dict]) -> Result:
        return await self.request(
            "POST",
            f"/cases/{_segment(case_id)}/related_cases",
            json={"cases": cases},
        )

    @requires_api_version("v2")
    async def delete_related_case(self, case_id: str, related_case_id: str) -> Result:
        return await self.request(
            "DELETE",
            f"/cases/{_segment(case_id)}/related_cases/{_segment(related_case_id)}",
        )
