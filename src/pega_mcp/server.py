"""Pega DX API MCP server implementation."""

import base64
import binascii
import logging
import mimetypes
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import get_config, setup_logging
from .consts import SERVER_NAME
from .exceptions import ConfigError
from .models import Response
from .session import get_resolver

logger = logging.getLogger("pega-mcp.server")

# Optional per-call credentials: an object (or JSON string) with baseUrl plus
# clientId+clientSecret or accessToken, and optional sessionId/apiVersion/tokenExpiry.
SessionCredentialsParam = dict[str, Any] | str | None


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Authenticate the environment session at startup; close HTTP on shutdown."""
    resolver = get_resolver()
    if resolver.config.has_credentials:
        result = await resolver.resolve().ping()
        if result.success:
            logger.info(
                f"Startup authentication succeeded for {resolver.config.base_url} "
                f"({result.data['duration_ms']}ms)"
            )
        else:
            logger.warning(
                f"Startup authentication failed: {result.error.message} "
                f"({result.error.details}) - tools will retry on first use"
            )
    else:
        logger.info(
            "No environment credentials configured - tools require sessionCredentials"
        )
    try:
        yield
    finally:
        await resolver.aclose()
        logger.debug("HTTP client closed")


mcp = FastMCP(
    name=SERVER_NAME,
    instructions="""
    Pega DX API MCP server.

    This MCP server allows you to:
    1. Create, read, update and progress cases in a Pega Infinity application.
    2. Work assignments, attachments and data views.
    3. Manage participants, followers, tags and related cases.

    Every tool accepts optional session_credentials to target a different Pega
    instance than the one configured in the environment.
    """,
    log_level=get_config().log_level,
    lifespan=lifespan,
)


# ============================================================================
# SERVICES
# ============================================================================


@mcp.tool()
async def ping_pega_service(session_credentials: SessionCredentialsParam = None) -> Response:
    """Test connectivity and OAuth2 authentication with the Pega instance.

    Acquires (or reuses) a token and reports timing, configuration and a
    token prefix. The token itself is never returned.

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    logger.info("Pinging Pega service")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.ping()
        return Response.from_result(
            result,
            "Pega service is reachable and authentication succeeded",
            suggestions=["Use get_case_types() to discover what cases can be created"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def authenticate_pega(session_credentials: SessionCredentialsParam = None) -> Response:
    """Authenticate with Pega using OAuth2 client credentials or a direct access token.

    The token is cached for the session and reused by every other tool called
    with the same credentials (or sessionId).

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    logger.info("Authenticating with Pega")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.ping()
        response = Response.from_result(
            result,
            f"Authenticated ({client.token_provider.auth_mode} mode) - "
            "token stored for this session",
            suggestions=[
                "Pass the same sessionId in session_credentials to reuse this token"
            ],
        )
        response.metadata = {
            **(response.metadata or {}),
            "session_id": client.session.session_id,
        }
        return response
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_token_info(session_credentials: SessionCredentialsParam = None) -> Response:
    """Report the cached token state for a session without contacting Pega.

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        info = client.token_provider.get_token_info()
        return Response(
            status="success",
            message=(
                "No token cached yet - call authenticate_pega() to acquire one"
                if not info.has_token
                else f"Token expires in {info.expires_in_minutes} minute(s)"
            ),
            data=info.model_dump(mode="json"),
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def diagnose_config() -> Response:
    """Show the environment configuration (secrets masked) and live session counts."""
    try:
        resolver = get_resolver()
        config = resolver.config
        return Response(
            status="success",
            message=(
                "Environment credentials are complete"
                if config.has_credentials
                else "Environment credentials are incomplete - pass session_credentials"
            ),
            data={
                "base_url": config.base_url,
                "api_version": config.api_version,
                "api_base_url": config.api_base_url,
                "token_url": config.token_url,
                "client_id": config.client_id,
                "client_secret": "***" if config.client_secret else None,
                "timeout_seconds": config.timeout_seconds,
                "session_ttl_seconds": config.session_ttl_seconds,
                "log_level": config.log_level,
                "sessions": resolver.stats(),
            },
        )
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# CASES
# ============================================================================


@mcp.tool()
async def get_case(
    case_id: str,
    view_type: str | None = None,
    page_name: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Get case details including status, stage, content and available actions.

    Args:
        case_id: Full case handle, e.g. "ON6E5R-DIYRECIPE-WORK-RECIPECOLLECTION R-1008"
        view_type: "form" or "page" to include UI metadata (v2)
        page_name: Page to return when view_type is "page"
        session_credentials: Optional credentials overriding the environment

    Returns:
        Case data; metadata.eTag holds the eTag for subsequent updates.
    """
    logger.info(f"Fetching case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case(case_id, view_type=view_type, page_name=page_name)
        return Response.from_result(
            result,
            f"Case {case_id} retrieved",
            suggestions=["Use metadata.eTag with perform_case_action() to update the case"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def create_case(
    case_type_id: str,
    content: dict[str, Any] | None = None,
    parent_case_id: str | None = None,
    page_instructions: list[dict] | None = None,
    attachments: list[dict] | None = None,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Create a new case of the given case type.

    Args:
        case_type_id: Case type class, e.g. "MyOrg-MyApp-Work-Order" (see get_case_types)
        content: Field values for the new case
        parent_case_id: Create as a child of this case
        page_instructions: Embedded page/list operations
        attachments: Attachment references from upload_attachment
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Creating case of type {case_type_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.create_case(
            case_type_id,
            content=content,
            parent_case_id=parent_case_id,
            page_instructions=page_instructions,
            attachments=attachments,
            view_type=view_type,
        )
        return Response.from_result(
            result,
            f"Case of type {case_type_id} created",
            suggestions=["Use get_next_assignment() to continue work on the new case"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_case(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Delete a case that is still in the create stage.

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Deleting case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_case(case_id)
        return Response.from_result(result, f"Case {case_id} deleted")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_action(
    case_id: str,
    action_id: str,
    view_type: str = "form",
    exclude_additional_actions: bool | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Get a case action's view and the eTag needed to perform it.

    Args:
        case_id: Full case handle
        action_id: Flow action name, e.g. "pyUpdateCaseDetails"
        view_type: "form" or "page"
        exclude_additional_actions: Omit the list of other available actions
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Fetching action {action_id} for case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_action(
            case_id,
            action_id,
            view_type=view_type,
            exclude_additional_actions=exclude_additional_actions,
        )
        return Response.from_result(
            result,
            f"Action {action_id} for case {case_id} retrieved",
            suggestions=["Pass metadata.eTag to perform_case_action()"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def perform_case_action(
    case_id: str,
    action_id: str,
    etag: str | None = None,
    content: dict[str, Any] | None = None,
    page_instructions: list[dict] | None = None,
    attachments: list[dict] | None = None,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Perform a case action (v2), submitting field values.

    When etag is omitted the current eTag is read first. If the case changes
    between that read and the update, the update fails with
    PRECONDITION_FAILED or CONFLICT and is not retried.

    Args:
        case_id: Full case handle
        action_id: Flow action name
        etag: eTag from get_case or get_case_action
        content: Field values to submit
        page_instructions: Embedded page/list operations
        attachments: Attachment references
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Performing action {action_id} on case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.perform_case_action(
            case_id,
            action_id,
            etag=etag,
            content=content,
            page_instructions=page_instructions,
            attachments=attachments,
            view_type=view_type,
        )
        return Response.from_result(result, f"Action {action_id} performed on case {case_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def update_case(
    case_id: str,
    content: dict[str, Any],
    etag: str | None = None,
    action_id: str | None = None,
    page_instructions: list[dict] | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Update a case's fields (v1). Reads the current eTag first when etag is omitted.

    Args:
        case_id: Full case handle
        content: Field values to update
        etag: eTag from get_case
        action_id: Optional flow action to run the update under
        page_instructions: Embedded page/list operations
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Updating case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.update_case(
            case_id,
            content,
            etag=etag,
            action_id=action_id,
            page_instructions=page_instructions,
        )
        return Response.from_result(result, f"Case {case_id} updated")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_stages(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Get the stages, processes and steps of a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_stages(case_id)
        return Response.from_result(result, f"Stages for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_types(session_credentials: SessionCredentialsParam = None) -> Response:
    """List the case types the operator can create.

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_types()
        return Response.from_result(
            result,
            "Case types retrieved",
            suggestions=["Use a case type ID with create_case()"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_cases(session_credentials: SessionCredentialsParam = None) -> Response:
    """List the cases created by the operator (v1).

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_all_cases()
        return Response.from_result(result, "Cases retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_view(
    case_id: str, view_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Get one named view of a case.

    Args:
        case_id: Full case handle
        view_id: View name, e.g. "pyDetails"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_view(case_id, view_id)
        return Response.from_result(result, f"View {view_id} of case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_descendants(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the child cases of a case, recursively (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_descendants(case_id)
        return Response.from_result(result, f"Descendants of case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_ancestors(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the parent cases of a case up to the top-level case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_ancestors(case_id)
        return Response.from_result(result, f"Ancestors of case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def refresh_case_action(
    case_id: str,
    action_id: str,
    etag: str,
    content: dict[str, Any] | None = None,
    page_instructions: list[dict] | None = None,
    refresh_for: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Recalculate a case action's form with in-progress values, without saving (v2).

    Args:
        case_id: Full case handle
        action_id: Flow action name
        etag: eTag from get_case_action
        content: In-progress field values
        page_instructions: Embedded page/list operations
        refresh_for: Property whose change triggered the refresh
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.refresh_case_action(
            case_id,
            action_id,
            etag,
            content=content,
            page_instructions=page_instructions,
            refresh_for=refresh_for,
        )
        return Response.from_result(result, f"Action {action_id} of case {case_id} refreshed")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def release_case_lock(
    case_id: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Release the pessimistic lock held on a case and discard pending changes (v2).

    Args:
        case_id: Full case handle
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Releasing lock on case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.release_case_lock(case_id, view_type=view_type)
        return Response.from_result(result, f"Lock on case {case_id} released")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def change_to_next_stage(
    case_id: str,
    etag: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Move a case to its next primary stage (v2).

    Args:
        case_id: Full case handle
        etag: eTag from get_case
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Moving case {case_id} to its next stage")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.change_to_next_stage(case_id, etag, view_type=view_type)
        return Response.from_result(result, f"Case {case_id} moved to the next stage")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def change_to_stage(
    case_id: str,
    stage_id: str,
    etag: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Move a case to a specific stage (v2).

    Args:
        case_id: Full case handle
        stage_id: Stage ID from get_case_stages, e.g. "PRIM1"
        etag: eTag from get_case
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Moving case {case_id} to stage {stage_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.change_to_stage(case_id, stage_id, etag, view_type=view_type)
        return Response.from_result(result, f"Case {case_id} moved to stage {stage_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def add_optional_process(
    case_id: str,
    process_id: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Start an optional process (case-wide or stage-level) on a case (v2).

    Args:
        case_id: Full case handle
        process_id: Flow name of the optional process
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Adding optional process {process_id} to case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.add_optional_process(case_id, process_id, view_type=view_type)
        return Response.from_result(result, f"Process {process_id} added to case {case_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_type_action(
    case_type_id: str, action_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Get the metadata of a case-type-level action, such as the create form.

    Args:
        case_type_id: Case type class
        action_id: Action name, e.g. "pyCreate"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_type_action(case_type_id, action_id)
        return Response.from_result(
            result, f"Action {action_id} of case type {case_type_id} retrieved"
        )
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# ASSIGNMENTS
# ============================================================================


@mcp.tool()
async def get_next_assignment(
    view_type: str | None = None, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Get the next assignment from the operator's worklist or work queues.

    Args:
        view_type: "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_next_assignment(view_type=view_type)
        return Response.from_result(result, "Next assignment retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_assignment(
    assignment_id: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Get an assignment and its available actions.

    Args:
        assignment_id: Full assignment handle, e.g. "ASSIGN-WORKLIST MYORG-APP-WORK T-1!FLOW"
        view_type: "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_assignment(assignment_id, view_type=view_type)
        return Response.from_result(result, f"Assignment {assignment_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def perform_assignment_action(
    assignment_id: str,
    action_id: str,
    etag: str,
    content: dict[str, Any] | None = None,
    page_instructions: list[dict] | None = None,
    attachments: list[dict] | None = None,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Submit an assignment action (v2), advancing the case's flow.

    Args:
        assignment_id: Full assignment handle
        action_id: Flow action name
        etag: eTag from get_case or get_assignment
        content: Field values to submit
        page_instructions: Embedded page/list operations
        attachments: Attachment references
        view_type: "none", "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Performing action {action_id} on assignment {assignment_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.perform_assignment_action(
            assignment_id,
            action_id,
            etag,
            content=content,
            page_instructions=page_instructions,
            attachments=attachments,
            view_type=view_type,
        )
        return Response.from_result(
            result, f"Action {action_id} performed on assignment {assignment_id}"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_assignments(session_credentials: SessionCredentialsParam = None) -> Response:
    """List the operator's worklist assignments (v1).

    Args:
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_all_assignments()
        return Response.from_result(result, "Assignments retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_assignment_action(
    assignment_id: str,
    action_id: str,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Get an assignment action's view and the eTag needed to submit it.

    Args:
        assignment_id: Full assignment handle
        action_id: Flow action name
        view_type: "form" or "page"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_assignment_action(
            assignment_id, action_id, view_type=view_type
        )
        return Response.from_result(
            result,
            f"Action {action_id} for assignment {assignment_id} retrieved",
            suggestions=["Pass metadata.eTag to perform_assignment_action()"],
        )
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# ATTACHMENTS
# ============================================================================


@mcp.tool()
async def get_case_attachments(
    case_id: str,
    include_thumbnails: bool = False,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """List the attachments of a case.

    Args:
        case_id: Full case handle
        include_thumbnails: Include base64 thumbnails for images
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_attachments(
            case_id, include_thumbnails=include_thumbnails
        )
        return Response.from_result(result, f"Attachments for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


def _read_upload(
    file_content: str | None, file_path: str | None, file_name: str | None
) -> tuple[bytes, str]:
    """Resolve upload bytes and file name from base64 content or a local path."""
    if file_content and file_path:
        raise ConfigError("Provide either file_content or file_path, not both")
    if file_path:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ConfigError(
                f"File not found: {file_path}",
                suggestions=["Use an absolute path to an existing file"],
            )
        return path.read_bytes(), file_name or path.name
    if file_content:
        if not file_name:
            raise ConfigError("file_name is required when uploading file_content")
        try:
            return base64.b64decode(file_content, validate=True), file_name
        except binascii.Error as e:
            raise ConfigError(
                "file_content is not valid base64", errors=[str(e)]
            ) from e
    raise ConfigError("Provide file_content (base64) or file_path")


@mcp.tool()
async def upload_attachment(
    file_content: str | None = None,
    file_path: str | None = None,
    file_name: str | None = None,
    mime_type: str | None = None,
    append_unique_id_to_file_name: bool = True,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Upload a file to temporary attachment storage.

    The returned ID is valid for a limited time; link it to a case with
    create_case(attachments=...) or perform_case_action(attachments=...).

    Args:
        file_content: Base64-encoded file content
        file_path: Path to a local file (alternative to file_content)
        file_name: File name; defaults to the name of file_path
        mime_type: MIME type; guessed from the file name when omitted
        append_unique_id_to_file_name: Let Pega make the stored name unique
        session_credentials: Optional credentials overriding the environment
    """
    try:
        content, name = _read_upload(file_content, file_path, file_name)
        mime_type = mime_type or mimetypes.guess_type(name)[0]
        logger.info(f"Uploading attachment {name} ({len(content)} bytes)")

        client = get_resolver().resolve(session_credentials)
        result = await client.upload_attachment(
            content,
            file_name=name,
            mime_type=mime_type,
            append_unique_id_to_file_name=append_unique_id_to_file_name,
        )
        return Response.from_result(
            result,
            f"File {name} uploaded",
            suggestions=["Reference the returned ID in a case's attachments"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def add_case_attachments(
    case_id: str,
    attachments: list[dict],
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Link uploaded files or URLs to a case. Either all attachments are added or none.

    Args:
        case_id: Full case handle
        attachments: e.g. [{"type": "File", "category": "File", "ID": "<upload ID>"}]
            or [{"type": "URL", "category": "URL", "url": "...", "name": "..."}]
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Adding {len(attachments)} attachment(s) to case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.add_case_attachments(case_id, attachments)
        return Response.from_result(
            result, f"{len(attachments)} attachment(s) added to case {case_id}"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_attachment_categories(
    case_id: str,
    attachment_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """List the attachment categories available on a case.

    Args:
        case_id: Full case handle
        attachment_type: "File" or "URL"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_attachment_categories(
            case_id, attachment_type=attachment_type
        )
        return Response.from_result(
            result, f"Attachment categories for case {case_id} retrieved"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_attachment(
    attachment_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Get the content of a case attachment.

    Args:
        attachment_id: Attachment handle, e.g. "LINK-ATTACHMENT MYORG-APP-WORK C-1!20250101T120000.000 GMT"
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_attachment(attachment_id)
        return Response.from_result(result, f"Attachment {attachment_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_attachment(
    attachment_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Remove an attachment from its case.

    Args:
        attachment_id: Attachment handle
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Deleting attachment {attachment_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_attachment(attachment_id)
        return Response.from_result(result, f"Attachment {attachment_id} deleted")
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# DATA VIEWS
# ============================================================================


@mcp.tool()
async def get_list_data_view(
    data_view_id: str,
    data_view_parameters: dict[str, Any] | None = None,
    query: dict[str, Any] | None = None,
    paging: dict[str, Any] | None = None,
    use_extended_timeout: bool | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Query a list data view with optional filtering, sorting and paging.

    Args:
        data_view_id: Data view name, e.g. "D_Employees"
        data_view_parameters: Parameters of a parameterized data view
        query: {"select": [...], "filter": {...}, "sortBy": [...], "distinctResultsOnly": ...}
        paging: {"pageNumber": 1, "pageSize": 50} or {"maxResultsToFetch": N}
        use_extended_timeout: Allow the server to use its extended query timeout
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Querying data view {data_view_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        request_body = {
            key: value
            for key, value in {
                "dataViewParameters": data_view_parameters,
                "query": query,
                "paging": paging,
                "useExtendedTimeout": use_extended_timeout,
            }.items()
            if value is not None
        }
        result = await client.get_list_data_view(data_view_id, request_body)
        return Response.from_result(result, f"Data view {data_view_id} queried")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_data_view_count(
    data_view_id: str,
    data_view_parameters: dict[str, Any] | None = None,
    query: dict[str, Any] | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Count the results of a data view query (v2).

    Args:
        data_view_id: Data view name
        data_view_parameters: Parameters of a parameterized data view
        query: Filter in the same shape as get_list_data_view
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        request_body = {}
        if data_view_parameters:
            request_body["dataViewParameters"] = data_view_parameters
        if query:
            request_body["query"] = query
        result = await client.get_data_view_count(data_view_id, request_body)
        return Response.from_result(result, f"Data view {data_view_id} counted")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_data_view_metadata(
    data_view_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Describe a data view: its parameters and queryable fields.

    Args:
        data_view_id: Data view name
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_data_view_metadata(data_view_id)
        return Response.from_result(
            result,
            f"Metadata for data view {data_view_id} retrieved",
            suggestions=["Use the returned fields in get_list_data_view(query=...)"],
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_data_objects(
    data_object_type: str | None = None, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the data objects of the application (v2).

    Args:
        data_object_type: "data" or "case" to filter by kind
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_data_objects(data_object_type=data_object_type)
        return Response.from_result(result, "Data objects retrieved")
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# PARTICIPANTS, TAGS AND RELATED CASES
# ============================================================================


@mcp.tool()
async def get_case_participants(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the participants of a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_participants(case_id)
        return Response.from_result(result, f"Participants for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_participant_roles(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the participant roles defined for a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_participant_roles(case_id)
        return Response.from_result(result, f"Participant roles for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def create_case_participant(
    case_id: str,
    etag: str,
    participant_role_id: str,
    content: dict[str, Any] | None = None,
    view_type: str | None = None,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Add a participant to a case in the given role (v2).

    Args:
        case_id: Full case handle
        etag: eTag from get_case
        participant_role_id: Role ID from get_participant_roles
        content: Participant fields, e.g. {"pyFirstName": "Ann", "pyEmail1": "ann@example.com"}
        view_type: "form" or "none"
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Adding participant in role {participant_role_id} to case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.create_case_participant(
            case_id,
            etag,
            content=content,
            participant_role_id=participant_role_id,
            view_type=view_type,
        )
        return Response.from_result(result, f"Participant added to case {case_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_participant(
    case_id: str,
    participant_id: str,
    etag: str,
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Remove a participant from a case (v2).

    Args:
        case_id: Full case handle
        participant_id: Participant ID from get_case_participants
        etag: eTag from get_case
        session_credentials: Optional credentials overriding the environment
    """
    logger.info(f"Removing participant {participant_id} from case {case_id}")

    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_participant(case_id, participant_id, etag)
        return Response.from_result(
            result, f"Participant {participant_id} removed from case {case_id}"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_case_tags(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the tags on a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_tags(case_id)
        return Response.from_result(result, f"Tags for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def add_case_tags(
    case_id: str, tags: list[str], session_credentials: SessionCredentialsParam = None
) -> Response:
    """Add tags to a case (v2).

    Args:
        case_id: Full case handle
        tags: Tag names to add
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.add_case_tags(case_id, [{"Name": tag} for tag in tags])
        return Response.from_result(result, f"{len(tags)} tag(s) added to case {case_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_case_tag(
    case_id: str, tag_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Remove a tag from a case (v2).

    Args:
        case_id: Full case handle
        tag_id: Tag ID from get_case_tags
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_case_tag(case_id, tag_id)
        return Response.from_result(result, f"Tag {tag_id} removed from case {case_id}")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def get_related_cases(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the cases related to a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_related_cases(case_id)
        return Response.from_result(result, f"Related cases for case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def relate_cases(
    case_id: str,
    related_case_ids: list[str],
    session_credentials: SessionCredentialsParam = None,
) -> Response:
    """Relate one or more cases to a case (v2).

    Args:
        case_id: Full case handle
        related_case_ids: Handles of the cases to relate
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.relate_cases(
            case_id, [{"ID": related} for related in related_case_ids]
        )
        return Response.from_result(
            result, f"{len(related_case_ids)} case(s) related to {case_id}"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_related_case(
    case_id: str, related_case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Remove the relation between two cases (v2).

    Args:
        case_id: Full case handle
        related_case_id: Handle of the related case
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_related_case(case_id, related_case_id)
        return Response.from_result(
            result, f"Case {related_case_id} is no longer related to {case_id}"
        )
    except Exception as e:
        return Response.from_error(e)


# ============================================================================
# FOLLOWERS
# ============================================================================


@mcp.tool()
async def get_case_followers(
    case_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """List the operators following a case (v2).

    Args:
        case_id: Full case handle
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.get_case_followers(case_id)
        return Response.from_result(result, f"Followers of case {case_id} retrieved")
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def add_case_followers(
    case_id: str, user_ids: list[str], session_credentials: SessionCredentialsParam = None
) -> Response:
    """Make operators follow a case so they are notified of its progress (v2).

    Args:
        case_id: Full case handle
        user_ids: Operator IDs to add as followers
        session_credentials: Optional credentials overriding the environment
    """
    try:
        if not user_ids:
            raise ConfigError("user_ids must name at least one operator")
        client = get_resolver().resolve(session_credentials)
        result = await client.add_case_followers(case_id, [{"ID": user} for user in user_ids])
        return Response.from_result(
            result, f"{len(user_ids)} follower(s) added to case {case_id}"
        )
    except Exception as e:
        return Response.from_error(e)


@mcp.tool()
async def delete_case_follower(
    case_id: str, follower_id: str, session_credentials: SessionCredentialsParam = None
) -> Response:
    """Stop an operator following a case (v2).

    Args:
        case_id: Full case handle
        follower_id: Operator ID of the follower
        session_credentials: Optional credentials overriding the environment
    """
    try:
        client = get_resolver().resolve(session_credentials)
        result = await client.delete_case_follower(case_id, follower_id)
        return Response.from_result(result, f"{follower_id} no longer follows case {case_id}")
    except Exception as e:
        return Response.from_error(e)


def main() -> None:
    """Run the MCP server."""
    setup_logging(get_config().log_level)
    logger.info(f"Starting {SERVER_NAME}")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
