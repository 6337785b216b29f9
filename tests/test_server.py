"""Tests for the MCP tool layer"""

import base64
import json
from unittest.mock import patch

import httpx
import pytest

from pega_mcp import server
from pega_mcp.models import Response

CASE_ID = "MYORG-APP-WORK C-1"


@pytest.fixture
def patched_resolver(resolver):
    with patch("pega_mcp.server.get_resolver", return_value=resolver):
        yield resolver


class TestServiceTools:
    @pytest.mark.asyncio
    async def test_ping_pega_service(self, patched_resolver, fake_pega):
        response = await server.ping_pega_service()

        assert isinstance(response, Response)
        assert response.status == "success"
        assert response.data["token"]["prefix"].endswith("...")
        assert len(fake_pega.token_requests) == 1

    @pytest.mark.asyncio
    async def test_authenticate_reports_session_id(self, patched_resolver):
        response = await server.authenticate_pega(
            {"baseUrl": "https://x", "accessToken": "tok123", "sessionId": "s1"}
        )

        assert response.status == "success"
        assert response.metadata["session_id"] == "session_s1"

    @pytest.mark.asyncio
    async def test_authentication_failure(self, patched_resolver, fake_pega):
        fake_pega.token_status = 401

        response = await server.authenticate_pega()

        assert response.status == "error"
        assert response.metadata["error_type"] == "AUTHENTICATION_ERROR"

    @pytest.mark.asyncio
    async def test_get_token_info_before_authentication(self, patched_resolver, fake_pega):
        response = await server.get_token_info()

        assert response.status == "success"
        assert response.data["has_token"] is False
        assert fake_pega.requests == []

    @pytest.mark.asyncio
    async def test_diagnose_config_masks_secret(self, patched_resolver):
        response = await server.diagnose_config()

        assert response.data["client_secret"] == "***"
        assert "test-secret" not in str(response.model_dump())
        assert response.data["sessions"]["total_sessions"] == 0


class TestCaseTools:
    @pytest.mark.asyncio
    async def test_get_case_returns_etag(self, patched_resolver, fake_pega):
        fake_pega.respond_with(
            httpx.Response(200, json={"data": {"caseInfo": {"ID": CASE_ID}}}, headers={"ETag": "e1"})
        )

        response = await server.get_case(CASE_ID)

        assert response.status == "success"
        assert response.data["data"]["caseInfo"]["ID"] == CASE_ID
        assert response.metadata["eTag"] == "e1"

    @pytest.mark.asyncio
    async def test_invalid_session_credentials(self, patched_resolver, fake_pega):
        response = await server.get_case(CASE_ID, session_credentials={"baseUrl": "https://x"})

        assert response.status == "error"
        assert response.metadata["error_type"] == "CONFIG_ERROR"
        assert fake_pega.requests == []

    @pytest.mark.asyncio
    async def test_version_gated_tool(self, patched_resolver, fake_pega):
        response = await server.get_case_tags(
            CASE_ID,
            session_credentials={"baseUrl": "https://x", "accessToken": "t", "apiVersion": "v1"},
        )

        assert response.status == "error"
        assert response.metadata["error_type"] == "NOT_IMPLEMENTED"
        assert fake_pega.requests == []

    @pytest.mark.asyncio
    async def test_perform_case_action_conflict(self, patched_resolver, fake_pega):
        fake_pega.respond_with(
            httpx.Response(409, json={"localizedValue": "Case was updated by another operator"})
        )

        response = await server.perform_case_action(CASE_ID, "pyUpdateCaseDetails", etag="e1")

        assert response.status == "error"
        assert response.metadata["error_type"] == "CONFLICT"
        assert "Case was updated by another operator" in response.errors

    @pytest.mark.asyncio
    async def test_add_case_tags_body(self, patched_resolver, fake_pega):
        await server.add_case_tags(CASE_ID, ["urgent", "vip"])

        assert b'"Name"' in fake_pega.api_requests[0].read()

    @pytest.mark.asyncio
    async def test_change_to_stage_sends_etag(self, patched_resolver, fake_pega):
        response = await server.change_to_stage(CASE_ID, "PRIM2", etag="e1")

        assert response.status == "success"
        request = fake_pega.api_requests[0]
        assert request.method == "PUT"
        assert request.headers["If-Match"] == "e1"

    @pytest.mark.asyncio
    async def test_v1_only_tool_on_v2_session(self, patched_resolver, fake_pega):
        response = await server.get_cases()

        assert response.status == "error"
        assert response.metadata["error_type"] == "NOT_IMPLEMENTED"
        assert fake_pega.requests == []


class TestFollowerTools:
    @pytest.mark.asyncio
    async def test_add_case_followers_body(self, patched_resolver, fake_pega):
        response = await server.add_case_followers(CASE_ID, ["ann@myorg", "bob@myorg"])

        assert response.status == "success"
        assert json.loads(fake_pega.api_requests[0].read()) == {
            "users": [{"ID": "ann@myorg"}, {"ID": "bob@myorg"}]
        }

    @pytest.mark.asyncio
    async def test_add_case_followers_requires_users(self, patched_resolver, fake_pega):
        response = await server.add_case_followers(CASE_ID, [])

        assert response.status == "error"
        assert response.metadata["error_type"] == "CONFIG_ERROR"
        assert fake_pega.requests == []

    @pytest.mark.asyncio
    async def test_delete_case_follower_not_found(self, patched_resolver, fake_pega):
        fake_pega.respond_with(httpx.Response(404, json={"localizedValue": "No such follower"}))

        response = await server.delete_case_follower(CASE_ID, "ann@myorg")

        assert response.status == "error"
        assert response.metadata["error_type"] == "NOT_FOUND"
        assert fake_pega.api_requests[0].method == "DELETE"


class TestUploadAttachment:
    @pytest.mark.asyncio
    async def test_base64_content(self, patched_resolver, fake_pega):
        fake_pega.respond_with(httpx.Response(201, json={"ID": "temp-1"}))

        response = await server.upload_attachment(
            file_content=base64.b64encode(b"hello").decode(), file_name="note.txt"
        )

        assert response.status == "success"
        body = fake_pega.api_requests[0].read()
        assert b"hello" in body
        assert b"text/plain" in body

    @pytest.mark.asyncio
    async def test_file_path(self, patched_resolver, fake_pega, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4")

        response = await server.upload_attachment(file_path=str(path))

        assert response.status == "success"
        assert b'filename="report.pdf"' in fake_pega.api_requests[0].read()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"file_content": "aGVsbG8=", "file_path": "/tmp/x"},
            {"file_content": "aGVsbG8="},
            {"file_content": "not base64!", "file_name": "x.txt"},
            {"file_path": "/nonexistent/file.txt"},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_input(self, patched_resolver, fake_pega, kwargs):
        response = await server.upload_attachment(**kwargs)

        assert response.status == "error"
        assert response.metadata["error_type"] == "CONFIG_ERROR"
        assert fake_pega.requests == []


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_authentication_and_shutdown(self, patched_resolver, fake_pega):
        async with server.lifespan(server.mcp):
            assert len(fake_pega.token_requests) == 1

        assert patched_resolver.http_client.is_closed

    @pytest.mark.asyncio
    async def test_startup_failure_is_not_fatal(self, patched_resolver, fake_pega):
        fake_pega.token_status = 500

        async with server.lifespan(server.mcp):
            pass

        assert len(fake_pega.token_requests) == 1
