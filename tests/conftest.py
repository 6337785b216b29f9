"""Pytest configuration and shared fixtures"""

import asyncio
import os

import httpx
import pytest

from pega_mcp.config import Config
from pega_mcp.consts import API_V1_PATH, API_V2_PATH, GLOBAL_CACHE_KEY, TOKEN_URL_PATH
from pega_mcp.models import AuthMode, Session
from pega_mcp.session import SessionResolver
from pega_mcp.token_cache import TokenCache

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)

BASE_URL = "https://pega.example.com"
TOKEN_URL = f"{BASE_URL}{TOKEN_URL_PATH}"
API_V2_URL = f"{BASE_URL}{API_V2_PATH}"
API_V1_URL = f"{BASE_URL}{API_V1_PATH}"
CLIENT_ID = "test-client"
CLIENT_SECRET = "test-secret"


class FakePega:
    """Scriptable Pega server for httpx.MockTransport.

    Token requests get "token-1", "token-2", ... unless token_status is set.
    API requests are answered from api_responses in order, then with
    default_response.
    """

    def __init__(self):
        self.token_requests: list[httpx.Request] = []
        self.api_requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict | None = None
        self.expires_in: int | None = 3600
        self.token_delay = 0.0
        self.api_responses: list[httpx.Response | Exception] = []
        self.default_response = httpx.Response(200, json={"data": {}})

    @property
    def requests(self) -> list[httpx.Request]:
        return self.token_requests + self.api_requests

    def respond_with(self, *responses: httpx.Response | Exception) -> None:
        self.api_responses.extend(responses)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/v1/token"):
            return await self._token(request)

        self.api_requests.append(request)
        if self.api_responses:
            response = self.api_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return self.default_response

    async def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_requests.append(request)
        if self.token_delay:
            await asyncio.sleep(self.token_delay)
        if self.token_status != 200:
            return httpx.Response(
                self.token_status, json={"error": "invalid_client"}
            )
        if self.token_body is not None:
            return httpx.Response(200, json=self.token_body)
        body = {
            "access_token": f"token-{len(self.token_requests)}",
            "token_type": "bearer",
        }
        if self.expires_in is not None:
            body["expires_in"] = self.expires_in
        return httpx.Response(200, json=body)


@pytest.fixture
def clean_env():
    """Fixture that temporarily clears PEGA_* environment variables.

    This ensures Config tests see the true defaults without interference
    from environment variables that might be set in the user's shell.
    """
    pega_vars = {
        key: value for key, value in os.environ.items() if key.startswith("PEGA_")
    }

    for key in pega_vars:
        os.environ.pop(key, None)

    try:
        yield
    finally:
        for key, value in pega_vars.items():
            os.environ[key] = value


@pytest.fixture
def clean_config(clean_env):
    """Config with no environment influence (no credentials)."""
    return Config()


@pytest.fixture
def config(clean_env):
    """Config with complete OAuth2 environment credentials."""
    return Config(base_url=BASE_URL, client_id=CLIENT_ID, client_secret=CLIENT_SECRET)


@pytest.fixture
def fake_pega():
    return FakePega()


@pytest.fixture
async def http_client(fake_pega):
    """httpx.AsyncClient wired to the fake Pega server."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_pega.handler))
    yield client
    await client.aclose()


@pytest.fixture
def token_cache():
    return TokenCache()


@pytest.fixture
def oauth_session():
    return Session(
        session_id=GLOBAL_CACHE_KEY,
        base_url=BASE_URL,
        auth_mode=AuthMode.OAUTH,
        api_version="v2",
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        source="environment",
    )


@pytest.fixture
def token_session():
    return Session(
        session_id="session_direct",
        base_url=BASE_URL,
        auth_mode=AuthMode.TOKEN,
        api_version="v2",
        access_token="direct-token-123",
        source="session",
    )


@pytest.fixture
def resolver(config, token_cache, http_client):
    """SessionResolver over the fake Pega server with environment credentials."""
    return SessionResolver(config, token_cache=token_cache, http_client=http_client)
