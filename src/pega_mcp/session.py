"""Session resolution - maps each tool call onto an authenticated PegaClient."""

import hashlib
import json
import logging
from datetime import UTC, datetime, timedelta
from functools import cache
from typing import Any

import httpx
from pydantic import ValidationError

from .auth import OAuth2Client
from .client import PegaClient
from .config import Config, clean_base_url, get_config, normalize_api_version
from .consts import GLOBAL_CACHE_KEY, USER_AGENT
from .exceptions import ConfigError
from .models import AuthMode, Session, SessionCredentials
from .token_cache import TokenCache

logger = logging.getLogger("pega-mcp.session")

SessionCredentialsInput = SessionCredentials | dict[str, Any] | str | None


def parse_session_credentials(value: SessionCredentialsInput) -> SessionCredentials | None:
    """Accept credentials as a model, a dict, or a JSON string.

    Returns:
        SessionCredentials, or None when nothing was supplied.

    Raises:
        ConfigError: If the credentials are malformed or incomplete.
    """
    if value is None or isinstance(value, SessionCredentials):
        return value

    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigError(
                "sessionCredentials is not valid JSON",
                errors=[str(e)],
                suggestions=["Pass sessionCredentials as an object"],
            ) from e

    if not isinstance(value, dict):
        raise ConfigError(
            "sessionCredentials must be an object",
            errors=[f"Got {type(value).__name__}"],
        )

    try:
        return SessionCredentials.model_validate(value)
    except ValidationError as e:
        raise ConfigError(
            "Invalid sessionCredentials",
            errors=[error["msg"] for error in e.errors()],
            suggestions=[
                "Provide baseUrl with clientId+clientSecret (OAuth2)",
                "Or provide baseUrl with accessToken (direct token)",
            ],
        ) from e


def credential_fingerprint(
    base_url: str,
    client_id: str | None,
    client_secret: str | None,
    access_token: str | None,
) -> str:
    """Short stable hash identifying one credential set."""
    raw = "|".join([base_url, client_id or "", client_secret or "", access_token or ""])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class SessionResolver:
    """Registry of live sessions, each with its own OAuth2Client and PegaClient.

    Calls without credentials share the environment session ("global").
    Calls with sessionCredentials get an isolated session keyed by sessionId,
    or by a fingerprint of the credentials when no sessionId is given.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        token_cache: TokenCache | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize SessionResolver.

        Args:
            config: Configuration. If None, uses get_config().
            token_cache: Token store shared by all sessions. If None, creates one.
            http_client: HTTP client shared by all sessions. If None, creates one.
        """
        self.config = config or get_config()
        self.token_cache = token_cache if token_cache is not None else TokenCache()
        self.http_client = http_client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
        )
        self._clients: dict[str, PegaClient] = {}

    def resolve(self, session_credentials: SessionCredentialsInput = None) -> PegaClient:
        """Return the client for these credentials, creating its session if needed.

        Raises:
            ConfigError: If the credentials are invalid, or if none were given
                and the environment has no complete OAuth2 configuration.
        """
        self.cleanup()

        credentials = parse_session_credentials(session_credentials)
        if credentials is None:
            return self._environment_client()
        return self._session_client(credentials)

    def cleanup(self, now: datetime | None = None) -> int:
        """Evict idle call-scoped sessions and those holding an expired direct token.

        Returns:
            Number of sessions evicted.
        """
        now = now or datetime.now(UTC)
        ttl = self.config.session_ttl_seconds
        stale = [
            key
            for key, client in self._clients.items()
            if key != GLOBAL_CACHE_KEY and client.session.is_stale(ttl, now)
        ]
        for key in stale:
            self._evict(key)
        if stale:
            logger.info(f"Evicted {len(stale)} stale session(s)")
        return len(stale)

    def stats(self) -> dict[str, Any]:
        sessions = [client.session for client in self._clients.values()]
        return {
            "total_sessions": len(sessions),
            "oauth_sessions": sum(s.auth_mode == AuthMode.OAUTH for s in sessions),
            "token_sessions": sum(s.auth_mode == AuthMode.TOKEN for s in sessions),
            "environment_session": GLOBAL_CACHE_KEY in self._clients,
            "cached_tokens": len(self.token_cache),
        }

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        await self.http_client.aclose()

    def _environment_client(self) -> PegaClient:
        client = self._clients.get(GLOBAL_CACHE_KEY)
        if client is not None:
            client.session.touch()
            return client

        config = self.config
        if not config.has_credentials:
            missing = [
                name
                for name, value in (
                    ("PEGA_BASE_URL", config.base_url),
                    ("PEGA_CLIENT_ID", config.client_id),
                    ("PEGA_CLIENT_SECRET", config.client_secret),
                )
                if not value
            ]
            raise ConfigError(
                "OAuth2 configuration incomplete in environment variables. "
                "Need baseUrl, clientId, and clientSecret.",
                errors=[f"Missing {name}" for name in missing],
                suggestions=[
                    "Set PEGA_BASE_URL, PEGA_CLIENT_ID and PEGA_CLIENT_SECRET",
                    "Or pass sessionCredentials with the tool call",
                ],
            )

        session = Session(
            session_id=GLOBAL_CACHE_KEY,
            base_url=config.base_url,
            auth_mode=AuthMode.OAUTH,
            api_version=config.api_version,
            client_id=config.client_id,
            client_secret=config.client_secret,
            source="environment",
        )
        return self._register(session)

    def _session_client(self, credentials: SessionCredentials) -> PegaClient:
        base_url = clean_base_url(credentials.base_url.strip())
        fingerprint = credential_fingerprint(
            base_url,
            credentials.client_id,
            credentials.client_secret,
            credentials.access_token,
        )
        key = f"session_{credentials.session_id or fingerprint}"

        client = self._clients.get(key)
        if client is not None:
            if client.session.fingerprint == fingerprint:
                client.session.touch()
                return client
            logger.info(f"Credentials changed for {key} - rebuilding session")
            self._evict(key)

        now = datetime.now(UTC)
        token_expires_at = None
        if credentials.auth_mode == AuthMode.TOKEN and credentials.token_expiry:
            token_expires_at = now + timedelta(seconds=credentials.token_expiry)

        session = Session(
            session_id=key,
            base_url=base_url,
            auth_mode=credentials.auth_mode,
            api_version=normalize_api_version(credentials.api_version),
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            access_token=credentials.access_token,
            token_expires_at=token_expires_at,
            source="session",
            fingerprint=fingerprint,
            created_at=now,
            last_accessed=now,
        )
        return self._register(session)

    def _register(self, session: Session) -> PegaClient:
        auth = OAuth2Client(session, self.http_client, self.token_cache)
        client = PegaClient(
            session,
            auth,
            self.http_client,
            timeout_seconds=self.config.timeout_seconds,
        )
        self._clients[session.session_id] = client
        logger.info(
            f"Created {session.auth_mode} session {session.session_id} "
            f"for {session.base_url} (API {session.api_version})"
        )
        return client

    def _evict(self, key: str) -> None:
        self._clients.pop(key, None)
        self.token_cache.invalidate(key)
        logger.debug(f"Removed session {key}")


@cache
def get_resolver() -> SessionResolver:
    """Get the process-wide SessionResolver."""
    return SessionResolver()
