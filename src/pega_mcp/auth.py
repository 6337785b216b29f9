"""OAuth2 token lifecycle for one Pega session."""

import asyncio
import math
import logging
from datetime import UTC, datetime, timedelta

import httpx

from .consts import DEFAULT_TOKEN_EXPIRY_SECONDS, TOKEN_REFRESH_BUFFER_SECONDS
from .exceptions import AuthenticationError, ConfigError
from .models import AuthMode, CachedToken, Session, TokenInfo
from .token_cache import TokenCache

logger = logging.getLogger("pega-mcp.auth")


class OAuth2Client:
    """Authentication token manager for a single session.

    Responsibilities:
    - Acquire tokens via the client-credentials grant (oauth mode)
    - Serve a directly supplied token until its expiry (token mode)
    - Keep the session's entry in the shared TokenCache current

    States: no token -> cached -> expired -> (refresh) -> cached. Only oauth
    mode can leave the expired state; an expired direct token is an
    AuthenticationError.
    """

    def __init__(
        self,
        session: Session,
        http_client: httpx.AsyncClient,
        token_cache: TokenCache,
        *,
        refresh_buffer_seconds: float = TOKEN_REFRESH_BUFFER_SECONDS,
    ):
        """Initialize OAuth2Client.

        Args:
            session: Session carrying the base URL and credentials.
            http_client: HTTP client (for token requests only).
            token_cache: Shared cache the token is stored in under session.session_id.
            refresh_buffer_seconds: Treat oauth tokens as expired this long before expiry.
        """
        self.session = session
        self.http_client = http_client
        self.token_cache = token_cache
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.auth_mode = session.auth_mode
        # Serializes refreshes so concurrent callers share one token request
        self._refresh_lock = asyncio.Lock()

        if self.auth_mode == AuthMode.TOKEN:
            self._seed_direct_token()

    @property
    def cache_key(self) -> str:
        return self.session.session_id

    async def get_access_token(self) -> str:
        """Get a valid bearer token, acquiring one if needed.

        Returns:
            Valid bearer token string.

        Raises:
            AuthenticationError: If the token endpoint rejects the request or
                a direct token has expired.
            ConfigError: If oauth credentials are incomplete.
            httpx.RequestError: For network errors reaching the token endpoint.
        """
        cached = self.token_cache.get(self.cache_key)
        if self._is_usable(cached):
            return cached.token

        if self.auth_mode == AuthMode.TOKEN:
            return self._direct_token()

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            cached = self.token_cache.get(self.cache_key)
            if self._is_usable(cached):
                return cached.token
            return await self._fetch_token()

    def invalidate(self) -> None:
        """Drop the cached oauth token so the next call fetches a new one.

        A direct token is kept - it cannot be re-acquired.
        """
        if self.auth_mode == AuthMode.OAUTH:
            self.token_cache.invalidate(self.cache_key)

    def set_access_token(
        self, token: str, expires_in_seconds: float = DEFAULT_TOKEN_EXPIRY_SECONDS
    ) -> None:
        """Install a token explicitly and switch this session to token mode."""
        if not token or not isinstance(token, str):
            raise ConfigError("Invalid token: must be a non-empty string")

        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=expires_in_seconds)
        self.auth_mode = AuthMode.TOKEN
        self.session.auth_mode = AuthMode.TOKEN
        self.session.access_token = token
        self.session.token_expires_at = expires_at
        self.token_cache.set(
            self.cache_key,
            CachedToken(token=token, issued_at=now, expires_at=expires_at),
        )
        logger.info(
            f"Access token explicitly set for {self.cache_key} "
            f"(expires in {expires_in_seconds}s)"
        )

    def get_token_info(self) -> TokenInfo:
        """Describe the cached token without touching the network."""
        cached = self.token_cache.get(self.cache_key)
        now = datetime.now(UTC)

        expires_at = cached.expires_at if cached else None
        expires_in_minutes = 0
        if expires_at is not None:
            remaining = (expires_at - now).total_seconds()
            expires_in_minutes = max(0, round(remaining / 60))

        return TokenInfo(
            auth_mode=self.auth_mode,
            cache_key=self.cache_key,
            has_token=cached is not None,
            is_expired=cached.is_expired(now) if cached else False,
            expires_at=expires_at,
            expires_in_minutes=expires_in_minutes,
            config_source=self.session.source,
        )

    def _is_usable(self, cached: CachedToken | None) -> bool:
        if cached is None:
            return False
        if self.auth_mode == AuthMode.TOKEN:
            return not cached.is_expired()
        return not cached.needs_refresh(self.refresh_buffer_seconds)

    def _seed_direct_token(self) -> None:
        if not self.session.access_token:
            return
        self.token_cache.set(
            self.cache_key,
            CachedToken(
                token=self.session.access_token,
                issued_at=self.session.created_at,
                expires_at=self.session.token_expires_at,
            ),
        )
        logger.debug(f"Direct token initialized for {self.cache_key}")

    def _direct_token(self) -> str:
        """Serve the session's direct token, re-seeding the cache if it was dropped."""
        if not self.session.access_token:
            raise AuthenticationError(
                "Direct access token not available",
                suggestions=["Supply accessToken in sessionCredentials"],
                context={"cache_key": self.cache_key},
            )

        expires_at = self.session.token_expires_at
        if expires_at is not None and datetime.now(UTC) >= expires_at:
            raise AuthenticationError(
                "Direct access token has expired",
                suggestions=[
                    "Obtain a new access token and pass it in sessionCredentials",
                    "Or switch to clientId+clientSecret so tokens refresh automatically",
                ],
                context={
                    "cache_key": self.cache_key,
                    "expired_at": expires_at.isoformat(),
                },
            )

        self._seed_direct_token()
        return self.session.access_token

    async def _fetch_token(self) -> str:
        """Run the client-credentials grant and cache the result."""
        session = self.session
        if not session.client_id or not session.client_secret:
            source = (
                "session configuration"
                if session.source == "session"
                else "environment variables"
            )
            raise ConfigError(
                f"OAuth2 configuration incomplete in {source}. "
                "Need baseUrl, clientId, and clientSecret.",
                context={"cache_key": self.cache_key},
            )

        logger.debug(f"Requesting client-credentials token for {self.cache_key}")
        response = await self.http_client.post(
            session.token_url,
            data={"grant_type": "client_credentials"},
            auth=(session.client_id, session.client_secret),
            headers={"Accept": "application/json"},
        )

        if not response.is_success:
            self.token_cache.invalidate(self.cache_key)
            logger.error(
                f"Token request for {self.cache_key} failed with {response.status_code}"
            )
            raise AuthenticationError(
                f"OAuth2 token request failed: {response.status_code} "
                f"{response.reason_phrase}",
                status=response.status_code,
                body=response.text,
                errors=[response.text] if response.text else [],
                suggestions=[
                    "Check clientId and clientSecret are valid",
                    "Ensure the OAuth2 client registration exists in Pega Infinity",
                ],
                context={"token_url": session.token_url},
            )

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
            if not isinstance(access_token, str) or not access_token:
                raise ValueError("access_token is empty or not a string")
            expires_in = float(token_data.get("expires_in") or DEFAULT_TOKEN_EXPIRY_SECONDS)
            if not math.isfinite(expires_in) or expires_in <= 0:
                raise ValueError(f"expires_in must be a positive number, got {expires_in}")
            now = datetime.now(UTC)
            expires_at = now + timedelta(seconds=expires_in)
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            logger.error(f"Invalid token response: {e}")
            raise AuthenticationError(
                "Invalid OAuth2 token response",
                status=response.status_code,
                body=response.text,
                errors=[f"Unexpected token response: {e}"],
                suggestions=[
                    "This may indicate a misconfigured token endpoint or proxy",
                    "Contact system administrator",
                ],
                context={"token_url": session.token_url},
            ) from e

        self.token_cache.set(
            self.cache_key,
            CachedToken(
                token=access_token,
                issued_at=now,
                expires_at=expires_at,
            ),
        )
        logger.info(f"Token acquired for {self.cache_key} (expires in {expires_in}s)")
        return access_token
