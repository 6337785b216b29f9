"""Protocol definitions for dependency injection and interface contracts."""

from typing import Protocol

from .models import AuthMode, TokenInfo


class TokenProvider(Protocol):
    """Protocol for authentication token providers."""

    auth_mode: AuthMode

    async def get_access_token(self) -> str:
        """Get a valid bearer token.

        Returns:
            Valid bearer token string.

        Raises:
            AuthenticationError: If a token cannot be obtained.
            httpx.RequestError: If the token endpoint is unreachable.
        """
        ...

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-acquires one."""
        ...

    def get_token_info(self) -> TokenInfo:
        """Describe the current token state without side effects."""
        ...
