"""Process-wide store of bearer tokens keyed by session cache key."""

import logging
import threading

from .models import CachedToken

logger = logging.getLogger("pega-mcp.token_cache")


class TokenCache:
    """Map of session cache key -> CachedToken.

    Entries are replaced wholesale under a lock, so a reader sees either the
    previous token or the new one. Expiry is checked by the reader; there is
    no background sweep and no eviction beyond overwrite and invalidate.
    """

    def __init__(self):
        self._tokens: dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedToken | None:
        with self._lock:
            return self._tokens.get(key)

    def set(self, key: str, token: CachedToken) -> None:
        with self._lock:
            self._tokens[key] = token
        logger.debug(f"Cached token for {key} (expires {token.expires_at})")

    def invalidate(self, key: str) -> bool:
        """Drop the token for key. Returns whether an entry existed."""
        with self._lock:
            existed = self._tokens.pop(key, None) is not None
        if existed:
            logger.debug(f"Invalidated token for {key}")
        return existed

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
