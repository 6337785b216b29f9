"""Configuration management."""

import logging
import re
from functools import cache

from pydantic import ConfigDict, Field, computed_field, field_validator
from pydantic_settings import BaseSettings

from .consts import (
    API_V1_PATH,
    API_V2_PATH,
    DEFAULT_API_VERSION,
    DEFAULT_SESSION_TTL_SECONDS,
    SUPPORTED_API_VERSIONS,
    TOKEN_URL_PATH,
)

logger = logging.getLogger("pega-mcp.config")

_PRWEB_SUFFIX = re.compile(r"/prweb.*$")


def clean_base_url(base_url: str | None) -> str | None:
    """Strip a trailing '/prweb...' segment and trailing slashes from a base URL.

    The '/prweb' path is appended automatically when building API URLs.
    """
    if not base_url:
        return base_url
    if "/prweb" in base_url:
        cleaned = _PRWEB_SUFFIX.sub("", base_url)
        logger.warning(
            f"Base URL {base_url} contains '/prweb' which is not needed - using {cleaned}"
        )
        base_url = cleaned
    return base_url.rstrip("/")


def normalize_api_version(api_version: str | None) -> str:
    """Lower-case the API version, falling back to v2 for unknown values."""
    version = (api_version or DEFAULT_API_VERSION).strip().lower()
    if version not in SUPPORTED_API_VERSIONS:
        logger.warning(
            f"API version '{api_version}' invalid, must be one of "
            f"{SUPPORTED_API_VERSIONS} - defaulting to {DEFAULT_API_VERSION}"
        )
        return DEFAULT_API_VERSION
    return version


def build_token_url(base_url: str) -> str:
    return f"{base_url}{TOKEN_URL_PATH}"


def build_api_base_url(base_url: str, api_version: str) -> str:
    if api_version == "v1":
        return f"{base_url}{API_V1_PATH}"
    return f"{base_url}{API_V2_PATH}"


class Config(BaseSettings):
    """Environment configuration for the default Pega session."""

    model_config = ConfigDict(env_prefix="PEGA_", case_sensitive=False, extra="ignore")

    base_url: str | None = Field(
        default=None,
        description="Base URL of the Pega Infinity instance (without /prweb)",
    )
    client_id: str | None = Field(default=None, description="OAuth2 client ID")
    client_secret: str | None = Field(default=None, description="OAuth2 client secret")
    api_version: str = Field(
        default=DEFAULT_API_VERSION, description="DX API version (v1 or v2)"
    )
    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
        description="Logging level",
    )
    timeout_seconds: int = Field(
        default=30, gt=0, le=300, description="HTTP request timeout in seconds"
    )
    session_ttl_seconds: int = Field(
        default=DEFAULT_SESSION_TTL_SECONDS,
        gt=0,
        description="Idle lifetime of sessions created from sessionCredentials",
    )

    @field_validator("base_url")
    @classmethod
    def _clean_base_url(cls, value: str | None) -> str | None:
        return clean_base_url(value)

    @field_validator("api_version")
    @classmethod
    def _normalize_api_version(cls, value: str) -> str:
        return normalize_api_version(value)

    @computed_field
    @property
    def token_url(self) -> str | None:
        """URL of the OAuth2 token endpoint."""
        if not self.base_url:
            return None
        return build_token_url(self.base_url)

    @computed_field
    @property
    def api_base_url(self) -> str | None:
        """Version-aware base URL for DX API requests."""
        if not self.base_url:
            return None
        return build_api_base_url(self.base_url, self.api_version)

    @computed_field
    @property
    def has_credentials(self) -> bool:
        """Whether the environment defines a complete OAuth2 client."""
        return bool(self.base_url and self.client_id and self.client_secret)

    def __repr__(self) -> str:
        return (
            f"Config(base_url='{self.base_url}', api_version='{self.api_version}', "
            f"log_level='{self.log_level}')"
        )


@cache
def get_config() -> Config:
    """Get a cached Config instance."""
    return Config()


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Configure logging for the entire application"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,  # Override any existing configuration
    )
    return logging.getLogger("pega-mcp")
