"""Pega MCP Server Package

A Model Context Protocol (MCP) server exposing the Pega Infinity DX API,
with per-call session credentials and automatic OAuth2 token management.
"""

from .auth import OAuth2Client
from .client import PegaClient
from .config import Config, get_config
from .consts import PACKAGE_VERSION
from .exceptions import AuthenticationError, ConfigError, ErrorType, PegaMCPError
from .models import Result, SessionCredentials
from .session import SessionResolver, get_resolver
from .token_cache import TokenCache

__version__ = PACKAGE_VERSION

__all__ = [
    "__version__",
    "get_config",
    "get_resolver",
    "Config",
    "TokenCache",
    "OAuth2Client",
    "PegaClient",
    "SessionResolver",
    "SessionCredentials",
    "Result",
    "ErrorType",
    "PegaMCPError",
    "ConfigError",
    "AuthenticationError",
]
