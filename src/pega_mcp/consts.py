"""High-value constants for the Pega MCP package."""

# Package metadata
PACKAGE_VERSION = "0.2.0"
SERVER_NAME = "pega-mcp"
USER_AGENT = f"{SERVER_NAME}/{PACKAGE_VERSION}"

# External API contract consts
TOKEN_URL_PATH = "/prweb/PRRestService/oauth2/v1/token"
API_V1_PATH = "/prweb/api/v1"
API_V2_PATH = "/prweb/api/application/v2"
SUPPORTED_API_VERSIONS = ("v1", "v2")
DEFAULT_API_VERSION = "v2"

# Business logic consts
TOKEN_REFRESH_BUFFER_SECONDS = 300  # refresh 5min early
DEFAULT_TOKEN_EXPIRY_SECONDS = 3600  # 1 hour
DEFAULT_SESSION_TTL_SECONDS = 7200  # 2 hours
GLOBAL_CACHE_KEY = "global"
TOKEN_PREFIX_LENGTH = 10
