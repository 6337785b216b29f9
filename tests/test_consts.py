from pega_mcp.consts import (
    API_V1_PATH,
    API_V2_PATH,
    DEFAULT_API_VERSION,
    PACKAGE_VERSION,
    SERVER_NAME,
    SUPPORTED_API_VERSIONS,
    TOKEN_REFRESH_BUFFER_SECONDS,
    TOKEN_URL_PATH,
    USER_AGENT,
)


class TestPackageConstants:
    """Test package constants are properly defined"""

    def test_package_version_defined(self):
        """Test that package version is defined"""
        assert isinstance(PACKAGE_VERSION, str)
        assert "." in PACKAGE_VERSION  # Should be semantic version

    def test_user_agent_format(self):
        """Test that user agent follows expected format"""
        assert USER_AGENT == f"{SERVER_NAME}/{PACKAGE_VERSION}"
        assert USER_AGENT.startswith(SERVER_NAME)

    def test_url_path_constants(self):
        """Test that URL path constants are properly defined"""
        for path in (TOKEN_URL_PATH, API_V1_PATH, API_V2_PATH):
            assert path.startswith("/prweb/")

        assert TOKEN_URL_PATH.endswith("/oauth2/v1/token")
        assert API_V1_PATH.endswith("/api/v1")
        assert API_V2_PATH.endswith("/api/application/v2")

    def test_api_versions(self):
        assert DEFAULT_API_VERSION in SUPPORTED_API_VERSIONS
        assert SUPPORTED_API_VERSIONS == ("v1", "v2")

    def test_refresh_buffer(self):
        assert TOKEN_REFRESH_BUFFER_SECONDS == 300
