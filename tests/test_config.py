"""Tests for config module"""

import logging
import os

import pytest
from pydantic import ValidationError

from pega_mcp.config import (
    Config,
    build_api_base_url,
    build_token_url,
    clean_base_url,
    normalize_api_version,
    setup_logging,
)
from pega_mcp.consts import API_V1_PATH, API_V2_PATH, TOKEN_URL_PATH


class TestConfig:
    """Test Config class functionality"""

    def test_config_defaults_and_creation(self, clean_config):
        """Test config creation and default values"""
        assert clean_config.base_url is None
        assert clean_config.client_id is None
        assert clean_config.client_secret is None
        assert clean_config.api_version == "v2"
        assert clean_config.log_level == "INFO"
        assert clean_config.timeout_seconds == 30
        assert clean_config.session_ttl_seconds == 7200

        # No base URL, no derived URLs
        assert clean_config.token_url is None
        assert clean_config.api_base_url is None
        assert clean_config.has_credentials is False

    def test_config_env_override(self, clean_env):
        """Test environment variable override"""
        os.environ["PEGA_BASE_URL"] = "https://env.example.com"
        os.environ["PEGA_CLIENT_ID"] = "env-client"
        os.environ["PEGA_CLIENT_SECRET"] = "env-secret"
        os.environ["PEGA_API_VERSION"] = "V1"

        try:
            config = Config()
            assert config.base_url == "https://env.example.com"
            assert config.api_version == "v1"
            assert config.has_credentials is True
        finally:
            for key in ("PEGA_BASE_URL", "PEGA_CLIENT_ID", "PEGA_CLIENT_SECRET", "PEGA_API_VERSION"):
                os.environ.pop(key, None)

    def test_computed_fields_with_custom_base_url(self, clean_env):
        """Test that computed fields work with custom base URL"""
        custom_base = "https://custom.pega.io"
        config = Config(base_url=custom_base)

        assert config.token_url == f"{custom_base}{TOKEN_URL_PATH}"
        assert config.api_base_url == f"{custom_base}{API_V2_PATH}"

        v1_config = Config(base_url=custom_base, api_version="v1")
        assert v1_config.api_base_url == f"{custom_base}{API_V1_PATH}"

    def test_has_credentials_requires_all_three(self, clean_env):
        assert Config(base_url="https://x", client_id="id").has_credentials is False
        assert (
            Config(base_url="https://x", client_id="id", client_secret="s").has_credentials
            is True
        )

    def test_secret_not_in_repr(self, clean_env):
        config = Config(base_url="https://x", client_id="id", client_secret="s3cr3t")
        assert "s3cr3t" not in repr(config)

    @pytest.mark.parametrize("log_level", ["DEBUG", "INFO", "WARNING", "ERROR"])
    def test_valid_log_levels(self, clean_env, log_level):
        """Test that all valid log levels are accepted"""
        config = Config(log_level=log_level)
        assert config.log_level == log_level

    @pytest.mark.parametrize("invalid_level", ["TRACE", "debug", "info", "FATAL", "NONE"])
    def test_invalid_log_levels(self, clean_env, invalid_level):
        """Test that invalid log levels are rejected"""
        with pytest.raises(ValidationError):
            Config(log_level=invalid_level)

    def test_timeout_validation(self, clean_env):
        """Test timeout seconds validation"""
        assert Config(timeout_seconds=120).timeout_seconds == 120

        with pytest.raises(ValidationError):
            Config(timeout_seconds=0)

        with pytest.raises(ValidationError):
            Config(timeout_seconds=500)

    def test_session_ttl_validation(self, clean_env):
        with pytest.raises(ValidationError):
            Config(session_ttl_seconds=0)


class TestUrlHelpers:
    """Base URL cleaning and versioned URL building"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://pega.example.com", "https://pega.example.com"),
            ("https://pega.example.com/", "https://pega.example.com"),
            ("https://pega.example.com/prweb", "https://pega.example.com"),
            ("https://pega.example.com/prweb/api/v1", "https://pega.example.com"),
            (None, None),
        ],
    )
    def test_clean_base_url(self, raw, expected):
        assert clean_base_url(raw) == expected

    def test_prweb_cleaning_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pega-mcp.config"):
            clean_base_url("https://pega.example.com/prweb")
        assert "/prweb" in caplog.text

    @pytest.mark.parametrize(
        "raw,expected",
        [("v1", "v1"), ("V2", "v2"), (" v1 ", "v1"), ("v3", "v2"), ("", "v2"), (None, "v2")],
    )
    def test_normalize_api_version(self, raw, expected):
        assert normalize_api_version(raw) == expected

    def test_build_urls(self):
        base = "https://pega.example.com"
        assert build_token_url(base) == f"{base}/prweb/PRRestService/oauth2/v1/token"
        assert build_api_base_url(base, "v2") == f"{base}/prweb/api/application/v2"
        assert build_api_base_url(base, "v1") == f"{base}/prweb/api/v1"


class TestSetupLogging:
    def test_returns_package_logger(self):
        logger = setup_logging("DEBUG")

        assert logger.name == "pega-mcp"
        assert logging.getLogger().level == logging.DEBUG
        setup_logging("INFO")
