"""Simple tests (verify pytest working)"""

from unittest import TestCase


class TestPackage(TestCase):

    def test_imports(self):
        """Test that all main imports work"""
        try:
            from pega_mcp import (
                Config,
                OAuth2Client,
                PegaClient,
                PegaMCPError,
                SessionResolver,
                TokenCache,
            )
        except ImportError as e:
            self.fail(e)

    def test_version(self):
        from pega_mcp import __version__
        from pega_mcp.consts import PACKAGE_VERSION

        self.assertEqual(__version__, PACKAGE_VERSION)
