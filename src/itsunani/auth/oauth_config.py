"""
OAuth Configuration Management for Itsunani.

This module centralizes identity-provider and redirect configuration to
eliminate hardcoded values. Sign-in uses the Supabase implicit flow with
Google as the upstream provider.
"""

import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..utils.constants import (
    DEFAULT_CALLBACK_PORT,
    OAUTH_PROVIDER,
    REDIRECT_CALLBACK_PATH,
)
from ..utils.errors import ConfigurationError

load_dotenv()


class OAuthConfig:
    """
    Centralized OAuth configuration management.

    Provides a single source of truth for all OAuth-related configuration values.
    """

    def __init__(self) -> None:
        # Identity provider (Supabase) configuration
        self.supabase_url = os.getenv("SUPABASE_URL")
        self.supabase_key = os.getenv("SUPABASE_PUBLISHABLE_KEY") or os.getenv(
            "SUPABASE_ANON_KEY"
        )
        self.provider = OAUTH_PROVIDER

        # Loopback deep-link receiver
        self.callback_host = os.getenv("ITSUNANI_CALLBACK_HOST", "http://localhost")
        self.callback_port = int(
            os.getenv("ITSUNANI_CALLBACK_PORT", str(DEFAULT_CALLBACK_PORT))
        )
        self.callback_url = f"{self.callback_host}:{self.callback_port}"

        # Redirect URI registered with the identity provider. Defaults to the
        # loopback receiver; ITSUNANI_REDIRECT_URI selects an app scheme instead.
        self.redirect_uri = os.getenv(
            "ITSUNANI_REDIRECT_URI", f"{self.callback_url}{REDIRECT_CALLBACK_PATH}"
        )

        # Credentials directory
        self.credentials_dir = os.path.expanduser(
            os.getenv("ITSUNANI_CREDENTIALS_DIR", "~/.config/itsunani")
        )

        # Google asks for consent every time so a refresh token is issued
        self.query_params = {"access_type": "offline", "prompt": "consent"}

    def is_configured(self) -> bool:
        """Check if the identity provider is configured."""
        return bool(self.supabase_url and self.supabase_key)

    def require_identity_provider(self) -> None:
        """
        Ensure Supabase settings are present.

        Raises:
            ConfigurationError: If SUPABASE_URL or the publishable key is missing.
        """
        if not self.is_configured():
            raise ConfigurationError(
                "Missing Supabase URL or publishable key. Set SUPABASE_URL and "
                "SUPABASE_PUBLISHABLE_KEY environment variables"
            )

    def get_vault_dir(self) -> str:
        """Directory holding the credential vault entries."""
        return os.path.join(self.credentials_dir, "vault")

    def get_environment_summary(self) -> Dict[str, Any]:
        """Get a summary of the current OAuth configuration (excluding secrets)."""
        return {
            "supabase_url": self.supabase_url,
            "provider": self.provider,
            "redirect_uri": self.redirect_uri,
            "callback_url": self.callback_url,
            "credentials_dir": self.credentials_dir,
            "client_configured": self.is_configured(),
        }


# Global configuration instance
_oauth_config: Optional[OAuthConfig] = None


def get_oauth_config() -> OAuthConfig:
    """Get the global OAuth configuration instance."""
    global _oauth_config
    if _oauth_config is None:
        _oauth_config = OAuthConfig()
    return _oauth_config


def reload_oauth_config() -> OAuthConfig:
    """Reload the OAuth configuration from environment variables."""
    global _oauth_config
    _oauth_config = OAuthConfig()
    return _oauth_config
