"""
Identity provider client for Itsunani.

Creates the Supabase async client used for sign-in, session restoration and
profile reads. The client's session storage is backed by the credential vault
so the primary session survives restarts the same way provider tokens do.
"""

import logging
from typing import Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from .credential_vault import CredentialVault, get_credential_vault
from .oauth_config import OAuthConfig, get_oauth_config

logger = logging.getLogger(__name__)


class VaultAuthStorage:
    """Session storage adapter handing the identity client's keys to the vault."""

    def __init__(self, vault: CredentialVault) -> None:
        self.vault = vault

    async def get_item(self, key: str) -> Optional[str]:
        return await self.vault.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self.vault.set(key, value)

    async def remove_item(self, key: str) -> None:
        await self.vault.delete(key)


async def create_identity_client(
    config: Optional[OAuthConfig] = None,
    vault: Optional[CredentialVault] = None,
) -> AsyncClient:
    """
    Create the Supabase client.

    Args:
        config: OAuth configuration (defaults to the global instance)
        vault: Vault backing the session storage (defaults to the global instance)

    Returns:
        Configured AsyncClient

    Raises:
        ConfigurationError: If Supabase settings are missing
    """
    config = config or get_oauth_config()
    config.require_identity_provider()

    options = AsyncClientOptions(
        storage=VaultAuthStorage(vault or get_credential_vault()),
        auto_refresh_token=True,
        persist_session=True,
        flow_type="implicit",
    )
    client = await acreate_client(config.supabase_url, config.supabase_key, options=options)
    logger.info(f"Created identity client for {config.supabase_url}")
    return client
