"""
Provider credential storage on top of the credential vault.

The Google token returned alongside the identity-provider session is kept
under two independent vault keys. The access token is mandatory for calendar
writes; the refresh token is optional and its absence is tolerated.
"""

import logging
from typing import Optional

from google.oauth2.credentials import Credentials

from .credential_vault import CredentialVault, get_credential_vault
from .scopes import get_scopes
from ..utils.constants import PROVIDER_REFRESH_TOKEN_KEY, PROVIDER_TOKEN_KEY
from ..utils.errors import VaultError

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class ProviderCredentialStore:
    """Reads and writes the Google provider credential."""

    def __init__(self, vault: Optional[CredentialVault] = None) -> None:
        self._vault = vault

    @property
    def vault(self) -> CredentialVault:
        if self._vault is None:
            self._vault = get_credential_vault()
        return self._vault

    async def store(self, token: str, refresh_token: Optional[str] = None) -> None:
        """
        Store the provider access token and, if given, its refresh token.

        The two writes are independent; a failure after the first leaves the
        access token stored without a refresh token, which readers accept.

        Raises:
            VaultError: If either write fails.
        """
        await self.vault.set(PROVIDER_TOKEN_KEY, token)
        if refresh_token:
            await self.vault.set(PROVIDER_REFRESH_TOKEN_KEY, refresh_token)
        logger.info(
            "Stored Google provider token (refresh token: %s)",
            "yes" if refresh_token else "no",
        )

    async def load(self) -> Optional[Credentials]:
        """
        Load the provider credential.

        Returns:
            Google Credentials, or None if no access token is stored.

        Raises:
            VaultError: If the access token entry cannot be read.
        """
        token = await self.vault.get(PROVIDER_TOKEN_KEY)
        if not token:
            logger.debug("No Google provider token in vault")
            return None

        try:
            refresh_token = await self.vault.get(PROVIDER_REFRESH_TOKEN_KEY)
        except VaultError as e:
            logger.warning(f"Provider refresh token unreadable, continuing without it: {e}")
            refresh_token = None

        if not refresh_token:
            logger.debug("Provider refresh token missing; using access token only")

        return Credentials(
            token=token,
            refresh_token=refresh_token or None,
            token_uri=GOOGLE_TOKEN_URI,
            scopes=get_scopes(),
        )

    async def clear(self) -> None:
        """Delete both provider keys. Each key is deleted explicitly."""
        await self.vault.delete(PROVIDER_TOKEN_KEY)
        await self.vault.delete(PROVIDER_REFRESH_TOKEN_KEY)
        logger.info("Cleared Google provider tokens")
