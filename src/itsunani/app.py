"""
Application wiring for Itsunani.

Builds the core components around one identity client, one vault and one
deep-link channel, and owns their subscriptions for the process lifetime.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .auth.credential_vault import CredentialVault, get_credential_vault
from .auth.identity import create_identity_client
from .auth.oauth_config import OAuthConfig, get_oauth_config
from .auth.provider_credentials import ProviderCredentialStore
from .auth.redirect_exchanger import ExchangeOutcome, RedirectTokenExchanger
from .auth.redirect_receiver import DeepLinkChannel, SystemBrowserAuthSession
from .auth.session_reconciler import SessionReconciler, SessionSnapshot
from .client import ItsunaniApiClient, ProfileReader
from .utils.errors import VaultError
from .workflow import ExtractionSaveOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthStatus:
    """Session and provider credential, reported independently."""

    session: SessionSnapshot
    provider_credential_present: bool

    @property
    def needs_sign_in(self) -> bool:
        return not self.session.is_present

    @property
    def needs_reconnect(self) -> bool:
        """Signed in, but calendar writes will fail until the user signs in again."""
        return self.session.is_present and not self.provider_credential_present


class ItsunaniApp:
    """Container for the sign-in and extraction components."""

    def __init__(
        self,
        identity: Any,
        vault: CredentialVault,
        api: Optional[ItsunaniApiClient] = None,
        channel: Optional[DeepLinkChannel] = None,
        browser: Any = None,
        config: Optional[OAuthConfig] = None,
    ) -> None:
        self.identity = identity
        self.vault = vault
        self.config = config or get_oauth_config()
        self.channel = channel or DeepLinkChannel()
        self.browser = browser or SystemBrowserAuthSession(self.channel)
        self.credentials = ProviderCredentialStore(vault)
        self.sessions = SessionReconciler(identity.auth)
        self.exchanger = RedirectTokenExchanger(
            identity.auth,
            self.credentials,
            self.config,
            on_authenticated=self._on_authenticated,
            on_failed=self._on_exchange_failed,
        )
        self.api = api or ItsunaniApiClient()
        self.profiles = ProfileReader(identity)
        self.orchestrator = ExtractionSaveOrchestrator(
            self.api, self.credentials, self.sessions, self.profiles
        )
        self.last_exchange: Optional[ExchangeOutcome] = None
        self._deep_link_listener: Any = None

    @classmethod
    async def create(
        cls,
        config: Optional[OAuthConfig] = None,
        vault: Optional[CredentialVault] = None,
    ) -> "ItsunaniApp":
        """Build the app with a real identity client and start it."""
        config = config or get_oauth_config()
        vault = vault or get_credential_vault()
        identity = await create_identity_client(config, vault)
        app = cls(identity, vault, config=config)
        await app.start()
        return app

    def _on_authenticated(self, outcome: ExchangeOutcome) -> None:
        self.last_exchange = outcome
        logger.info(f"Signed in as {outcome.user_id} via {outcome.source.value}")

    def _on_exchange_failed(self, outcome: ExchangeOutcome) -> None:
        self.last_exchange = outcome
        logger.error(f"Sign-in failed: {outcome.error}")

    async def start(self) -> SessionSnapshot:
        """Subscribe everything and restore the persisted session."""
        self.channel.bind_loop(asyncio.get_running_loop())
        self.sessions.attach()
        self.orchestrator.attach()
        if self._deep_link_listener is None:
            self._deep_link_listener = self.exchanger.listen(self.channel)

        snapshot = await self.sessions.restore()
        if snapshot.is_present:
            await self.orchestrator.load_quota(snapshot.user_id)
        return snapshot

    async def close(self) -> None:
        """Release every subscription and the HTTP client."""
        if self._deep_link_listener is not None:
            self._deep_link_listener.remove()
            self._deep_link_listener = None
        await self.exchanger.drain()
        self.orchestrator.close()
        self.sessions.detach()
        await self.api.aclose()

    async def auth_status(self) -> AuthStatus:
        try:
            present = await self.credentials.load() is not None
        except VaultError as e:
            logger.error(f"Provider credential unreadable: {e}")
            present = False
        return AuthStatus(self.sessions.state, present)
