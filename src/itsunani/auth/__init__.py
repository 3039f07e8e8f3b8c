"""
Authentication Package for Itsunani.

This package provides:
- A device-scoped credential vault for provider tokens and the session
- A session reconciler folding identity-provider auth events
- A redirect token exchanger for the implicit-flow sign-in
- A loopback deep-link receiver feeding redirects into the exchanger
"""

from .scopes import SCOPES, CALENDAR_SCOPE
from .credential_vault import (
    CredentialVault,
    InMemoryCredentialVault,
    LocalDirectoryCredentialVault,
    get_credential_vault,
    set_credential_vault,
)
from .provider_credentials import ProviderCredentialStore
from .session_reconciler import (
    SessionReconciler,
    SessionSnapshot,
    SessionState,
    SessionTransition,
    Subscription,
)
from .redirect_receiver import (
    BrowserAuthResult,
    DeepLinkChannel,
    SystemBrowserAuthSession,
    ensure_redirect_receiver_available,
    cleanup_redirect_receiver,
)
from .redirect_exchanger import (
    ExchangeOutcome,
    ExchangeState,
    RedirectSource,
    RedirectTokenExchanger,
    parse_redirect_uri,
)

__all__ = [
    # Scopes
    "SCOPES",
    "CALENDAR_SCOPE",
    # Vault
    "CredentialVault",
    "InMemoryCredentialVault",
    "LocalDirectoryCredentialVault",
    "get_credential_vault",
    "set_credential_vault",
    "ProviderCredentialStore",
    # Session
    "SessionReconciler",
    "SessionSnapshot",
    "SessionState",
    "SessionTransition",
    "Subscription",
    # Redirects
    "BrowserAuthResult",
    "DeepLinkChannel",
    "SystemBrowserAuthSession",
    "ensure_redirect_receiver_available",
    "cleanup_redirect_receiver",
    "ExchangeOutcome",
    "ExchangeState",
    "RedirectSource",
    "RedirectTokenExchanger",
    "parse_redirect_uri",
]
