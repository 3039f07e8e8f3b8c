"""
Redirect token exchange for Itsunani.

This module turns a redirect URI carrying implicit-flow tokens into an
established identity-provider session plus a stored Google provider
credential. The same redirect can arrive twice, once from the deep-link
channel and once as the return value of the browser-auth call; exchanges are
serialised and de-duplicated by access token within an attempt window.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set
from urllib.parse import parse_qs, urlsplit

import httpx
from supabase import AuthError

from .oauth_config import OAuthConfig, get_oauth_config
from .provider_credentials import ProviderCredentialStore
from .redirect_receiver import BrowserAuthResult, DeepLinkChannel
from .scopes import get_scope_string
from ..utils.constants import (
    ACCESS_TOKEN_PARAM,
    BROWSER_CANCEL,
    BROWSER_SUCCESS,
    PROVIDER_REFRESH_TOKEN_PARAM,
    PROVIDER_TOKEN_PARAM,
    REFRESH_TOKEN_PARAM,
)
from ..utils.errors import (
    ItsunaniError,
    MalformedRedirectError,
    ProviderAuthError,
    VaultError,
)

logger = logging.getLogger(__name__)


class ExchangeState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    EXCHANGING = "exchanging"
    PERSISTING = "persisting"
    COMPLETE = "complete"
    FAILED = "failed"


class RedirectSource(str, Enum):
    DEEP_LINK = "deep_link"
    BROWSER = "browser"


@dataclass(frozen=True)
class RedirectTokens:
    """Tokens decoded from a redirect fragment."""

    access_token: str
    refresh_token: str
    provider_token: Optional[str] = None
    provider_refresh_token: Optional[str] = None


@dataclass(frozen=True)
class ExchangeOutcome:
    """Result of one redirect or sign-in attempt."""

    state: ExchangeState
    source: Optional[RedirectSource] = None
    user_id: Optional[str] = None
    provider_token_present: bool = False
    provider_credential_stored: bool = False
    error: Optional[ItsunaniError] = None
    cancelled: bool = False
    duplicate: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is ExchangeState.COMPLETE


def _first(params: Dict[str, list], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


def parse_redirect_uri(uri: str) -> RedirectTokens:
    """
    Decode the tokens carried in a redirect URI's fragment.

    Query-string parameters are ignored.

    Raises:
        MalformedRedirectError: If the fragment is missing or either session
            token is absent.
    """
    try:
        fragment = urlsplit(uri).fragment
    except ValueError as e:
        raise MalformedRedirectError() from e

    if not fragment:
        raise MalformedRedirectError()

    params = parse_qs(fragment)
    access_token = _first(params, ACCESS_TOKEN_PARAM)
    refresh_token = _first(params, REFRESH_TOKEN_PARAM)
    if not access_token or not refresh_token:
        raise MalformedRedirectError()

    return RedirectTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        provider_token=_first(params, PROVIDER_TOKEN_PARAM),
        provider_refresh_token=_first(params, PROVIDER_REFRESH_TOKEN_PARAM),
    )


OutcomeHook = Callable[[ExchangeOutcome], None]


class RedirectTokenExchanger:
    """State machine: IDLE -> PARSING -> EXCHANGING -> PERSISTING -> COMPLETE | FAILED."""

    def __init__(
        self,
        auth: Any,
        credentials: ProviderCredentialStore,
        config: Optional[OAuthConfig] = None,
        on_authenticated: Optional[OutcomeHook] = None,
        on_failed: Optional[OutcomeHook] = None,
    ) -> None:
        """
        Args:
            auth: The identity client's auth API (``client.auth``)
            credentials: Store receiving the provider token
            config: OAuth configuration (defaults to the global instance)
            on_authenticated: Called once per completed exchange (navigation)
            on_failed: Called once per failed attempt (user-visible error)
        """
        self._auth = auth
        self._credentials = credentials
        self._config = config or get_oauth_config()
        self._on_authenticated = on_authenticated
        self._on_failed = on_failed
        self._state = ExchangeState.IDLE
        self._lock = asyncio.Lock()
        self._submitted: Dict[str, ExchangeOutcome] = {}
        self._tasks: Set["asyncio.Task[ExchangeOutcome]"] = set()

    @property
    def state(self) -> ExchangeState:
        return self._state

    def _set_state(self, state: ExchangeState) -> None:
        if state is not self._state:
            logger.debug("Redirect exchange: %s -> %s", self._state.value, state.value)
            self._state = state

    def begin_attempt(self) -> None:
        """Open a new attempt window, forgetting previously submitted tokens."""
        self._submitted.clear()
        self._set_state(ExchangeState.IDLE)

    def reset(self) -> None:
        """Return to IDLE and close the attempt window."""
        self.begin_attempt()

    def listen(self, channel: DeepLinkChannel) -> Any:
        """
        Handle every URL delivered on channel.

        Returns:
            Listener handle; call remove() to stop listening.
        """
        return channel.add_listener(self._spawn_deep_link)

    def _spawn_deep_link(self, url: str) -> None:
        task = asyncio.ensure_future(self.handle_redirect(url, RedirectSource.DEEP_LINK))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[ExchangeOutcome]") -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Deep link exchange crashed: %s", task.exception(), exc_info=task.exception()
            )

    async def drain(self) -> None:
        """Wait for in-flight deep-link exchanges."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_redirect(self, uri: str, source: RedirectSource) -> ExchangeOutcome:
        """
        Consume one redirect URI.

        Returns:
            The attempt outcome. A duplicate of an already submitted access
            token returns the first outcome, flagged duplicate, without a
            second exchange.
        """
        async with self._lock:
            previous_state = self._state
            self._set_state(ExchangeState.PARSING)
            try:
                tokens = parse_redirect_uri(uri)
            except MalformedRedirectError as e:
                previous = self._submitted.get(uri)
                if previous is not None:
                    self._set_state(previous_state)
                    return replace(previous, source=source, duplicate=True)
                logger.error("No valid tokens found in redirect from %s", source.value)
                outcome = self._fail(e, source)
                self._submitted[uri] = outcome
                return outcome

            previous = self._submitted.get(tokens.access_token)
            if previous is not None:
                logger.info(
                    "Token %s... already submitted; ignoring duplicate from %s",
                    tokens.access_token[:8],
                    source.value,
                )
                self._set_state(previous_state)
                return replace(previous, source=source, duplicate=True)

            outcome = await self._exchange(tokens, source)
            self._submitted[tokens.access_token] = outcome
            return outcome

    async def _exchange(self, tokens: RedirectTokens, source: RedirectSource) -> ExchangeOutcome:
        self._set_state(ExchangeState.EXCHANGING)
        logger.info("Setting session from %s redirect (token %s...)", source.value, tokens.access_token[:8])

        try:
            response = await self._auth.set_session(tokens.access_token, tokens.refresh_token)
        except AuthError as e:
            logger.error(f"Identity provider rejected tokens: {e}")
            return self._fail(ProviderAuthError(getattr(e, "message", None) or str(e)), source)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            return self._fail(ProviderAuthError(f"Could not reach identity provider: {e}"), source)

        user = getattr(response, "user", None)
        user_id = getattr(user, "id", None)
        logger.info(f"Session established for user {user_id}")

        self._set_state(ExchangeState.PERSISTING)
        stored = False
        if tokens.provider_token:
            try:
                await self._credentials.store(
                    tokens.provider_token, tokens.provider_refresh_token
                )
                stored = True
            except VaultError as e:
                logger.error(
                    "Session kept but provider token was not stored; calendar saves "
                    f"will require re-authentication: {e}"
                )
        else:
            logger.warning("Redirect carried no provider token; calendar access not granted")

        self._set_state(ExchangeState.COMPLETE)
        outcome = ExchangeOutcome(
            state=ExchangeState.COMPLETE,
            source=source,
            user_id=str(user_id) if user_id else None,
            provider_token_present=tokens.provider_token is not None,
            provider_credential_stored=stored,
        )
        self._notify(self._on_authenticated, outcome)
        return outcome

    def _fail(self, error: ItsunaniError, source: Optional[RedirectSource]) -> ExchangeOutcome:
        self._set_state(ExchangeState.FAILED)
        outcome = ExchangeOutcome(state=ExchangeState.FAILED, source=source, error=error)
        self._notify(self._on_failed, outcome)
        return outcome

    def _notify(self, hook: Optional[OutcomeHook], outcome: ExchangeOutcome) -> None:
        if hook is None:
            return
        try:
            hook(outcome)
        except Exception as e:
            logger.error(f"Exchange hook failed: {e}", exc_info=True)

    async def sign_in(self, browser: Any) -> ExchangeOutcome:
        """
        Run the interactive Google sign-in.

        Args:
            browser: Object with ``open_auth_session(url, redirect_to)``
                returning a BrowserAuthResult

        Returns:
            Outcome of the attempt. A cancelled or dismissed browser session
            returns an IDLE outcome and leaves no state behind.
        """
        self.begin_attempt()
        redirect_to = self._config.redirect_uri

        try:
            response = await self._auth.sign_in_with_oauth(
                {
                    "provider": self._config.provider,
                    "options": {
                        "redirect_to": redirect_to,
                        "scopes": get_scope_string(),
                        "query_params": dict(self._config.query_params),
                    },
                }
            )
        except AuthError as e:
            logger.error(f"Could not start Google sign-in: {e}")
            return self._fail(ProviderAuthError(getattr(e, "message", None) or str(e)), RedirectSource.BROWSER)

        logger.info("Opening browser for Google sign-in (redirect: %s)", redirect_to)
        result: BrowserAuthResult = await browser.open_auth_session(response.url, redirect_to)

        if result.type == BROWSER_SUCCESS and result.url:
            return await self.handle_redirect(result.url, RedirectSource.BROWSER)

        await self.drain()
        if self._state is ExchangeState.COMPLETE:
            # A deep-link exchange finished this attempt.
            return next(o for o in self._submitted.values() if o.succeeded)

        if result.type == BROWSER_CANCEL:
            logger.info("User cancelled Google sign-in")
            self.reset()
            return ExchangeOutcome(ExchangeState.IDLE, RedirectSource.BROWSER, cancelled=True)

        logger.warning("Browser auth session ended without a redirect: %s", result.type)
        self.reset()
        return ExchangeOutcome(ExchangeState.IDLE, RedirectSource.BROWSER)

    async def sign_out(self) -> None:
        """Delete both provider keys, end the identity session, return to IDLE."""
        try:
            await self._credentials.clear()
        finally:
            await self._auth.sign_out()
            self.reset()
        logger.info("Signed out")
