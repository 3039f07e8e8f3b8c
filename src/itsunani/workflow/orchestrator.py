"""
Extraction-save orchestration for Itsunani.

Drives the two-phase remote workflow: extract an event from an image or
text, then save it to the user's Google Calendar with the provider token
from the vault. The quota returned by the extraction is published before the
save is attempted, because the extraction has already consumed it.
"""

import logging
from typing import Any, Callable, List, Optional

import httpx
from google.oauth2.credentials import Credentials
from supabase import AuthError, PostgrestAPIError

from ..auth.provider_credentials import ProviderCredentialStore
from ..auth.session_reconciler import SessionReconciler, SessionTransition, Subscription
from ..client import ItsunaniApiClient, ProfileReader
from ..models import ExtractAndSaveResult, ExtractionInput, ExtractionResult
from ..utils.errors import (
    ItsunaniError,
    ProviderCredentialMissingError,
    ReauthenticationRequired,
    SessionExpiredError,
    ValidationError,
    VaultError,
)

logger = logging.getLogger(__name__)

QuotaListener = Callable[[Optional[int]], None]


class ExtractionSaveOrchestrator:
    """
    Runs extract -> resolve provider credential -> save.

    Observable state: ``remaining_quota``, ``pending`` (the extraction kept
    for a save-only retry) and ``last_error``.
    """

    def __init__(
        self,
        api: ItsunaniApiClient,
        credentials: ProviderCredentialStore,
        sessions: SessionReconciler,
        profiles: Optional[ProfileReader] = None,
    ) -> None:
        self._api = api
        self._credentials = credentials
        self._sessions = sessions
        self._profiles = profiles
        self._quota_listeners: List[QuotaListener] = []
        self._session_subscription: Optional[Subscription] = None

        self.remaining_quota: Optional[int] = None
        self.pending: Optional[ExtractionResult] = None
        self.last_error: Optional[ItsunaniError] = None

    def attach(self) -> None:
        """Drop per-user state whenever the session goes away."""
        if self._session_subscription is None:
            self._session_subscription = self._sessions.subscribe(self._on_session_change)

    def close(self) -> None:
        if self._session_subscription is not None:
            self._session_subscription.unsubscribe()
            self._session_subscription = None

    def _on_session_change(self, transition: SessionTransition) -> None:
        if transition.became_absent:
            logger.info("Session ended; discarding pending extraction and quota")
            self.pending = None
            self.last_error = None
            self._set_quota(None)

    def add_quota_listener(self, listener: QuotaListener) -> Callable[[], None]:
        """
        Call listener with every published quota value.

        Returns:
            Function removing the listener.
        """
        self._quota_listeners.append(listener)

        def remove() -> None:
            if listener in self._quota_listeners:
                self._quota_listeners.remove(listener)

        return remove

    def _set_quota(self, quota: Optional[int]) -> None:
        self.remaining_quota = quota
        for listener in list(self._quota_listeners):
            try:
                listener(quota)
            except Exception as e:
                logger.error(f"Quota listener failed: {e}", exc_info=True)

    def _require_session(self, user_id: str) -> None:
        snapshot = self._sessions.state
        if not user_id or not snapshot.is_present or snapshot.user_id != user_id:
            raise ValidationError("User not authenticated")

    def _record(self, error: ItsunaniError) -> None:
        self.last_error = error
        if isinstance(error, SessionExpiredError):
            logger.warning(
                "Calendar service rejected the stored provider token "
                f"(reason={error.reason}, extraction={error.extraction_id})"
            )
        elif isinstance(error, ProviderCredentialMissingError):
            logger.error(
                "No usable provider token in the vault "
                f"(reason={error.reason}, extraction={error.extraction_id})"
            )
        else:
            logger.warning(f"{type(error).__name__}: {error.message}")

    async def extract_and_save(
        self, user_id: str, extraction_input: ExtractionInput
    ) -> ExtractAndSaveResult:
        """
        Extract an event and save it to the calendar.

        Not idempotent: every call consumes one unit of quota server-side.

        Raises:
            ValidationError: Bad input or no matching session; no network call made.
            ExtractionFailedError: Phase 1 failed; nothing retained.
            ProviderCredentialMissingError: No provider token; result retained.
            SessionExpiredError: Provider token rejected; result retained.
            SaveFailedError: Save failed otherwise; result retained.
        """
        self.last_error = None
        try:
            extraction_input.validate()
            self._require_session(user_id)
            result = await self._api.extract_event(user_id, extraction_input)
        except ItsunaniError as e:
            self._record(e)
            raise

        self._set_quota(result.remaining_quota)
        self.pending = result
        return await self._save(user_id, result)

    async def retry_save(self, user_id: str) -> ExtractAndSaveResult:
        """
        Repeat only the save phase for the retained extraction.

        Raises:
            ValidationError: Nothing is pending or no matching session.
            Same save-phase errors as extract_and_save.
        """
        self.last_error = None
        try:
            if self.pending is None:
                raise ValidationError("No extracted event is waiting to be saved")
            self._require_session(user_id)
        except ValidationError as e:
            self._record(e)
            raise

        return await self._save(user_id, self.pending)

    def discard_pending(self) -> Optional[ExtractionResult]:
        """Drop the retained extraction (explicit cancellation)."""
        result, self.pending = self.pending, None
        if result is not None:
            logger.info(f"Discarded pending extraction {result.extraction_id}")
        return result

    async def _save(self, user_id: str, result: ExtractionResult) -> ExtractAndSaveResult:
        try:
            credentials = await self._load_credentials(result)
            await self._api.save_to_calendar(user_id, result, credentials)
        except ItsunaniError as e:
            self._record(e)
            raise

        if self.pending is result:
            self.pending = None
        await self.load_quota(user_id)
        quota = self.remaining_quota
        return ExtractAndSaveResult(
            event=result.event,
            remaining_quota=quota if quota is not None else result.remaining_quota,
        )

    async def _load_credentials(self, result: ExtractionResult) -> Credentials:
        try:
            credentials = await self._credentials.load()
        except VaultError as e:
            raise ProviderCredentialMissingError(
                "Credential vault is unreadable", result.extraction_id
            ) from e

        if credentials is None or not credentials.token:
            raise ProviderCredentialMissingError(extraction_id=result.extraction_id)
        return credentials

    async def load_quota(self, user_id: str) -> Optional[int]:
        """
        Refresh the quota from the user's profile.

        A failed or empty lookup leaves the current value in place.
        """
        if self._profiles is None:
            return self.remaining_quota

        try:
            quota = await self._profiles.get_remaining_quota(user_id)
        except (PostgrestAPIError, AuthError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Quota refresh failed, keeping {self.remaining_quota}: {e}")
            return self.remaining_quota

        if quota is not None:
            self._set_quota(quota)
        return self.remaining_quota

    @property
    def requires_reauthentication(self) -> bool:
        return isinstance(self.last_error, ReauthenticationRequired)


def describe_state(orchestrator: ExtractionSaveOrchestrator) -> dict:
    """Plain summary of the observable workflow state."""
    pending: Any = None
    if orchestrator.pending is not None:
        pending = {
            "extraction_id": orchestrator.pending.extraction_id,
            "title": orchestrator.pending.event.title,
        }
    return {
        "remaining_quota": orchestrator.remaining_quota,
        "pending": pending,
        "last_error": type(orchestrator.last_error).__name__ if orchestrator.last_error else None,
        "requires_reauthentication": orchestrator.requires_reauthentication,
    }
