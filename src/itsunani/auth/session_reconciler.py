"""
Session Reconciler for Itsunani.

This module tracks whether an identity-provider session is present and fans
every change out to independent subscribers. Each subscriber owns its
subscription and must release it when it goes away.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional

logger = logging.getLogger(__name__)

INITIAL_SESSION_EVENT = "INITIAL_SESSION"


class SessionState(str, Enum):
    """Presence of the identity-provider session."""

    UNKNOWN = "unknown"
    ABSENT = "absent"
    PRESENT = "present"


@dataclass(frozen=True)
class SessionSnapshot:
    """Observed session state plus the user it belongs to."""

    state: SessionState
    user_id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return self.state is SessionState.PRESENT

    @property
    def is_known(self) -> bool:
        return self.state is not SessionState.UNKNOWN

    @classmethod
    def from_session(cls, session: Any) -> "SessionSnapshot":
        """Build a snapshot from an identity-client session object (or None)."""
        user = getattr(session, "user", None) if session is not None else None
        user_id = getattr(user, "id", None)
        if not user_id:
            return cls(SessionState.ABSENT)
        return cls(SessionState.PRESENT, str(user_id), getattr(user, "email", None))


UNKNOWN_SESSION = SessionSnapshot(SessionState.UNKNOWN)


@dataclass(frozen=True)
class SessionTransition:
    """One folded auth event."""

    event: str
    previous: SessionSnapshot
    current: SessionSnapshot

    @property
    def became_present(self) -> bool:
        return self.current.is_present and not self.previous.is_present

    @property
    def became_absent(self) -> bool:
        return self.previous.is_present and not self.current.is_present


SessionListener = Callable[[SessionTransition], None]


class Subscription:
    """Handle for one subscriber. Usable as a context manager."""

    def __init__(self, reconciler: "SessionReconciler", listener: SessionListener) -> None:
        self._reconciler = reconciler
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._reconciler._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class SessionReconciler:
    """
    Folds identity-client auth events into a session state.

    State is UNKNOWN until restore() resolves. Every folded event is delivered
    to every live subscriber in fold order, without coalescing.
    """

    def __init__(self, auth: Any) -> None:
        """
        Args:
            auth: The identity client's auth API (``client.auth``).
        """
        self._auth = auth
        self._state = UNKNOWN_SESSION
        self._subscriptions: List[Subscription] = []
        self._provider_subscription: Any = None
        self._known = asyncio.Event()

    @property
    def state(self) -> SessionSnapshot:
        return self._state

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def restore(self) -> SessionSnapshot:
        """
        Read the persisted session once at startup.

        A failed read resolves to ABSENT so consumers can route to sign-in.
        """
        try:
            session = await self._auth.get_session()
        except Exception as e:
            logger.error(f"Failed to restore persisted session: {e}")
            session = None

        self._fold(INITIAL_SESSION_EVENT, session)
        self._known.set()
        return self._state

    async def wait_until_known(self) -> SessionSnapshot:
        """Wait for the initial restoration to resolve."""
        await self._known.wait()
        return self._state

    def attach(self) -> None:
        """Subscribe to the identity client's auth state changes."""
        if self._provider_subscription is not None:
            return
        self._provider_subscription = self._auth.on_auth_state_change(
            self.handle_auth_event
        )
        logger.debug("Attached to identity client auth events")

    def detach(self) -> None:
        """Release the identity client subscription."""
        if self._provider_subscription is None:
            return
        self._provider_subscription.unsubscribe()
        self._provider_subscription = None
        logger.debug("Detached from identity client auth events")

    def handle_auth_event(self, event: Any, session: Any) -> None:
        """Fold one ``(event, session)`` pair delivered by the identity client."""
        self._fold(str(getattr(event, "value", event)), session)
        self._known.set()

    def _fold(self, event: str, session: Any) -> None:
        previous = self._state
        current = SessionSnapshot.from_session(session)
        self._state = current
        transition = SessionTransition(event, previous, current)

        logger.info(
            "Auth event %s: %s -> %s", event, previous.state.value, current.state.value
        )

        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.listener(transition)
            except Exception as e:
                logger.error(f"Session subscriber failed on {event}: {e}", exc_info=True)

    def subscribe(self, listener: SessionListener) -> Subscription:
        """
        Register a listener for every future transition.

        Returns:
            Subscription that must be released with unsubscribe().
        """
        subscription = Subscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    async def transitions(self) -> AsyncIterator[SessionTransition]:
        """
        Iterate over transitions as they are folded.

        The underlying subscription lives exactly as long as the iteration.
        """
        queue: "asyncio.Queue[SessionTransition]" = asyncio.Queue()
        subscription = self.subscribe(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            subscription.unsubscribe()
