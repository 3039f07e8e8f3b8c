"""Shared fixtures and fakes for the Itsunani tests."""
import json
import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import httpx
import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from itsunani.auth.credential_vault import InMemoryCredentialVault  # noqa: E402
from itsunani.auth.oauth_config import OAuthConfig  # noqa: E402
from itsunani.client import ItsunaniApiClient  # noqa: E402

API_BASE = "http://api.test"

REDIRECT = (
    "itsunani://#access_token=at-123456789&refresh_token=rt-1"
    "&provider_token=ya29.provider&provider_refresh_token=1//refresh"
    "&expires_in=3600&token_type=bearer"
)


def make_session(user_id="user-1", email="ada@example.com"):
    """Session object shaped like the identity client's."""
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, email=email),
        access_token="at-123456789",
    )


class FakeAuth:
    """Stand-in for the identity client's ``auth`` API."""

    def __init__(self, session=None, user_id="user-1"):
        self.listeners = []
        self.get_session = AsyncMock(return_value=session)
        self.set_session = AsyncMock(
            return_value=SimpleNamespace(
                user=SimpleNamespace(id=user_id, email="ada@example.com"),
                session=make_session(user_id),
            )
        )
        self.sign_in_with_oauth = AsyncMock(
            return_value=SimpleNamespace(
                provider="google", url="https://idp.test/authorize?provider=google"
            )
        )
        self.sign_out = AsyncMock(return_value=None)
        self.get_user = AsyncMock(
            return_value=SimpleNamespace(
                user=SimpleNamespace(
                    id=user_id,
                    email="ada@example.com",
                    user_metadata={"full_name": "Ada Lovelace"},
                )
            )
        )

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        subscription = Mock()
        subscription.unsubscribe.side_effect = lambda: self.listeners.remove(callback)
        return subscription

    def fire(self, event, session):
        for callback in list(self.listeners):
            callback(event, session)


def make_identity(auth=None, quota=4):
    """Identity client with ``auth`` and a ``profiles`` table returning quota."""
    identity = MagicMock()
    identity.auth = auth or FakeAuth()
    rows = [] if quota is None else [{"trial_events_remaining": quota}]
    query = identity.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute = AsyncMock(return_value=SimpleNamespace(data=rows))
    return identity


class ApiRecorder:
    """httpx handler serving canned responses per path and recording requests."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def on(self, path, *responses):
        """Queue responses for path; the last one repeats."""
        self.responses[path] = list(responses)

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]

    def bodies(self, path):
        return [json.loads(r.content) for r in self.calls(path)]

    def __call__(self, request):
        self.requests.append(request)
        queued = self.responses.get(request.url.path)
        if not queued:
            return httpx.Response(404, json={"error": "Not found"})
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


def extraction_response(extraction_id="e1", quota=4):
    return httpx.Response(
        200,
        json={
            "event": {"title": "Dinner", "startDate": "2025-01-10T19:00:00Z"},
            "extractionId": extraction_id,
            "remainingQuota": quota,
        },
    )


@pytest.fixture
def vault():
    return InMemoryCredentialVault()


@pytest.fixture
def oauth_config(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test")
    monkeypatch.setenv("SUPABASE_PUBLISHABLE_KEY", "sb_publishable_test")
    for name in ("ITSUNANI_REDIRECT_URI", "ITSUNANI_CALLBACK_HOST", "ITSUNANI_CALLBACK_PORT"):
        monkeypatch.delenv(name, raising=False)
    return OAuthConfig()


@pytest.fixture
def recorder():
    return ApiRecorder()


@pytest.fixture
def api(recorder):
    return ItsunaniApiClient(
        base_url=API_BASE,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
    )


class ScriptedBrowser:
    """Browser-auth session returning a fixed result."""

    def __init__(self, result, before_return=None):
        self.result = result
        self.before_return = before_return
        self.calls = []

    async def open_auth_session(self, auth_url, redirect_to):
        self.calls.append((auth_url, redirect_to))
        if self.before_return is not None:
            await self.before_return()
        return self.result
