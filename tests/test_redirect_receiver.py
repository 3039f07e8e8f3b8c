"""Unit tests for the deep-link channel, browser session and loopback receiver."""
import asyncio
import socket
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import REDIRECT
from itsunani.auth.redirect_receiver import (
    CALLBACK_PATH,
    CANCEL_PATH,
    DeepLinkChannel,
    MinimalRedirectServer,
    SystemBrowserAuthSession,
    create_receiver_app,
)


class TestDeepLinkChannel:
    """Tests for listener registration and delivery."""

    def test_listeners_called_in_registration_order(self):
        channel = DeepLinkChannel()
        calls = []
        channel.add_listener(lambda url: calls.append(("first", url)))
        channel.add_listener(lambda url: calls.append(("second", url)))

        channel.emit("itsunani://#x")

        assert calls == [("first", "itsunani://#x"), ("second", "itsunani://#x")]

    def test_removed_listener_not_called(self):
        channel = DeepLinkChannel()
        callback = Mock()
        handle = channel.add_listener(callback)
        handle.remove()
        handle.remove()

        channel.emit("itsunani://#x")

        callback.assert_not_called()
        assert channel.listener_count == 0

    def test_failing_listener_is_isolated(self):
        channel = DeepLinkChannel()
        callback = Mock()
        channel.add_listener(Mock(side_effect=RuntimeError("bug")))
        channel.add_listener(callback)

        channel.emit("itsunani://#x")

        callback.assert_called_once_with("itsunani://#x")

    def test_emit_threadsafe_without_loop_delivers_inline(self):
        channel = DeepLinkChannel()
        callback = Mock()
        channel.add_listener(callback)
        channel.emit_threadsafe("itsunani://#x")
        callback.assert_called_once_with("itsunani://#x")

    @pytest.mark.asyncio
    async def test_emit_threadsafe_schedules_on_bound_loop(self):
        channel = DeepLinkChannel(asyncio.get_running_loop())
        callback = Mock()
        channel.add_listener(callback)

        channel.emit_threadsafe("itsunani://#x")
        callback.assert_not_called()

        await asyncio.sleep(0)
        callback.assert_called_once_with("itsunani://#x")

    def test_cancel_listeners(self):
        channel = DeepLinkChannel()
        on_cancel = Mock()
        on_url = Mock()
        channel.add_cancel_listener(on_cancel)
        channel.add_listener(on_url)

        channel.emit_cancel()

        on_cancel.assert_called_once_with()
        on_url.assert_not_called()


class TestSystemBrowserAuthSession:
    """Tests for waiting on the redirect after opening the browser."""

    def setup_method(self):
        self.channel = DeepLinkChannel()
        self.session = SystemBrowserAuthSession(self.channel)

    async def _open(self):
        task = asyncio.ensure_future(
            self.session.open_auth_session("https://idp.test/authorize", "itsunani://")
        )
        await asyncio.sleep(0)
        return task

    @pytest.mark.asyncio
    async def test_success_returns_url(self):
        with patch("itsunani.auth.redirect_receiver.webbrowser.open", return_value=True) as mock_open:
            task = await self._open()
            self.channel.emit("https://unrelated.test/#x")
            self.channel.emit(REDIRECT)
            result = await task

        mock_open.assert_called_once_with("https://idp.test/authorize")
        assert result.type == "success"
        assert result.url == REDIRECT
        assert self.channel.listener_count == 0

    @pytest.mark.asyncio
    async def test_cancel(self):
        with patch("itsunani.auth.redirect_receiver.webbrowser.open", return_value=True):
            task = await self._open()
            self.channel.emit_cancel()
            result = await task

        assert result.type == "cancel"
        assert result.url is None

    @pytest.mark.asyncio
    async def test_no_browser_is_dismiss(self):
        with patch("itsunani.auth.redirect_receiver.webbrowser.open", return_value=False):
            result = await self.session.open_auth_session(
                "https://idp.test/authorize", "itsunani://"
            )

        assert result.type == "dismiss"
        assert self.channel.listener_count == 0


class TestReceiverApp:
    """Tests for the loopback HTTP endpoints."""

    def setup_method(self):
        self.channel = DeepLinkChannel()
        self.received = []
        self.cancelled = []
        self.channel.add_listener(self.received.append)
        self.channel.add_cancel_listener(lambda: self.cancelled.append(True))
        self.client = TestClient(create_receiver_app(self.channel))

    def test_forwarding_page_posts_full_location(self):
        response = self.client.get(CALLBACK_PATH)
        assert response.status_code == 200
        assert "window.location.href" in response.text
        assert CANCEL_PATH in response.text
        assert self.received == []

    def test_post_emits_url(self):
        response = self.client.post(CALLBACK_PATH, json={"url": REDIRECT})
        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert self.received == [REDIRECT]

    def test_empty_url_rejected(self):
        response = self.client.post(CALLBACK_PATH, json={"url": "   "})
        assert response.status_code == 400
        assert self.received == []

    def test_missing_url_rejected(self):
        response = self.client.post(CALLBACK_PATH, json={})
        assert response.status_code == 422
        assert self.received == []

    def test_cancel_page(self):
        response = self.client.get(CANCEL_PATH)
        assert response.status_code == 200
        assert "cancelled" in response.text
        assert self.cancelled == [True]


class TestLoopbackRedirect:
    """The default redirect URI lands on the loopback receiver."""

    @pytest.mark.asyncio
    async def test_posted_redirect_resolves_browser_session(self, oauth_config):
        channel = DeepLinkChannel(asyncio.get_running_loop())
        client = TestClient(create_receiver_app(channel))
        session = SystemBrowserAuthSession(channel)
        redirect = f"{oauth_config.redirect_uri}#access_token=a&refresh_token=r"

        with patch("itsunani.auth.redirect_receiver.webbrowser.open", return_value=True):
            task = asyncio.ensure_future(
                session.open_auth_session(
                    "https://idp.test/authorize", oauth_config.redirect_uri
                )
            )
            await asyncio.sleep(0)
            response = client.post(CALLBACK_PATH, json={"url": redirect})
            result = await asyncio.wait_for(task, timeout=1)

        assert oauth_config.redirect_uri == f"{oauth_config.callback_url}{CALLBACK_PATH}"
        assert response.json() == {"received": True}
        assert result.type == "success"
        assert result.url == redirect


class TestMinimalRedirectServer:
    """Tests for the background server lifecycle."""

    def test_port_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("localhost", 0))
            port = s.getsockname()[1]

            server = MinimalRedirectServer(DeepLinkChannel(), port=port)
            success, error_msg = server.start()

        assert not success
        assert error_msg == f"Port {port} is already in use"
        assert not server.is_running

    def test_stop_when_not_running_is_noop(self):
        server = MinimalRedirectServer(DeepLinkChannel(), port=0)
        server.stop()
        assert not server.is_running
