"""
Deep-link receiver for Itsunani.

Redirect URIs reach the process through a DeepLinkChannel. On a desktop the
channel is fed by a minimal loopback HTTP server: the identity provider
redirects the browser to a page on that server, and the page posts its full
URL (fragment included, which browsers never send to servers) back to it.
An OS-registered handler for the app scheme can post to the same endpoint.
"""

import asyncio
import logging
import socket
import threading
import time
import webbrowser
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from ..utils.constants import (
    BROWSER_CANCEL,
    BROWSER_DISMISS,
    BROWSER_SUCCESS,
    REDIRECT_CALLBACK_PATH,
)

logger = logging.getLogger(__name__)

CALLBACK_PATH = REDIRECT_CALLBACK_PATH
CANCEL_PATH = "/auth/cancel"


class _Listener:
    """Registration handle returned by DeepLinkChannel."""

    def __init__(self, registry: List["_Listener"], callback: Callable[..., None]) -> None:
        self._registry = registry
        self.callback = callback

    def remove(self) -> None:
        if self in self._registry:
            self._registry.remove(self)


class DeepLinkChannel:
    """
    Event channel delivering redirect URLs to listeners in registration order.

    emit() must run on the event loop thread; other threads use
    emit_threadsafe().
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._url_listeners: List[_Listener] = []
        self._cancel_listeners: List[_Listener] = []

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def listener_count(self) -> int:
        return len(self._url_listeners)

    def add_listener(self, callback: Callable[[str], None]) -> _Listener:
        listener = _Listener(self._url_listeners, callback)
        self._url_listeners.append(listener)
        return listener

    def add_cancel_listener(self, callback: Callable[[], None]) -> _Listener:
        listener = _Listener(self._cancel_listeners, callback)
        self._cancel_listeners.append(listener)
        return listener

    def emit(self, url: str) -> None:
        logger.info("Deep link received (%d chars)", len(url))
        for listener in list(self._url_listeners):
            try:
                listener.callback(url)
            except Exception as e:
                logger.error(f"Deep link listener failed: {e}", exc_info=True)

    def emit_cancel(self) -> None:
        logger.info("Browser auth session cancelled by user")
        for listener in list(self._cancel_listeners):
            try:
                listener.callback()
            except Exception as e:
                logger.error(f"Cancel listener failed: {e}", exc_info=True)

    def _dispatch(self, fn: Callable[..., None], *args: str) -> None:
        if self._loop is None or self._loop.is_closed():
            fn(*args)
        else:
            self._loop.call_soon_threadsafe(fn, *args)

    def emit_threadsafe(self, url: str) -> None:
        self._dispatch(self.emit, url)

    def emit_cancel_threadsafe(self) -> None:
        self._dispatch(self.emit_cancel)


@dataclass(frozen=True)
class BrowserAuthResult:
    """Terminal outcome of an interactive browser-auth session."""

    type: str
    url: Optional[str] = None


class SystemBrowserAuthSession:
    """Opens the system browser and waits for the redirect on a channel."""

    def __init__(self, channel: DeepLinkChannel) -> None:
        self.channel = channel

    async def open_auth_session(self, auth_url: str, redirect_to: str) -> BrowserAuthResult:
        """
        Open auth_url and wait, without timeout, for a URL under redirect_to.

        Returns:
            BrowserAuthResult of type success (with url), cancel or dismiss.
        """
        loop = asyncio.get_running_loop()
        result: "asyncio.Future[BrowserAuthResult]" = loop.create_future()

        def on_url(url: str) -> None:
            if not result.done() and url.startswith(redirect_to):
                result.set_result(BrowserAuthResult(BROWSER_SUCCESS, url))

        def on_cancel() -> None:
            if not result.done():
                result.set_result(BrowserAuthResult(BROWSER_CANCEL))

        url_listener = self.channel.add_listener(on_url)
        cancel_listener = self.channel.add_cancel_listener(on_cancel)
        try:
            opened = await asyncio.to_thread(webbrowser.open, auth_url)
            if not opened:
                logger.warning("No browser available to open the sign-in page")
                return BrowserAuthResult(BROWSER_DISMISS)
            return await result
        finally:
            url_listener.remove()
            cancel_listener.remove()


class RedirectPayload(BaseModel):
    url: str


_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
  body {{ font-family: system-ui, sans-serif; background: #F8F9FA; color: #333;
         max-width: 28rem; margin: 18vh auto; text-align: center; }}
  p {{ color: #666; }}
</style>
</head>
<body>
<h1 id="title">{heading}</h1>
<p id="detail">{detail}</p>
{extra}
</body>
</html>
"""

# Browsers never send the fragment to the server, so the page posts it back.
_FORWARD_SCRIPT = """<p><a href="%s">Cancel</a></p>
<script>
fetch("%s", {
  method: "POST",
  headers: {"Content-Type": "application/json"},
  body: JSON.stringify({url: window.location.href})
}).then(function (response) {
  document.getElementById("title").textContent =
    response.ok ? "Signed in" : "Sign-in failed";
  document.getElementById("detail").textContent =
    "You can close this window and return to the application.";
});
</script>""" % (CANCEL_PATH, CALLBACK_PATH)


def _forwarding_page() -> str:
    return _PAGE.format(
        title="Signing in to Itsunani",
        heading="Signing in...",
        detail="Please wait.",
        extra=_FORWARD_SCRIPT,
    )


def _cancelled_page() -> str:
    return _PAGE.format(
        title="Sign-in cancelled",
        heading="Sign-in cancelled",
        detail="You can close this window and return to the application.",
        extra="",
    )


def create_receiver_app(channel: DeepLinkChannel) -> FastAPI:
    """Build the FastAPI app serving the redirect endpoints."""
    app = FastAPI()

    @app.get(CALLBACK_PATH)
    async def forwarding_page() -> HTMLResponse:
        return HTMLResponse(content=_forwarding_page())

    @app.post(CALLBACK_PATH)
    async def receive_redirect(payload: RedirectPayload) -> JSONResponse:
        """Accept a redirect URL from the forwarding page or an OS handler."""
        url = payload.url.strip()
        if not url:
            logger.error("Redirect receiver got an empty URL")
            return JSONResponse({"received": False, "error": "Empty URL"}, status_code=400)

        channel.emit_threadsafe(url)
        return JSONResponse({"received": True})

    @app.get(CANCEL_PATH)
    async def cancel() -> HTMLResponse:
        channel.emit_cancel_threadsafe()
        return HTMLResponse(content=_cancelled_page())

    return app


def _port_open(hostname: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((hostname, port)) == 0


class MinimalRedirectServer:
    """
    Loopback server delivering redirects to a DeepLinkChannel.
    Started on first sign-in and run by uvicorn on a daemon thread.
    """

    def __init__(
        self,
        channel: DeepLinkChannel,
        port: int = 9878,
        base_uri: str = "http://localhost",
    ) -> None:
        self.port = port
        self.base_uri = base_uri
        self.hostname = urlparse(base_uri).hostname or "localhost"
        self.app = create_receiver_app(channel)
        self.server: Optional[uvicorn.Server] = None
        self.server_thread: Optional[threading.Thread] = None
        self.is_running = False

    def _serve(self) -> None:
        try:
            self.server = uvicorn.Server(
                uvicorn.Config(
                    self.app,
                    host=self.hostname,
                    port=self.port,
                    log_level="warning",
                    access_log=False,
                )
            )
            asyncio.run(self.server.serve())
        except Exception as e:
            logger.error(f"Redirect server error: {e}", exc_info=True)
        finally:
            self.is_running = False

    def start(self, startup_timeout: float = 3.0) -> Tuple[bool, str]:
        """
        Start serving unless already running.

        Returns:
            Tuple of (success: bool, error_message: str)
        """
        if self.is_running:
            return True, ""

        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((self.hostname, self.port))
        except OSError:
            error_msg = f"Port {self.port} is already in use"
            logger.error(error_msg)
            return False, error_msg

        self.server_thread = threading.Thread(target=self._serve, daemon=True)
        self.server_thread.start()

        deadline = time.monotonic() + startup_timeout
        while time.monotonic() < deadline:
            if _port_open(self.hostname, self.port):
                self.is_running = True
                logger.info(f"Redirect receiver listening on {self.hostname}:{self.port}")
                return True, ""
            time.sleep(0.1)

        error_msg = f"Redirect receiver did not start on {self.hostname}:{self.port}"
        logger.error(error_msg)
        return False, error_msg

    def stop(self) -> None:
        if not self.is_running:
            return
        if self.server is not None:
            self.server.should_exit = True
        if self.server_thread is not None:
            self.server_thread.join(timeout=3.0)
        self.is_running = False
        logger.info("Redirect receiver stopped")


# Global instance
_redirect_server: Optional[MinimalRedirectServer] = None


def ensure_redirect_receiver_available(
    channel: DeepLinkChannel,
    port: int = 9878,
    base_uri: str = "http://localhost",
) -> Tuple[bool, str]:
    """
    Ensure the loopback redirect endpoint is available, starting it if needed.

    Returns:
        Tuple of (success: bool, error_message: str)
    """
    global _redirect_server

    if _redirect_server is None:
        logger.info(f"Creating redirect server on {base_uri}:{port}")
        _redirect_server = MinimalRedirectServer(channel, port, base_uri)

    if _redirect_server.is_running:
        return True, ""
    return _redirect_server.start()


def cleanup_redirect_receiver() -> None:
    """Stop the redirect server if it was started."""
    global _redirect_server
    if _redirect_server:
        _redirect_server.stop()
        _redirect_server = None
