"""MCP Server initialization and entry point."""

import asyncio
from typing import Optional

from fastmcp import FastMCP

from ..app import ItsunaniApp
from ..utils.errors import ValidationError

# Initialize MCP Server
mcp = FastMCP("Itsunani")

# Global app, initialized lazily
_app: Optional[ItsunaniApp] = None
_app_lock = asyncio.Lock()


async def get_app() -> ItsunaniApp:
    """Get or create the global ItsunaniApp instance.

    Returns:
        The started ItsunaniApp instance.

    Raises:
        ConfigurationError: If the identity provider is not configured.
    """
    global _app
    async with _app_lock:
        if _app is None:
            _app = await ItsunaniApp.create()
    return _app


def set_app(app: Optional[ItsunaniApp]) -> None:
    """Replace the global app (None resets it)."""
    global _app
    _app = app


async def current_user_id(app: ItsunaniApp) -> str:
    """ID of the signed-in user.

    Raises:
        ValidationError: If nobody is signed in.
    """
    snapshot = await app.sessions.wait_until_known()
    if not snapshot.is_present or not snapshot.user_id:
        raise ValidationError("User not authenticated. Use sign_in_with_google first.")
    return snapshot.user_id


def peek_app() -> Optional[ItsunaniApp]:
    """The global app if one was created, without creating it."""
    return _app
