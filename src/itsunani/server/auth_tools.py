"""Authentication MCP tools for Itsunani."""

import logging

from .main import mcp, get_app
from ..auth.redirect_receiver import ensure_redirect_receiver_available
from ..utils.errors import ItsunaniError, format_error
from ..workflow import describe_state

logger = logging.getLogger(__name__)


@mcp.tool()
async def sign_in_with_google() -> str:
    """
    Sign in with Google and grant access to Google Calendar.

    Opens the system browser. The call returns once the browser redirects
    back, the user cancels, or the browser session is dismissed.

    Returns:
        Sign-in result message.
    """
    try:
        app = await get_app()
        success, error_msg = ensure_redirect_receiver_available(
            app.channel,
            port=app.config.callback_port,
            base_uri=app.config.callback_host,
        )
        if not success:
            return f"**Error:** Redirect receiver unavailable: {error_msg}"

        outcome = await app.exchanger.sign_in(app.browser)
    except ItsunaniError as e:
        return format_error("Sign in", e)

    if outcome.cancelled:
        return "Sign-in cancelled."
    if outcome.error is not None:
        return format_error("Sign in", outcome.error)
    if not outcome.succeeded:
        return "Sign-in did not complete. Please try again."

    lines = [f"Signed in as user {outcome.user_id}."]
    if not outcome.provider_credential_stored:
        lines.append(
            "Google Calendar access was not stored. Sign out and sign in again "
            "before saving events."
        )
    return "\n".join(lines)


@mcp.tool()
async def sign_out() -> str:
    """
    Sign out and forget the Google Calendar connection.

    Returns:
        Confirmation message.
    """
    try:
        app = await get_app()
        await app.exchanger.sign_out()
    except ItsunaniError as e:
        return format_error("Sign out", e)
    return "Signed out."


@mcp.tool()
async def auth_status() -> str:
    """
    Report the sign-in session and the Google Calendar connection separately.

    Returns:
        Status summary.
    """
    try:
        app = await get_app()
        status = await app.auth_status()
    except ItsunaniError as e:
        return format_error("Auth status", e)

    session = status.session
    lines = [
        f"Session: {session.state.value}"
        + (f" ({session.email or session.user_id})" if session.is_present else ""),
        f"Google Calendar connected: {'yes' if status.provider_credential_present else 'no'}",
    ]
    if status.needs_sign_in:
        lines.append("Use sign_in_with_google to sign in.")
    elif status.needs_reconnect:
        lines.append("Please sign out and sign in again to connect Google Calendar.")

    state = describe_state(app.orchestrator)
    if state["pending"]:
        lines.append(
            f"Pending event: {state['pending']['title']} "
            f"({state['pending']['extraction_id']})"
        )
    return "\n".join(lines)
