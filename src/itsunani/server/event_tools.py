"""Event extraction MCP tools."""
import json
import logging
from typing import Optional

from .main import mcp, get_app, peek_app, current_user_id
from ..models import ExtractAndSaveResult, ExtractionInput
from ..utils.errors import ItsunaniError, ReauthenticationRequired, format_error

logger = logging.getLogger(__name__)


def _saved_message(result: ExtractAndSaveResult) -> str:
    return (
        f'Event Saved! "{result.event.title}" has been added to your Google Calendar.\n\n'
        f"{result.remaining_quota} extractions remaining."
    )


def _failure_message(action: str, error: ItsunaniError, pending: bool) -> str:
    message = format_error(action, error)
    if isinstance(error, ReauthenticationRequired):
        message += "\nUse sign_out, then sign_in_with_google."
    if pending:
        message += "\nThe extracted event was kept; use retry_calendar_save to try again."
    return message


@mcp.tool()
async def extract_and_save_event(
    text: Optional[str] = None, image_base64: Optional[str] = None
) -> str:
    """
    Extract an event from text or an image and add it to Google Calendar.
    Each call uses one extraction from the user's quota.
    Args:
        text: Event description, e.g. "Dinner at 7pm Friday".
        image_base64: Base64-encoded screenshot or photo. Use instead of text.
    """
    try:
        app = await get_app()
        user_id = await current_user_id(app)
        result = await app.orchestrator.extract_and_save(
            user_id, ExtractionInput(image_data=image_base64, text=text)
        )
        return _saved_message(result)
    except ItsunaniError as e:
        pending = _app_has_pending()
        return _failure_message("Extract event", e, pending)


@mcp.tool()
async def retry_calendar_save() -> str:
    """
    Retry saving the last extracted event without extracting it again.
    Does not use quota.
    """
    try:
        app = await get_app()
        user_id = await current_user_id(app)
        result = await app.orchestrator.retry_save(user_id)
        return _saved_message(result)
    except ItsunaniError as e:
        return _failure_message("Save event", e, _app_has_pending())


@mcp.tool()
async def discard_pending_event() -> str:
    """Forget the extracted event that is waiting to be saved."""
    try:
        app = await get_app()
    except ItsunaniError as e:
        return format_error("Discard event", e)
    result = app.orchestrator.discard_pending()
    if result is None:
        return "No pending event."
    return f'Discarded "{result.event.title}".'


@mcp.tool()
async def get_remaining_quota() -> str:
    """Get how many extractions the user has left."""
    try:
        app = await get_app()
        user_id = await current_user_id(app)
        quota = await app.orchestrator.load_quota(user_id)
    except ItsunaniError as e:
        return format_error("Quota lookup", e)
    if quota is None:
        return "Remaining extractions: unknown"
    return f"Remaining extractions: {quota}"


@mcp.tool()
async def get_account_info() -> str:
    """Show the signed-in user's name, email and remaining extractions."""
    try:
        app = await get_app()
        user_id = await current_user_id(app)
        account = await app.profiles.get_account()
        quota = await app.orchestrator.load_quota(user_id)
    except ItsunaniError as e:
        return format_error("Account lookup", e)

    account = account or {}
    return "\n".join(
        [
            f"Name: {account.get('name') or 'N/A'}",
            f"Email: {account.get('email') or 'N/A'}",
            f"Remaining extractions: {quota if quota is not None else 'unknown'}",
        ]
    )


@mcp.tool()
async def debug_user() -> str:
    """Show the API server's diagnostic view of the signed-in user."""
    try:
        app = await get_app()
        user_id = await current_user_id(app)
        data = await app.api.debug_user(user_id)
    except ItsunaniError as e:
        return format_error("Debug", e)
    return json.dumps(data, indent=2)


def _app_has_pending() -> bool:
    app = peek_app()
    return app is not None and app.orchestrator.pending is not None
