"""Calendar save operations."""
import logging

import httpx
from google.oauth2.credentials import Credentials

from ..models import ExtractionResult
from ..utils.constants import SAVE_TO_CALENDAR_PATH
from ..utils.errors import SaveFailedError, handle_http_error

logger = logging.getLogger(__name__)


class CalendarMixin:
    """Mixin for the remote calendar-save service."""

    async def save_to_calendar(
        self,
        user_id: str,
        result: ExtractionResult,
        credentials: Credentials,
    ) -> None:
        """Write an extracted event to the user's Google Calendar.

        The service de-duplicates writes by extraction ID, so repeating this
        call for the same result is safe.

        Args:
            user_id: ID of the signed-in user.
            result: The extraction to save.
            credentials: Google provider credential from the vault.

        Raises:
            SessionExpiredError: If the service rejects the provider token (401).
            SaveFailedError: For any other failure.
        """
        body = {
            "userId": user_id,
            "extractionId": result.extraction_id,
            "event": result.event.to_payload(),
            "providerToken": credentials.token,
            "providerRefreshToken": credentials.refresh_token,
        }

        try:
            status, payload = await self._post_json(SAVE_TO_CALENDAR_PATH, body)
        except httpx.HTTPError as e:
            logger.error(f"Calendar save request failed: {e}")
            raise SaveFailedError(
                "Failed to save event. Make sure your API server is running.",
                result.extraction_id,
            ) from e

        if not 200 <= status < 300:
            raise handle_http_error(status, payload, "save", result.extraction_id)

        logger.info(f"Saved '{result.event.title}' to calendar ({result.extraction_id})")
