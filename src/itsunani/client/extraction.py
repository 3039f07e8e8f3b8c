"""Event extraction operations."""
import logging

import httpx

from ..models import ExtractionInput, ExtractionResult
from ..utils.constants import EXTRACT_EVENT_PATH
from ..utils.errors import ExtractionFailedError, handle_http_error

logger = logging.getLogger(__name__)


class ExtractionMixin:
    """Mixin for the remote extraction service."""

    async def extract_event(
        self, user_id: str, extraction_input: ExtractionInput
    ) -> ExtractionResult:
        """Extract a structured event from an image or text.

        Args:
            user_id: ID of the signed-in user.
            extraction_input: Image (base64) or text to extract from.

        Returns:
            The extracted event, its extraction ID and the remaining quota.

        Raises:
            ExtractionFailedError: If the service fails or cannot be reached.
        """
        try:
            status, payload = await self._post_json(
                EXTRACT_EVENT_PATH, extraction_input.to_payload(user_id)
            )
        except httpx.HTTPError as e:
            logger.error(f"Extraction request failed: {e}")
            raise ExtractionFailedError(
                "Failed to process event. Make sure your API server is running."
            ) from e

        if not 200 <= status < 300:
            error = handle_http_error(status, payload, "extract")
            logger.warning(f"Extraction rejected (HTTP {status}): {error.message}")
            raise error

        try:
            result = ExtractionResult.from_payload(payload)
        except (AttributeError, TypeError, ValueError) as e:
            raise ExtractionFailedError(f"Malformed extraction response: {e}") from e

        logger.info(
            f"Extracted event '{result.event.title}' "
            f"({result.extraction_id}, {result.remaining_quota} left)"
        )
        return result
