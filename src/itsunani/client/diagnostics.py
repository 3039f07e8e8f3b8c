"""Diagnostic lookups."""
import logging
from typing import Any, Dict

import httpx

from ..utils.constants import DEBUG_USER_PATH
from ..utils.errors import ItsunaniError

logger = logging.getLogger(__name__)


class DiagnosticsMixin:
    """Mixin for the remote debug endpoint."""

    async def debug_user(self, user_id: str) -> Dict[str, Any]:
        """Fetch the service's diagnostic view of a user.

        Raises:
            ItsunaniError: If the lookup fails.
        """
        try:
            status, payload = await self._post_json(DEBUG_USER_PATH, {"userId": user_id})
        except httpx.HTTPError as e:
            raise ItsunaniError(f"Debug lookup failed: {e}") from e

        if not 200 <= status < 300 or not isinstance(payload, dict):
            raise ItsunaniError(f"Debug lookup failed (HTTP {status})")
        return payload
