"""Profile and account reads through the identity provider's data API."""
import logging
from typing import Any, Dict, Optional

from ..utils.constants import PROFILES_TABLE, QUOTA_COLUMN

logger = logging.getLogger(__name__)


class ProfileReader:
    """Reads the user's profile row and account details."""

    def __init__(self, client: Any) -> None:
        """
        Args:
            client: The Supabase AsyncClient.
        """
        self._client = client

    async def get_remaining_quota(self, user_id: str) -> Optional[int]:
        """Read ``trial_events_remaining`` for a user.

        Returns:
            The quota, or None if the user has no profile row.
        """
        response = await (
            self._client.table(PROFILES_TABLE)
            .select(QUOTA_COLUMN)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows or rows[0].get(QUOTA_COLUMN) is None:
            logger.warning(f"No profile quota found for user {user_id}")
            return None
        return int(rows[0][QUOTA_COLUMN])

    async def get_account(self) -> Optional[Dict[str, Any]]:
        """Name, email and ID of the signed-in user, or None when signed out."""
        response = await self._client.auth.get_user()
        user = getattr(response, "user", None) if response else None
        if user is None:
            return None

        metadata = getattr(user, "user_metadata", None) or {}
        return {
            "id": user.id,
            "email": getattr(user, "email", None),
            "name": metadata.get("full_name") or metadata.get("name"),
        }
