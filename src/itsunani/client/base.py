"""Base client with the HTTP session for the Itsunani API."""
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from ..core.config import get_api_url, get_http_timeout

logger = logging.getLogger(__name__)


class ApiClientBase:
    """Base class holding the async HTTP client."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API base URL. Defaults to ITSUNANI_API_URL.
            timeout: Per-request timeout in seconds.
            http_client: Pre-built client (tests inject a mock transport).
        """
        self.base_url = (base_url or get_api_url()).rstrip("/")
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else get_http_timeout()
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "ApiClientBase":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Tuple[int, Any]:
        """POST a JSON body.

        Returns:
            Tuple of (status code, decoded JSON body or None).

        Raises:
            httpx.HTTPError: On transport failures.
        """
        response = await self.http.post(f"{self.base_url}{path}", json=body)
        try:
            payload = response.json()
        except ValueError:
            logger.debug(f"Non-JSON response from {path} (HTTP {response.status_code})")
            payload = None
        return response.status_code, payload
