"""
Shared configuration for Itsunani.

This module centralizes configuration values to avoid hardcoded values
scattered throughout the codebase.
"""

import os

from dotenv import load_dotenv

from ..utils.constants import DEFAULT_API_URL, DEFAULT_HTTP_TIMEOUT

# Load environment variables
load_dotenv()

# Remote API configuration
ITSUNANI_API_URL = os.getenv("ITSUNANI_API_URL", DEFAULT_API_URL).rstrip("/")
ITSUNANI_HTTP_TIMEOUT = float(
    os.getenv("ITSUNANI_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT))
)


def get_api_url() -> str:
    """
    Get the base URL of the extraction/calendar API.

    Returns:
        Base URL without a trailing slash (e.g., "http://localhost:3000")
    """
    return ITSUNANI_API_URL


def get_http_timeout() -> float:
    """Get the per-request timeout for remote API calls, in seconds."""
    return ITSUNANI_HTTP_TIMEOUT
