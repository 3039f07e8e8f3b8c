"""
Core utilities package for Itsunani.

This package provides shared configuration.
"""

from .config import (
    ITSUNANI_API_URL,
    ITSUNANI_HTTP_TIMEOUT,
    get_api_url,
    get_http_timeout,
)

__all__ = [
    "ITSUNANI_API_URL",
    "ITSUNANI_HTTP_TIMEOUT",
    "get_api_url",
    "get_http_timeout",
]
