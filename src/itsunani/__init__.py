"""Itsunani - session and extraction core.

This package signs a user in with Google through the identity provider,
keeps the Google Calendar credential in a device-scoped vault, and turns a
screenshot or a line of text into a calendar event through the Itsunani API.
"""
from .app import ItsunaniApp, AuthStatus
from .models import EventObject, ExtractionInput, ExtractAndSaveResult

__version__ = "0.1.0"
__all__ = [
    "ItsunaniApp",
    "AuthStatus",
    "EventObject",
    "ExtractionInput",
    "ExtractAndSaveResult",
]
