"""
Google OAuth Scopes for Itsunani.

This module defines the provider scopes requested during sign-in. Supabase
adds the identity scopes itself; only the Calendar scope is requested here.
"""

from typing import List

# Google Calendar scopes
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"

SCOPES = [CALENDAR_SCOPE]


def get_scopes() -> List[str]:
    """
    Get the list of provider scopes requested at sign-in.

    Returns:
        List of unique OAuth scopes, in request order.
    """
    return list(dict.fromkeys(SCOPES))


def get_scope_string() -> str:
    """Scopes joined the way the identity provider expects them."""
    return " ".join(get_scopes())
