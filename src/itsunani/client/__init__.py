"""Itsunani API client - modular implementation.

This module provides a facade that combines all client mixins into
a single ItsunaniApiClient class.
"""
from .base import ApiClientBase
from .extraction import ExtractionMixin
from .calendar import CalendarMixin
from .diagnostics import DiagnosticsMixin
from .profiles import ProfileReader


class ItsunaniApiClient(
    ApiClientBase,
    ExtractionMixin,
    CalendarMixin,
    DiagnosticsMixin,
):
    """Client for the extraction, calendar-save and debug endpoints."""
    pass


__all__ = ['ItsunaniApiClient', 'ProfileReader']
