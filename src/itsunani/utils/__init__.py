"""Shared helpers: error taxonomy and constants."""
