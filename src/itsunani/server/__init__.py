"""Itsunani MCP Server."""

from .main import mcp, get_app, set_app

from . import auth_tools
from . import event_tools

__all__ = ["mcp", "get_app", "set_app", "main"]


def main():
    """Entry point for the Itsunani MCP server."""
    mcp.run(show_banner=False)
