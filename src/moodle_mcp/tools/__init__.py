"""
Moodle MCP Tools

This package contains the tool functions for the Moodle MCP server.
Each module in this package contains related tool functions that are
registered with the MCP server.
"""

__all__ = [
    "attendance",
    "courses",
    "grades",
    "messages",
    "sync",
]
