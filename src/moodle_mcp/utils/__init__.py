"""
Moodle MCP Utilities

This package contains utility modules for the Moodle MCP server.
"""

from moodle_mcp.utils.db_manager import (
    DatabaseManager,
    run_db_persist_in_thread,
    run_in_transaction,
)

__all__ = ["DatabaseManager", "run_db_persist_in_thread", "run_in_transaction"]
