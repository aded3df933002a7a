"""
Moodle MCP Sync Package

This package provides synchronization functionality between the Moodle web
services and the local database.
"""

from moodle_mcp.sync.service import SyncService

__all__ = ["SyncService"]
