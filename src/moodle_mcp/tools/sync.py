"""
Moodle MCP Sync Tools

This module contains tools for triggering data synchronization and
reporting its status.
"""

import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

# Configure logging
logger = logging.getLogger(__name__)


def register_sync_tools(mcp: FastMCP) -> None:
    """Register sync tools with the MCP server."""

    @mcp.tool()
    async def sync_moodle_data(ctx: Context) -> dict[str, Any]:
        """
        Synchronize all data from Moodle to the local database asynchronously.

        This process probes which optional Moodle features the site supports,
        then fetches enrollments, assignments, grades, calendar events and
        (when available) attendance sessions, and merges them into the local
        database without overwriting local edits.

        Args:
            ctx: Request context containing resources like sync_service.

        Returns:
            Dictionary with counts of synced items (e.g., {"courses": 4, "assignments": 21}).
        """
        try:
            sync_service = ctx.request_context.lifespan_context["sync_service"]

            if sync_service.is_syncing:
                return {"skipped": True, "reason": "A sync is already in progress"}

            logger.info("Starting Moodle data synchronization via tool...")
            report = await sync_service.sync_all()
            if report is None:
                status = sync_service.status
                return {"error": f"Synchronization failed: {status.message}"}

            logger.info(f"Moodle data synchronization completed. Result: {report}")
            return report.model_dump(mode="json")

        except Exception as e:
            logger.error(f"Error during Moodle data synchronization: {e}", exc_info=True)
            return {"error": f"Synchronization failed: {str(e)}"}

    @mcp.tool()
    def get_sync_status(ctx: Context) -> dict[str, Any]:
        """
        Get the state of the last or current synchronization.

        Args:
            ctx: Request context containing resources

        Returns:
            State (idle, syncing, completed or failed), the failure message
            if any, the last successful sync time and the site capabilities
        """
        sync_service = ctx.request_context.lifespan_context["sync_service"]
        status = sync_service.status.model_dump(mode="json")
        status["authenticated"] = sync_service.is_authenticated
        status["capabilities"] = list(sync_service.capabilities)
        return status
