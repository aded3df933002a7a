"""
Moodle MCP Server

This module provides the main server for Moodle MCP.
It integrates with the Moodle web services and a local SQLite database to
provide structured access to course information.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

import moodle_mcp.config as config
from moodle_mcp.attendance import AttendanceService
from moodle_mcp.messaging import MessagingService
from moodle_mcp.models import RemoteConfig
from moodle_mcp.moodle_api_adapter import MoodleApiAdapter
from moodle_mcp.sync import SyncService
from moodle_mcp.sync.reconciler import parse_strategies
from moodle_mcp.utils.db_manager import DatabaseManager

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("moodle_mcp")


def handle_shutdown_signal(signum, frame):
    logger.info("Signal received, shutting down...")
    sys.exit(0)


def build_remote_config() -> RemoteConfig | None:
    """Build the site config from the environment, if both values are set."""
    if not config.MOODLE_URL or not config.MOODLE_TOKEN:
        logger.warning("MOODLE_URL or MOODLE_TOKEN not set; running database-only")
        return None
    try:
        return RemoteConfig(base_url=config.MOODLE_URL, token=config.MOODLE_TOKEN)
    except ValueError as e:
        logger.error(f"Invalid Moodle configuration: {e}")
        return None


@asynccontextmanager
async def app_lifespan(_: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Manage application lifecycle with resources"""
    logger.info(f"Initializing resources with database: {config.DB_PATH}")

    db_manager = DatabaseManager(config.DB_PATH)
    api_adapter = MoodleApiAdapter(timeout=config.REQUEST_TIMEOUT)

    sync_service = SyncService(
        db_manager,
        api_adapter,
        config=build_remote_config(),
        strict_capabilities=config.STRICT_CAPABILITIES,
        dedup_strategies=parse_strategies(config.STRICT_DEDUP),
    )
    logger.info("Sync service initialized successfully")

    lifespan_context = {
        "db_manager": db_manager,
        "api_adapter": api_adapter,
        "sync_service": sync_service,
        "attendance_service": AttendanceService(sync_service),
        "messaging_service": MessagingService(sync_service),
    }

    try:
        yield lifespan_context
    finally:
        logger.info("Shutting down Moodle MCP server")
        api_adapter.close()
        logger.info("Shutdown complete.")


# Create an MCP server with lifespan
mcp = FastMCP(
    "Moodle MCP",
    instructions="A Moodle integration for syncing courses, deadlines, grades and attendance.",
    lifespan=app_lifespan,
)

# Register tool modules
from moodle_mcp.tools.attendance import register_attendance_tools  # noqa: E402
from moodle_mcp.tools.courses import register_course_tools  # noqa: E402
from moodle_mcp.tools.grades import register_grade_tools  # noqa: E402
from moodle_mcp.tools.messages import register_message_tools  # noqa: E402
from moodle_mcp.tools.sync import register_sync_tools  # noqa: E402

register_sync_tools(mcp)
register_course_tools(mcp)
register_grade_tools(mcp)
register_attendance_tools(mcp)
register_message_tools(mcp)


if __name__ == "__main__":
    mcp.run()
