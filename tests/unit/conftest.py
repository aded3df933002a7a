"""
Configuration file for pytest unit tests.

This file contains fixtures for exercising the MCP tools against the fake
Moodle site.
"""

import pytest

from moodle_mcp.attendance import AttendanceService
from moodle_mcp.messaging import MessagingService
from moodle_mcp.sync import SyncService
from moodle_mcp.tools.attendance import register_attendance_tools
from moodle_mcp.tools.courses import register_course_tools
from moodle_mcp.tools.grades import register_grade_tools
from moodle_mcp.tools.messages import register_message_tools
from moodle_mcp.tools.sync import register_sync_tools
from moodle_mcp.utils.db_manager import DatabaseManager
from tests.mock_mcp import MockMCP


@pytest.fixture
def mock_mcp(db_manager: DatabaseManager, fake_moodle, sync_service: SyncService) -> MockMCP:
    """Return a mock MCP server with every tool registered."""
    mcp = MockMCP("Moodle MCP Test")
    register_sync_tools(mcp)
    register_course_tools(mcp)
    register_grade_tools(mcp)
    register_attendance_tools(mcp)
    register_message_tools(mcp)

    mcp.lifespan_context = {
        "db_manager": db_manager,
        "api_adapter": fake_moodle,
        "sync_service": sync_service,
        "attendance_service": AttendanceService(sync_service),
        "messaging_service": MessagingService(sync_service),
    }
    return mcp
