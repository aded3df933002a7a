"""
Tests for the server lifespan wiring.
"""

import asyncio
from unittest.mock import patch

from moodle_mcp import server
from moodle_mcp.attendance import AttendanceService
from moodle_mcp.messaging import MessagingService
from moodle_mcp.models import DedupStrategy, ResourceKind


def enter_lifespan():
    async def run():
        async with server.app_lifespan(server.mcp) as context:
            return context

    return asyncio.run(run())


def test_lifespan_builds_services(test_db_path):
    with (
        patch.object(server.config, "DB_PATH", test_db_path),
        patch.object(server.config, "MOODLE_URL", "https://moodle.example.edu/"),
        patch.object(server.config, "MOODLE_TOKEN", "token"),
        patch.object(server.config, "STRICT_DEDUP", ["assignments"]),
    ):
        context = enter_lifespan()

    sync_service = context["sync_service"]
    assert sync_service.is_authenticated
    assert sync_service.config.base_url == "https://moodle.example.edu"
    assert sync_service.reconciler.strategy_for(ResourceKind.ASSIGNMENTS) == DedupStrategy.REMOTE_ID
    assert isinstance(context["attendance_service"], AttendanceService)
    assert isinstance(context["messaging_service"], MessagingService)


def test_lifespan_without_credentials(test_db_path):
    with (
        patch.object(server.config, "DB_PATH", test_db_path),
        patch.object(server.config, "MOODLE_URL", None),
        patch.object(server.config, "MOODLE_TOKEN", None),
    ):
        context = enter_lifespan()

    assert context["sync_service"].is_authenticated is False
