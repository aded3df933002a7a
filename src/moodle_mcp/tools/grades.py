"""
Moodle MCP Grade Tools

This module contains tools for accessing synced grade items.
"""

import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from moodle_mcp.models import DBGrade

# Configure logging
logger = logging.getLogger(__name__)


def register_grade_tools(mcp: FastMCP) -> None:
    """Register grade tools with the MCP server."""

    @mcp.tool()
    def get_course_grades(ctx: Context, course_id: str) -> dict[str, Any]:
        """
        Get the synced grade items for a course.

        Args:
            ctx: Request context containing resources
            course_id: Local course ID

        Returns:
            Course details with its grade items, or an error if the course is
            unknown. When the site has no grade data a fallback link to the
            Moodle grade report is included.
        """
        db_manager = ctx.request_context.lifespan_context["db_manager"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]

        course = db_manager.get_by_id("courses", course_id)
        if not course:
            return {"error": f"Course {course_id} not found"}

        rows = db_manager.execute_query(
            "SELECT * FROM grades WHERE course_id = ? ORDER BY name",
            (course_id,),
        )
        grades = [DBGrade.model_validate(dict(row)).model_dump(mode="json") for row in rows]

        result = {
            "course_code": course["course_code"],
            "course_name": course["course_name"],
            "grades": grades,
        }
        if not grades:
            result["fallback_url"] = sync_service.fallback_url(
                "grades", course["moodle_course_id"]
            )
        return result
