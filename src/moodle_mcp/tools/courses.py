"""
Moodle MCP Course Tools

This module contains tools for accessing synced courses and tasks.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from moodle_mcp.models import DBTask

# Configure logging
logger = logging.getLogger(__name__)


def register_course_tools(mcp: FastMCP) -> None:
    """Register course tools with the MCP server."""

    @mcp.tool()
    def get_course_list(ctx: Context) -> list[dict[str, Any]]:
        """
        Get list of all courses in the database.

        Args:
            ctx: Request context containing resources

        Returns:
            List of course information
        """
        db_manager = ctx.request_context.lifespan_context["db_manager"]

        conn, cursor = db_manager.connect()
        try:
            cursor.execute("""
            SELECT
                c.id,
                c.moodle_course_id,
                c.course_code,
                c.course_name,
                c.updated_at
            FROM
                courses c
            ORDER BY
                c.course_name
            """)
            return db_manager.rows_to_dicts(cursor.fetchall())
        finally:
            conn.close()

    @mcp.tool()
    def get_upcoming_tasks(
        ctx: Context,
        days: int = 7,
        course_id: str | None = None,
        include_completed: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Get tasks (assignments and calendar events) due in the coming days.

        Args:
            ctx: Request context containing resources
            days: Number of days to look ahead
            course_id: Optional local course ID to filter by
            include_completed: Whether to include tasks marked completed

        Returns:
            List of tasks ordered by due date
        """
        db_manager = ctx.request_context.lifespan_context["db_manager"]

        now = datetime.now(UTC)
        query = """
        SELECT
            t.*,
            c.course_code,
            c.course_name
        FROM
            tasks t
        LEFT JOIN
            courses c ON t.course_id = c.id
        WHERE
            t.due_date IS NOT NULL
            AND t.due_date >= ?
            AND t.due_date <= ?
        """
        params: list[Any] = [now.isoformat(), (now + timedelta(days=days)).isoformat()]

        if course_id is not None:
            query += " AND t.course_id = ?"
            params.append(course_id)
        if not include_completed:
            query += " AND t.completed = 0"
        query += " ORDER BY t.due_date ASC"

        tasks = []
        for row in db_manager.execute_query(query, tuple(params)):
            task = DBTask.model_validate(dict(row)).model_dump(mode="json")
            task["course_code"] = row["course_code"]
            task["course_name"] = row["course_name"]
            tasks.append(task)
        return tasks
