"""
Moodle MCP Attendance Tools

This module contains tools for attendance check-in and for resolving
Moodle web links when a feature has no web service support.
"""

import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from moodle_mcp.attendance import parse_qr_code

# Configure logging
logger = logging.getLogger(__name__)


def register_attendance_tools(mcp: FastMCP) -> None:
    """Register attendance tools with the MCP server."""

    @mcp.tool()
    def get_open_attendance_sessions(ctx: Context) -> dict[str, Any]:
        """
        Get attendance sessions open for check-in right now.

        Args:
            ctx: Request context containing resources

        Returns:
            Open sessions, the next upcoming session if any, and a fallback
            link when the site has no attendance web services
        """
        attendance_service = ctx.request_context.lifespan_context["attendance_service"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]

        sessions = attendance_service.get_open_sessions()
        result: dict[str, Any] = {
            "open_sessions": [s.model_dump(mode="json") for s in sessions],
        }

        upcoming = attendance_service.get_next_session()
        if upcoming:
            session, starts_in = upcoming
            result["next_session"] = session.model_dump(mode="json")
            result["next_session_starts_in_minutes"] = int(starts_in.total_seconds() // 60)

        fallback = sync_service.fallback_url("attendance")
        if fallback:
            result["fallback_url"] = fallback
        return result

    @mcp.tool()
    async def submit_attendance(
        ctx: Context,
        session_id: int | None = None,
        passcode: str | None = None,
        qr_code: str | None = None,
    ) -> dict[str, Any]:
        """
        Mark the user present for an open attendance session.

        Args:
            ctx: Request context containing resources
            session_id: Moodle attendance session ID
            passcode: Optional session password
            qr_code: Scanned QR code text; overrides session_id and passcode

        Returns:
            Submission result, or an error with a fallback link
        """
        attendance_service = ctx.request_context.lifespan_context["attendance_service"]
        sync_service = ctx.request_context.lifespan_context["sync_service"]

        if qr_code:
            data = parse_qr_code(qr_code)
            if data is None:
                return {"error": "Could not read a session from the QR code"}
            session_id = data.session_id
            passcode = data.passcode or passcode

        if session_id is None:
            return {"error": "A session_id or qr_code is required"}

        try:
            success = await attendance_service.submit_attendance(session_id, passcode)
            return {"session_id": session_id, "success": success}
        except Exception as e:
            logger.error(f"Error submitting attendance for session {session_id}: {e}")
            session = attendance_service.get_session(session_id)
            result = {"error": str(e)}
            fallback = sync_service.fallback_url(
                "attendance", session.moodle_course_id if session else None
            )
            if fallback:
                result["fallback_url"] = fallback
            return result

    @mcp.tool()
    def get_fallback_link(
        ctx: Context, feature: str, course_id: int | None = None
    ) -> dict[str, Any]:
        """
        Get the Moodle web page for a feature the site lacks web services for.

        Args:
            ctx: Request context containing resources
            feature: One of "attendance", "messages" or "grades"
            course_id: Moodle course ID for course-scoped pages

        Returns:
            The fallback URL, or available=True when the feature works
            through web services
        """
        sync_service = ctx.request_context.lifespan_context["sync_service"]
        if not sync_service.is_authenticated:
            return {"error": "Not authenticated with Moodle"}

        url = sync_service.fallback_url(feature, course_id)
        if url is None:
            return {"feature": feature, "available": True}
        return {"feature": feature, "available": False, "fallback_url": url}
