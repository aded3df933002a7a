"""
Attendance Check-in

This module reads synced attendance sessions from the local database,
decodes check-in QR codes, and submits the user's attendance through the
Moodle attendance plugin when the site supports it.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlparse

from pydantic import BaseModel

from moodle_mcp.exceptions import SessionClosedError
from moodle_mcp.models import DBAttendanceSession
from moodle_mcp.sync.capabilities import ATTENDANCE_SUBMIT, require

if TYPE_CHECKING:
    from moodle_mcp.sync.service import SyncService

# Configure logging
logger = logging.getLogger(__name__)

# Status id for "Present"; sites can renumber their status sets
PRESENT_STATUS_ID = 1
PRESENT_STATUS = "Present"

_SESSION_KEYS = ("sessid", "sessionid", "id")
_PASSCODE_KEYS = ("code", "passcode", "password")


class QRAttendanceData(BaseModel):
    """Session id and optional passcode decoded from a check-in QR code."""

    session_id: int
    passcode: str | None = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_session_open(session: DBAttendanceSession, now: datetime | None = None) -> bool:
    """Check if a session is currently open for check-in."""
    if session.start_time is None or session.end_time is None:
        return False
    now = _as_utc(now or datetime.now(UTC))
    return _as_utc(session.start_time) <= now <= _as_utc(session.end_time)


def parse_qr_code(text: str) -> QRAttendanceData | None:
    """
    Decode a check-in QR code.

    Accepted forms:
        JSON: {"sessionId": 12345, "passcode": "ABC123"}
        URL:  https://moodle.site/mod/attendance/view.php?sessid=12345&code=ABC123
        A bare session id: "12345"
    """
    if not text:
        return None
    text = text.strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        session_id = data.get("sessionId")
        if isinstance(session_id, int) and not isinstance(session_id, bool):
            passcode = data.get("passcode")
            return QRAttendanceData(
                session_id=session_id,
                passcode=passcode if isinstance(passcode, str) else None,
            )

    parsed = urlparse(text)
    if parsed.query:
        session_id = None
        passcode = None
        for key, value in parse_qsl(parsed.query):
            key = key.lower()
            if key in _SESSION_KEYS:
                try:
                    session_id = int(value)
                except ValueError:
                    session_id = None
            elif key in _PASSCODE_KEYS:
                passcode = value
        if session_id is not None:
            return QRAttendanceData(session_id=session_id, passcode=passcode)

    try:
        return QRAttendanceData(session_id=int(text))
    except ValueError:
        return None


class AttendanceService:
    """
    Attendance check-in on top of the synced attendance sessions.

    Args:
        sync_service: Sync service providing the database, site config and
            the last probed capabilities
    """

    def __init__(self, sync_service: "SyncService"):
        self.sync_service = sync_service
        self.db_manager = sync_service.db_manager

    def _load_sessions(self) -> list[DBAttendanceSession]:
        rows = self.db_manager.execute_query(
            "SELECT * FROM attendance_sessions ORDER BY start_time"
        )
        return [DBAttendanceSession.model_validate(dict(row)) for row in rows]

    def get_session(self, session_id: int) -> DBAttendanceSession | None:
        row = self.db_manager.get_by_id("attendance_sessions", session_id)
        return DBAttendanceSession.model_validate(dict(row)) if row else None

    def get_open_sessions(self, now: datetime | None = None) -> list[DBAttendanceSession]:
        """Sessions starting today (local calendar day) whose check-in window contains now."""
        now = _as_utc(now or datetime.now(UTC))
        start_of_day = now.astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
        end_of_day = start_of_day + timedelta(days=1)

        open_sessions = []
        for session in self._load_sessions():
            if session.start_time is None:
                continue
            start = _as_utc(session.start_time)
            if start_of_day <= start <= end_of_day and is_session_open(session, now):
                open_sessions.append(session)
        return open_sessions

    def get_next_session(
        self, now: datetime | None = None
    ) -> tuple[DBAttendanceSession, timedelta] | None:
        """The next session starting within a day, with the time until it starts."""
        now = _as_utc(now or datetime.now(UTC))
        horizon = now + timedelta(days=1)

        for session in self._load_sessions():
            if session.start_time is None:
                continue
            start = _as_utc(session.start_time)
            if now < start <= horizon:
                return session, start - now
        return None

    async def submit_attendance(
        self,
        session_id: int,
        passcode: str | None = None,
        status_id: int = PRESENT_STATUS_ID,
        now: datetime | None = None,
    ) -> bool:
        """
        Mark the current user present for a session.

        Args:
            session_id: Moodle attendance session id
            passcode: Optional student password shown in class
            status_id: Attendance status id to submit
            now: Override for the current time

        Returns:
            True if Moodle accepted the submission

        Raises:
            LookupError: if the session has not been synced
            SessionClosedError: if the session is not open right now
            NotAuthenticatedError: if no site is configured
            CapabilityUnavailableError: if the site lacks the submit function
            TransportError: if the call fails
        """
        session = await asyncio.to_thread(self.get_session, session_id)
        if session is None:
            raise LookupError(f"Attendance session {session_id} not found")
        if not is_session_open(session, now):
            raise SessionClosedError(session_id)

        config = self.sync_service.require_config()
        require(self.sync_service.capabilities, ATTENDANCE_SUBMIT)

        params = {"sessionid": session_id, "statusid": status_id}
        if passcode:
            params["studentpassword"] = passcode

        result = await asyncio.to_thread(
            self.sync_service.api_adapter.call, config, ATTENDANCE_SUBMIT, params
        )

        # No explicit flag means the call went through
        success = True
        if isinstance(result, dict) and isinstance(result.get("success"), bool):
            success = result["success"]

        if success:
            await asyncio.to_thread(
                self.db_manager.execute_update,
                "UPDATE attendance_sessions SET status = ?, updated_at = ? WHERE id = ?",
                (PRESENT_STATUS, datetime.now(UTC).isoformat(), session_id),
            )
            logger.info(f"Submitted attendance for session {session_id}")
        else:
            logger.warning(f"Moodle rejected attendance for session {session_id}")
        return success
