"""
Moodle Resource Fetchers

One fetcher per resource kind. Each maps a web service function and its
parameters to a flat list of raw records (plain dicts), tagging nested
records with the id of the course they came from.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

from moodle_mcp.exceptions import TransportError
from moodle_mcp.models import RemoteConfig, to_int
from moodle_mcp.moodle_api_adapter import MoodleApiAdapter

# Configure logging
logger = logging.getLogger(__name__)

RawRecord = dict[str, Any]

CALENDAR_LOOKBACK = timedelta(days=14)
CALENDAR_LOOKAHEAD = timedelta(days=60)


def _records(payload: Any) -> list[RawRecord]:
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def _tag_course(record: RawRecord, course_id: Any) -> RawRecord:
    if record.get("courseid") in (None, 0, "") and course_id is not None:
        return {**record, "courseid": course_id}
    return record


async def _call(
    adapter: MoodleApiAdapter, config: RemoteConfig, function: str, params: dict[str, Any]
) -> Any:
    return await asyncio.to_thread(adapter.call, config, function, params)


async def fetch_enrollments(adapter: MoodleApiAdapter, config: RemoteConfig) -> list[RawRecord]:
    """Fetch the courses the current user is enrolled in."""
    payload = await _call(adapter, config, "core_enrol_get_users_courses", {"userid": "me"})
    records = _records(payload)
    logger.info(f"Fetched {len(records)} enrolled courses")
    return records


async def fetch_assignments(
    adapter: MoodleApiAdapter, config: RemoteConfig, course_ids: list[int]
) -> list[RawRecord]:
    """Fetch assignments for all given courses in one call."""
    if not course_ids:
        logger.info("No courses to fetch assignments for")
        return []

    payload = await _call(
        adapter, config, "mod_assign_get_assignments", {"courseids": list(course_ids)}
    )
    if not isinstance(payload, dict):
        return []

    records = []
    for course in _records(payload.get("courses")):
        course_id = to_int(course.get("id"))
        for assignment in _records(course.get("assignments")):
            records.append(_tag_course(assignment, course_id))
    logger.info(f"Fetched {len(records)} assignments across {len(course_ids)} courses")
    return records


async def fetch_grades(adapter: MoodleApiAdapter, config: RemoteConfig) -> list[RawRecord]:
    """Fetch the current user's grade items, flattened across courses."""
    payload = await _call(
        adapter, config, "gradereport_user_get_grade_items", {"userid": "me"}
    )
    # Sites differ: some return a bare list, most wrap it in "usergrades"
    if isinstance(payload, dict):
        payload = payload.get("usergrades")

    records = []
    for course in _records(payload):
        course_id = to_int(course.get("courseid"))
        if course_id is None:
            continue
        for item in _records(course.get("gradeitems")):
            records.append(_tag_course(item, course_id))
    logger.info(f"Fetched {len(records)} grade items")
    return records


async def fetch_calendar_events(
    adapter: MoodleApiAdapter, config: RemoteConfig, now: datetime | None = None
) -> list[RawRecord]:
    """Fetch calendar events from two weeks ago to two months ahead."""
    now = now or datetime.now()
    params = {
        "options": {
            "timestart": int((now - CALENDAR_LOOKBACK).timestamp()),
            "timeend": int((now + CALENDAR_LOOKAHEAD).timestamp()),
            "userevents": True,
            "siteevents": True,
        }
    }
    payload = await _call(adapter, config, "core_calendar_get_calendar_events", params)
    if not isinstance(payload, dict):
        return []

    records = _records(payload.get("events"))
    logger.info(f"Fetched {len(records)} calendar events")
    return records


async def fetch_attendance_sessions(
    adapter: MoodleApiAdapter, config: RemoteConfig, course_ids: list[int]
) -> list[RawRecord]:
    """
    Fetch attendance sessions course by course.

    The attendance plugin may be missing from individual courses, so a
    transport failure for one course is logged and skipped.
    """
    records: list[RawRecord] = []
    for course_id in course_ids:
        try:
            payload = await _call(
                adapter, config, "mod_attendance_get_sessions", {"courseid": course_id}
            )
        except TransportError as e:
            logger.warning(f"Skipping attendance for course {course_id}: {e}")
            continue

        sessions = _records(payload)
        records.extend(_tag_course(session, course_id) for session in sessions)
        logger.debug(f"Fetched {len(sessions)} attendance sessions for course {course_id}")

    logger.info(f"Fetched {len(records)} attendance sessions across {len(course_ids)} courses")
    return records
