"""
Moodle Sync All

This module provides functionality for synchronizing all data between
the Moodle web services and the local database asynchronously.
"""

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from moodle_mcp.models import ResourceKind, SyncPhase, SyncReport
from moodle_mcp.sync import fetchers
from moodle_mcp.sync.capabilities import ATTENDANCE_SESSIONS, probe
from moodle_mcp.sync.reconciler import CourseIndex, UpsertResult

# Configure logging
logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from moodle_mcp.sync.service import SyncService


async def sync_all(sync_service: "SyncService") -> SyncReport | None:
    """
    Synchronize all data from Moodle to the local database.

    Resource kinds run in a fixed order (enrollments, assignments, grades,
    calendar events, then attendance when the site supports it) because
    every later kind resolves courses through the index built from the
    enrollments. A call made while a sync is running is ignored.

    Any failure outside the attendance loop and the capability probe ends
    the cycle as failed. Kinds reconciled before the failure stay committed.

    Args:
        sync_service: The sync service instance.

    Returns:
        Per-kind counts, or None if the sync failed or was already running.
    """
    if sync_service.is_syncing:
        logger.info("Sync already in progress, ignoring request.")
        return None

    sync_service.is_syncing = True
    sync_service.last_error = None
    start_time = asyncio.get_event_loop().time()
    logger.info("Starting Moodle sync...")

    try:
        config = sync_service.require_config()
        adapter = sync_service.api_adapter

        sync_service.phase = SyncPhase.PROBING
        capabilities = await probe(adapter, config, strict=sync_service.strict_capabilities)
        sync_service.capabilities = capabilities
        report = SyncReport(capabilities=list(capabilities))

        enrolled = await _sync_kind(
            sync_service,
            ResourceKind.ENROLLMENTS,
            fetchers.fetch_enrollments(adapter, config),
            {},
        )
        course_index = enrolled.course_index
        course_ids = list(course_index)
        report.courses = enrolled.total

        assignments = await _sync_kind(
            sync_service,
            ResourceKind.ASSIGNMENTS,
            fetchers.fetch_assignments(adapter, config, course_ids),
            course_index,
        )
        report.assignments = assignments.total

        grades = await _sync_kind(
            sync_service,
            ResourceKind.GRADES,
            fetchers.fetch_grades(adapter, config),
            course_index,
        )
        report.grades = grades.total

        events = await _sync_kind(
            sync_service,
            ResourceKind.CALENDAR_EVENTS,
            fetchers.fetch_calendar_events(adapter, config),
            course_index,
        )
        report.calendar_events = events.total

        if ATTENDANCE_SESSIONS in capabilities:
            sessions = await _sync_kind(
                sync_service,
                ResourceKind.ATTENDANCE_SESSIONS,
                fetchers.fetch_attendance_sessions(adapter, config, course_ids),
                course_index,
            )
            report.attendance_sessions = sessions.total
        else:
            logger.info("Attendance plugin not available, skipping attendance sessions.")

        report.finished_at = datetime.now()
        sync_service.last_sync = report.finished_at
        sync_service.phase = SyncPhase.COMPLETED

        end_time = asyncio.get_event_loop().time()
        logger.info(f"Finished Moodle sync in {end_time - start_time:.2f} seconds.")
        logger.info(f"Sync summary: {report.model_dump(exclude={'finished_at'})}")
        return report
    except Exception as e:
        logger.error(f"Moodle sync failed: {e}", exc_info=True)
        sync_service.last_error = str(e)
        sync_service.phase = SyncPhase.FAILED
        return None
    finally:
        sync_service.is_syncing = False


async def _sync_kind(
    sync_service: "SyncService",
    kind: ResourceKind,
    fetch: Awaitable[list[dict[str, Any]]],
    course_index: CourseIndex,
) -> UpsertResult:
    """Fetch one resource kind, then reconcile it in a single transaction."""
    sync_service.phase = SyncPhase.FETCHING
    logger.info(f"Syncing {kind.value}...")
    records = await fetch

    sync_service.phase = SyncPhase.RECONCILING
    return await sync_service.reconciler.reconcile(records, kind, course_index)
