"""
Moodle Entity Reconciler

This module merges raw Moodle records into the local database. Each resource
kind is upserted in a single transaction: incoming records are matched
against existing rows by a kind-specific dedup key, matched rows have only
their Moodle-authoritative fields updated, and unmatched records become new
rows with a generated local id.

Moodle does not give courses, tasks and grades a stable id across its own
web service functions, so those kinds match on composite keys by default.
Attendance sessions carry a real session id and always match on it.
"""

import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from moodle_mcp.models import (
    DBCourse,
    DedupStrategy,
    RawAssignment,
    RawAttendanceSession,
    RawCalendarEvent,
    RawCourse,
    RawGradeItem,
    ResourceKind,
    TaskPriority,
    epoch_to_datetime,
)
from moodle_mcp.utils.db_manager import (
    DatabaseManager,
    run_db_persist_in_thread,
    run_in_transaction,
)

# Configure logging
logger = logging.getLogger(__name__)

CourseIndex = dict[int, DBCourse]

DEFAULT_GRADE_TYPE = "Moodle"
DEFAULT_SESSION_DURATION = 3600.0

# Remote id column used by the REMOTE_ID strategy, per kind
_REMOTE_ID_COLUMNS = {
    ResourceKind.ENROLLMENTS: ("courses", "moodle_course_id"),
    ResourceKind.ASSIGNMENTS: ("tasks", "moodle_assignment_id"),
    ResourceKind.CALENDAR_EVENTS: ("tasks", "moodle_event_id"),
    ResourceKind.GRADES: ("grades", "moodle_grade_item_id"),
}


@dataclass
class UpsertResult:
    """Outcome of one reconcile call."""

    kind: ResourceKind
    created: int = 0
    updated: int = 0
    skipped: int = 0
    course_index: CourseIndex = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.created + self.updated


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _new_id() -> str:
    return str(uuid.uuid4())


def _session_end(start: datetime, duration: float) -> datetime:
    # Durations past datetime's range fall back to the default one hour
    try:
        return start + timedelta(seconds=duration)
    except (ValueError, OverflowError):
        return start + timedelta(seconds=DEFAULT_SESSION_DURATION)


def _append_event_type(notes: str | None, event_type: str) -> str | None:
    if not event_type:
        return notes
    line = f"Type: {event_type}"
    if not notes:
        return line
    if line in notes.splitlines():
        return notes
    return f"{notes}\n{line}"


def _log_result(result: UpsertResult) -> None:
    logger.info(
        f"Reconciled {result.kind.value}: {result.created} created, "
        f"{result.updated} updated, {result.skipped} skipped"
    )


def parse_strategies(kinds: list[str]) -> dict[ResourceKind, DedupStrategy]:
    """Build a strategy map from resource kind names, ignoring unknown names."""
    strategies = {}
    for name in kinds:
        try:
            kind = ResourceKind(name)
        except ValueError:
            logger.warning(f"Ignoring unknown resource kind for strict dedup: {name}")
            continue
        strategies[kind] = DedupStrategy.REMOTE_ID
    return strategies


class EntityReconciler:
    """
    Upserts raw Moodle records into the local database.

    Args:
        db_manager: Database manager for the local store
        strategies: Optional per-kind dedup strategy overrides
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        strategies: dict[ResourceKind, DedupStrategy] | None = None,
    ):
        self.db_manager = db_manager
        self.strategies = dict(strategies or {})

    def strategy_for(self, kind: ResourceKind) -> DedupStrategy:
        if kind == ResourceKind.ATTENDANCE_SESSIONS:
            return DedupStrategy.REMOTE_ID
        return self.strategies.get(kind, DedupStrategy.COMPOSITE)

    def upsert(
        self,
        records: list[dict[str, Any]],
        kind: ResourceKind,
        course_index: CourseIndex | None = None,
    ) -> UpsertResult:
        """
        Merge records of one kind into the local database in one transaction.

        Args:
            records: Raw records from a fetcher
            kind: Resource kind of the records
            course_index: Moodle course id -> local course, from the enrollment upsert

        Returns:
            Counts of created/updated/skipped records; for enrollments the
            result also carries the new course index.

        Raises:
            ReconciliationError: if a database write fails
        """
        result = run_in_transaction(
            self.db_manager, self._persist, list(records), ResourceKind(kind), course_index or {}
        )
        _log_result(result)
        return result

    async def reconcile(
        self,
        records: list[dict[str, Any]],
        kind: ResourceKind,
        course_index: CourseIndex | None = None,
    ) -> UpsertResult:
        """Async variant of upsert(); the transaction runs in a worker thread."""
        result = await run_db_persist_in_thread(
            self.db_manager, self._persist, list(records), ResourceKind(kind), course_index or {}
        )
        _log_result(result)
        return result

    def _persist(
        self,
        conn: sqlite3.Connection,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        kind: ResourceKind,
        course_index: CourseIndex,
    ) -> UpsertResult:
        result = UpsertResult(kind=kind)
        now_iso = datetime.now(UTC).isoformat()
        strict = self.strategy_for(kind) == DedupStrategy.REMOTE_ID

        if kind == ResourceKind.ENROLLMENTS:
            self._upsert_courses(cursor, records, now_iso, strict, result)
        elif kind == ResourceKind.ASSIGNMENTS:
            self._upsert_assignments(cursor, records, course_index, now_iso, strict, result)
        elif kind == ResourceKind.CALENDAR_EVENTS:
            self._upsert_calendar_events(cursor, records, course_index, now_iso, strict, result)
        elif kind == ResourceKind.GRADES:
            self._upsert_grades(cursor, records, course_index, now_iso, strict, result)
        elif kind == ResourceKind.ATTENDANCE_SESSIONS:
            self._upsert_attendance_sessions(cursor, records, course_index, now_iso, result)
        return result

    def _find_by_remote_id(
        self, cursor: sqlite3.Cursor, kind: ResourceKind, remote_id: int | None
    ) -> sqlite3.Row | None:
        if remote_id is None:
            return None
        table, column = _REMOTE_ID_COLUMNS[kind]
        cursor.execute(f"SELECT * FROM {table} WHERE {column} = ? LIMIT 1", (remote_id,))
        return cursor.fetchone()

    # --- Courses ----------------------------------------------------------

    def _upsert_courses(
        self,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        now_iso: str,
        strict: bool,
        result: UpsertResult,
    ) -> None:
        for record in records:
            try:
                raw = RawCourse.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping course record without a usable id: {e}")
                result.skipped += 1
                continue

            full_name = raw.full_name
            row = self._find_by_remote_id(cursor, ResourceKind.ENROLLMENTS, raw.id) if strict else None
            if row is None:
                # Either field identifies the course; an empty code matches nothing
                if raw.shortname:
                    cursor.execute(
                        "SELECT * FROM courses WHERE course_code = ? OR course_name = ? LIMIT 1",
                        (raw.shortname, full_name),
                    )
                else:
                    cursor.execute(
                        "SELECT * FROM courses WHERE course_name = ? LIMIT 1", (full_name,)
                    )
                row = cursor.fetchone()

            if row is not None:
                local_id = row["id"]
                cursor.execute(
                    """
                    UPDATE courses
                    SET course_name = ?, course_code = COALESCE(?, course_code),
                        moodle_course_id = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (full_name, raw.shortname or None, raw.id, now_iso, local_id),
                )
                result.updated += 1
            else:
                local_id = _new_id()
                cursor.execute(
                    """
                    INSERT INTO courses
                    (id, moodle_course_id, course_code, course_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (local_id, raw.id, raw.shortname or None, full_name, now_iso, now_iso),
                )
                result.created += 1

            cursor.execute("SELECT * FROM courses WHERE id = ?", (local_id,))
            result.course_index[raw.id] = DBCourse.model_validate(dict(cursor.fetchone()))

    # --- Tasks ------------------------------------------------------------

    def _upsert_task(
        self,
        cursor: sqlite3.Cursor,
        kind: ResourceKind,
        title: str,
        due_date: datetime | None,
        course: DBCourse | None,
        remote_id: int | None,
        now_iso: str,
        strict: bool,
        result: UpsertResult,
        event_type: str = "",
    ) -> None:
        _, remote_column = _REMOTE_ID_COLUMNS[kind]
        due_iso = _iso(due_date)
        course_id = course.id if course else None
        source = "assignment" if kind == ResourceKind.ASSIGNMENTS else "calendar"

        row = self._find_by_remote_id(cursor, kind, remote_id) if strict else None
        if row is None:
            # Assignments and calendar events share this key
            cursor.execute(
                "SELECT * FROM tasks WHERE title = ? AND due_date IS ? AND course_id IS ? LIMIT 1",
                (title, due_iso, course_id),
            )
            row = cursor.fetchone()

        if row is not None:
            priority = row["priority"] if row["priority"] is not None else TaskPriority.MEDIUM.value
            cursor.execute(
                f"""
                UPDATE tasks
                SET title = ?, due_date = ?, course_id = COALESCE(?, course_id),
                    priority = ?, notes = ?, source = COALESCE(source, ?),
                    {remote_column} = COALESCE(?, {remote_column}), updated_at = ?
                WHERE id = ?
                """,
                (
                    title,
                    due_iso,
                    course_id,
                    priority,
                    _append_event_type(row["notes"], event_type),
                    source,
                    remote_id,
                    now_iso,
                    row["id"],
                ),
            )
            result.updated += 1
        else:
            cursor.execute(
                f"""
                INSERT INTO tasks
                (id, title, due_date, course_id, completed, priority, notes,
                 show_on_calendar, source, {remote_column}, created_at, updated_at)
                VALUES (?, ?, ?, ?, 0, ?, ?, 1, ?, ?, ?, ?)
                """,
                (
                    _new_id(),
                    title,
                    due_iso,
                    course_id,
                    TaskPriority.MEDIUM.value,
                    _append_event_type(None, event_type),
                    source,
                    remote_id,
                    now_iso,
                    now_iso,
                ),
            )
            result.created += 1

    def _upsert_assignments(
        self,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        course_index: CourseIndex,
        now_iso: str,
        strict: bool,
        result: UpsertResult,
    ) -> None:
        for record in records:
            raw = RawAssignment.model_validate(record)
            course = course_index.get(raw.courseid) if raw.courseid is not None else None
            self._upsert_task(
                cursor,
                ResourceKind.ASSIGNMENTS,
                raw.name,
                raw.duedate,
                course,
                raw.id,
                now_iso,
                strict,
                result,
            )

    def _upsert_calendar_events(
        self,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        course_index: CourseIndex,
        now_iso: str,
        strict: bool,
        result: UpsertResult,
    ) -> None:
        for record in records:
            raw = RawCalendarEvent.from_raw(record)
            course = course_index.get(raw.courseid) if raw.courseid is not None else None
            self._upsert_task(
                cursor,
                ResourceKind.CALENDAR_EVENTS,
                raw.name,
                raw.timestart,
                course,
                raw.id,
                now_iso,
                strict,
                result,
                event_type=raw.eventtype,
            )

    # --- Grades -----------------------------------------------------------

    def _upsert_grades(
        self,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        course_index: CourseIndex,
        now_iso: str,
        strict: bool,
        result: UpsertResult,
    ) -> None:
        for record in records:
            raw = RawGradeItem.model_validate(record)
            course = course_index.get(raw.courseid) if raw.courseid is not None else None
            course_id = course.id if course else None

            row = self._find_by_remote_id(cursor, ResourceKind.GRADES, raw.id) if strict else None
            if row is None:
                cursor.execute(
                    "SELECT * FROM grades WHERE name = ? AND course_id IS ? LIMIT 1",
                    (raw.itemname, course_id),
                )
                row = cursor.fetchone()

            if row is not None:
                cursor.execute(
                    """
                    UPDATE grades
                    SET name = ?, score = ?, total_points = ?,
                        assignment_type = COALESCE(assignment_type, ?),
                        course_id = COALESCE(?, course_id),
                        moodle_grade_item_id = COALESCE(?, moodle_grade_item_id),
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        raw.itemname,
                        raw.score,
                        raw.grademax,
                        DEFAULT_GRADE_TYPE,
                        course_id,
                        raw.id,
                        now_iso,
                        row["id"],
                    ),
                )
                result.updated += 1
            else:
                cursor.execute(
                    """
                    INSERT INTO grades
                    (id, name, course_id, score, total_points, assignment_type,
                     moodle_grade_item_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _new_id(),
                        raw.itemname,
                        course_id,
                        raw.score,
                        raw.grademax,
                        DEFAULT_GRADE_TYPE,
                        raw.id,
                        now_iso,
                        now_iso,
                    ),
                )
                result.created += 1

    # --- Attendance sessions ----------------------------------------------

    def _upsert_attendance_sessions(
        self,
        cursor: sqlite3.Cursor,
        records: list[dict[str, Any]],
        course_index: CourseIndex,
        now_iso: str,
        result: UpsertResult,
    ) -> None:
        for record in records:
            try:
                raw = RawAttendanceSession.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping attendance session without a usable id: {e}")
                result.skipped += 1
                continue

            start = epoch_to_datetime(raw.sessdate) or datetime.now(UTC)
            end = _session_end(start, raw.duration)
            course = course_index.get(raw.courseid) if raw.courseid is not None else None
            course_id = course.id if course else None

            cursor.execute("SELECT id FROM attendance_sessions WHERE id = ?", (raw.id,))
            if cursor.fetchone() is not None:
                cursor.execute(
                    """
                    UPDATE attendance_sessions
                    SET course_id = COALESCE(?, course_id), moodle_course_id = ?,
                        start_time = ?, end_time = ?, status = ?, requires_passcode = ?,
                        room = COALESCE(?, room), updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        course_id,
                        raw.courseid,
                        _iso(start),
                        _iso(end),
                        raw.statusset,
                        int(raw.requires_passcode),
                        raw.description,
                        now_iso,
                        raw.id,
                    ),
                )
                result.updated += 1
            else:
                cursor.execute(
                    """
                    INSERT INTO attendance_sessions
                    (id, course_id, moodle_course_id, start_time, end_time, status,
                     requires_passcode, room, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        raw.id,
                        course_id,
                        raw.courseid,
                        _iso(start),
                        _iso(end),
                        raw.statusset,
                        int(raw.requires_passcode),
                        raw.description,
                        now_iso,
                        now_iso,
                    ),
                )
                result.created += 1
