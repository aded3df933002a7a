"""
Tests for the entity reconciler.

These run against a real temporary SQLite database so the dedup queries
and merge rules are exercised end to end.
"""

import asyncio
import sqlite3
from unittest.mock import patch

import pytest

from moodle_mcp.exceptions import ReconciliationError
from moodle_mcp.models import DedupStrategy, ResourceKind
from moodle_mcp.sync.reconciler import EntityReconciler, parse_strategies
from moodle_mcp.utils.db_manager import DatabaseManager
from tests.fakes.fake_moodle import JAN_1, JAN_2

COURSES = [
    {"id": 3, "shortname": "CS101", "fullname": "Intro to CS"},
    {"id": 5, "shortname": "", "fullname": "World History"},
]
HW1 = {"id": 11, "name": "HW1", "duedate": JAN_1, "courseid": 3}
HW1_EVENT = {"id": 31, "name": "HW1", "timestart": JAN_1, "courseid": 3, "eventtype": "due"}
SESSION = {
    "id": 101,
    "courseid": 3,
    "sessdate": JAN_1,
    "duration": 5400,
    "statusset": 0,
    "description": "Room 204",
    "studentpassword": "ABC123",
}


@pytest.fixture
def reconciler(db_manager: DatabaseManager) -> EntityReconciler:
    return EntityReconciler(db_manager)


@pytest.fixture
def course_index(reconciler: EntityReconciler):
    return reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS).course_index


def fetch_one(db_manager: DatabaseManager, query: str, params: tuple = ()):
    rows = db_manager.execute_query(query, params)
    return rows[0] if rows else None


class TestCourses:
    def test_creates_courses_and_index(self, reconciler, db_manager):
        result = reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS)

        assert result.created == 2
        assert result.updated == 0
        assert set(result.course_index) == {3, 5}
        assert result.course_index[3].course_code == "CS101"
        assert result.course_index[5].course_code is None
        assert db_manager.count("courses") == 2

    def test_resync_is_idempotent(self, reconciler, db_manager):
        first = reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS)
        second = reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS)

        assert second.created == 0
        assert second.updated == 2
        assert db_manager.count("courses") == 2
        assert first.course_index[3].id == second.course_index[3].id

    def test_matches_existing_course_by_name(self, reconciler, db_manager):
        db_manager.execute_update(
            "INSERT INTO courses (id, course_code, course_name) VALUES (?, ?, ?)",
            ("local-1", "OLD", "Intro to CS"),
        )

        result = reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS)

        assert result.course_index[3].id == "local-1"
        row = db_manager.get_by_id("courses", "local-1")
        assert row["course_code"] == "CS101"
        assert row["moodle_course_id"] == 3
        assert db_manager.count("courses") == 2

    def test_empty_shortnames_do_not_merge(self, reconciler, db_manager):
        records = [
            {"id": 8, "shortname": "", "fullname": "Art"},
            {"id": 9, "shortname": "", "fullname": "Music"},
        ]
        result = reconciler.upsert(records, ResourceKind.ENROLLMENTS)

        assert result.created == 2
        assert db_manager.count("courses") == 2

    def test_skips_course_without_id(self, reconciler, db_manager):
        result = reconciler.upsert([{"shortname": "X"}], ResourceKind.ENROLLMENTS)
        assert result.skipped == 1
        assert db_manager.count("courses") == 0


class TestTasks:
    def test_assignment_and_event_share_a_row(self, reconciler, db_manager, course_index):
        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)
        result = reconciler.upsert([HW1_EVENT], ResourceKind.CALENDAR_EVENTS, course_index)

        assert result.updated == 1
        assert db_manager.count("tasks") == 1
        task = fetch_one(db_manager, "SELECT * FROM tasks")
        assert task["course_id"] == course_index[3].id
        assert task["due_date"] == "2026-01-01T00:00:00+00:00"
        assert task["source"] == "assignment"
        assert task["moodle_assignment_id"] == 11
        assert task["moodle_event_id"] == 31
        assert task["notes"] == "Type: due"

    def test_new_task_defaults(self, reconciler, db_manager, course_index):
        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)

        task = fetch_one(db_manager, "SELECT * FROM tasks")
        assert task["completed"] == 0
        assert task["priority"] == 1
        assert task["show_on_calendar"] == 1
        assert task["notes"] is None

    def test_local_fields_survive_resync(self, reconciler, db_manager, course_index):
        reconciler.upsert([HW1_EVENT], ResourceKind.CALENDAR_EVENTS, course_index)
        db_manager.execute_update(
            "UPDATE tasks SET completed = 1, show_on_calendar = 0, priority = 2, notes = ?",
            ("Bring laptop",),
        )

        reconciler.upsert([HW1_EVENT], ResourceKind.CALENDAR_EVENTS, course_index)
        reconciler.upsert([HW1_EVENT], ResourceKind.CALENDAR_EVENTS, course_index)

        task = fetch_one(db_manager, "SELECT * FROM tasks")
        assert task["completed"] == 1
        assert task["show_on_calendar"] == 0
        assert task["priority"] == 2
        assert task["notes"] == "Bring laptop\nType: due"

    def test_missing_priority_becomes_medium(self, reconciler, db_manager, course_index):
        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)
        db_manager.execute_update("UPDATE tasks SET priority = NULL")

        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)

        assert fetch_one(db_manager, "SELECT priority FROM tasks")["priority"] == 1

    def test_epoch_zero_due_date_is_null(self, reconciler, db_manager, course_index):
        reading = {"id": 12, "name": "Reading", "duedate": 0, "courseid": 3}

        result = reconciler.upsert([reading, reading], ResourceKind.ASSIGNMENTS, course_index)

        assert result.created == 1
        assert result.updated == 1
        assert fetch_one(db_manager, "SELECT due_date FROM tasks")["due_date"] is None

    def test_unknown_course_is_stored_without_course(self, reconciler, db_manager, course_index):
        orphan = {"id": 13, "name": "Orphan", "duedate": JAN_2, "courseid": 99}
        reconciler.upsert([orphan], ResourceKind.ASSIGNMENTS, course_index)
        assert fetch_one(db_manager, "SELECT course_id FROM tasks")["course_id"] is None

    def test_composite_key_treats_rename_as_new_task(self, reconciler, db_manager, course_index):
        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)
        renamed = {**HW1, "name": "HW1 (revised)"}
        reconciler.upsert([renamed], ResourceKind.ASSIGNMENTS, course_index)
        assert db_manager.count("tasks") == 2

    def test_remote_id_strategy_updates_renamed_task(self, db_manager, course_index):
        reconciler = EntityReconciler(
            db_manager, {ResourceKind.ASSIGNMENTS: DedupStrategy.REMOTE_ID}
        )
        reconciler.upsert([HW1], ResourceKind.ASSIGNMENTS, course_index)
        renamed = {**HW1, "name": "HW1 (revised)"}

        result = reconciler.upsert([renamed], ResourceKind.ASSIGNMENTS, course_index)

        assert result.updated == 1
        assert db_manager.count("tasks") == 1
        assert fetch_one(db_manager, "SELECT title FROM tasks")["title"] == "HW1 (revised)"


    def test_out_of_range_due_dates_are_null(self, reconciler, db_manager, course_index):
        records = [
            {"id": 15, "name": "Far future", "duedate": 10**15, "courseid": 3},
            {"id": 16, "name": "Not a number", "duedate": "nan", "courseid": 3},
            {"id": 17, "name": "Infinite", "duedate": "inf", "courseid": 3},
        ]

        result = reconciler.upsert(records, ResourceKind.ASSIGNMENTS, course_index)

        assert result.created == 3
        rows = db_manager.execute_query("SELECT due_date FROM tasks")
        assert [row["due_date"] for row in rows] == [None, None, None]

    def test_out_of_range_event_start_is_null(self, reconciler, db_manager, course_index):
        event = {**HW1_EVENT, "name": "Someday", "timestart": 10**15}

        result = reconciler.upsert([event], ResourceKind.CALENDAR_EVENTS, course_index)

        assert result.created == 1
        assert fetch_one(db_manager, "SELECT due_date FROM tasks")["due_date"] is None

class TestGrades:
    def test_grade_overwrite_keeps_created_at(self, reconciler, db_manager, course_index):
        item = {"id": 21, "itemname": "HW1", "graderaw": 85, "grademax": 50, "courseid": 3}
        reconciler.upsert([item], ResourceKind.GRADES, course_index)
        before = fetch_one(db_manager, "SELECT * FROM grades")

        regraded = {"id": 21, "itemname": "HW1", "graderaw": 92, "courseid": 3}
        result = reconciler.upsert([regraded], ResourceKind.GRADES, course_index)

        after = fetch_one(db_manager, "SELECT * FROM grades")
        assert result.updated == 1
        assert db_manager.count("grades") == 1
        assert after["score"] == 92
        assert after["total_points"] == 100
        assert after["created_at"] == before["created_at"]
        assert after["assignment_type"] == "Moodle"

    def test_local_grade_type_is_kept(self, reconciler, db_manager, course_index):
        item = {"itemname": "Midterm", "graderaw": 70, "courseid": 3}
        reconciler.upsert([item], ResourceKind.GRADES, course_index)
        db_manager.execute_update("UPDATE grades SET assignment_type = 'Exam'")

        reconciler.upsert([item], ResourceKind.GRADES, course_index)

        assert fetch_one(db_manager, "SELECT assignment_type FROM grades")["assignment_type"] == "Exam"


class TestAttendance:
    def test_session_window_and_details(self, reconciler, db_manager, course_index):
        reconciler.upsert([SESSION], ResourceKind.ATTENDANCE_SESSIONS, course_index)

        row = db_manager.get_by_id("attendance_sessions", 101)
        assert row["course_id"] == course_index[3].id
        assert row["moodle_course_id"] == 3
        assert row["start_time"] == "2026-01-01T00:00:00+00:00"
        assert row["end_time"] == "2026-01-01T01:30:00+00:00"
        assert row["requires_passcode"] == 1
        assert row["room"] == "Room 204"
        assert row["status"] == "0"

    def test_rescheduled_session_updates_same_row(self, reconciler, db_manager, course_index):
        reconciler.upsert([SESSION], ResourceKind.ATTENDANCE_SESSIONS, course_index)
        moved = {**SESSION, "sessdate": JAN_2, "description": None}

        result = reconciler.upsert([moved], ResourceKind.ATTENDANCE_SESSIONS, course_index)

        assert result.updated == 1
        assert db_manager.count("attendance_sessions") == 1
        row = db_manager.get_by_id("attendance_sessions", 101)
        assert row["start_time"] == "2026-01-02T00:00:00+00:00"
        assert row["room"] == "Room 204"

    def test_new_description_replaces_room(self, reconciler, db_manager, course_index):
        reconciler.upsert([SESSION], ResourceKind.ATTENDANCE_SESSIONS, course_index)
        moved = {**SESSION, "description": "Room 305"}

        result = reconciler.upsert([moved], ResourceKind.ATTENDANCE_SESSIONS, course_index)

        assert result.updated == 1
        assert db_manager.count("attendance_sessions") == 1
        assert db_manager.get_by_id("attendance_sessions", 101)["room"] == "Room 305"

    def test_overflowing_duration_falls_back_to_one_hour(
        self, reconciler, db_manager, course_index
    ):
        endless = {**SESSION, "duration": 1e300}

        result = reconciler.upsert([endless], ResourceKind.ATTENDANCE_SESSIONS, course_index)

        assert result.created == 1
        row = db_manager.get_by_id("attendance_sessions", 101)
        assert row["start_time"] == "2026-01-01T00:00:00+00:00"
        assert row["end_time"] == "2026-01-01T01:00:00+00:00"

    def test_attendance_always_matches_on_session_id(self, reconciler):
        assert reconciler.strategy_for(ResourceKind.ATTENDANCE_SESSIONS) == DedupStrategy.REMOTE_ID
        assert reconciler.strategy_for(ResourceKind.ASSIGNMENTS) == DedupStrategy.COMPOSITE


class TestTransactions:
    def test_database_error_becomes_reconciliation_error(self, tmp_path):
        reconciler = EntityReconciler(DatabaseManager(tmp_path / "empty.db"))
        with pytest.raises(ReconciliationError):
            reconciler.upsert(COURSES, ResourceKind.ENROLLMENTS)

    def test_failed_kind_is_rolled_back(self, reconciler, db_manager, course_index):
        original = reconciler._upsert_task
        seen = []

        def fail_on_second(*args, **kwargs):
            if seen:
                raise sqlite3.IntegrityError("boom")
            seen.append(args)
            return original(*args, **kwargs)

        second = {**HW1, "id": 14, "name": "HW2"}
        with patch.object(reconciler, "_upsert_task", side_effect=fail_on_second):
            with pytest.raises(ReconciliationError):
                reconciler.upsert([HW1, second], ResourceKind.ASSIGNMENTS, course_index)

        assert db_manager.count("tasks") == 0
        assert db_manager.count("courses") == 2

    def test_reconcile_runs_in_thread(self, reconciler, db_manager):
        result = asyncio.run(reconciler.reconcile(COURSES, ResourceKind.ENROLLMENTS))
        assert result.total == 2
        assert db_manager.count("courses") == 2


def test_parse_strategies_ignores_unknown_kinds():
    strategies = parse_strategies(["assignments", "bogus", "grades"])
    assert strategies == {
        ResourceKind.ASSIGNMENTS: DedupStrategy.REMOTE_ID,
        ResourceKind.GRADES: DedupStrategy.REMOTE_ID,
    }
