"""
Pydantic models for Moodle MCP data.

This module defines the data models used for validating and transforming data
between the Moodle web services and the local database.

Raw* models are the accessor layer over the loosely typed payloads Moodle
returns. Field shapes drift between Moodle versions and plugin installs, so
every optional field falls back to a default instead of failing; only the
identifiers needed to place a record are required.
"""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ResourceKind(str, Enum):
    """Unit of fetch/reconcile granularity."""

    ENROLLMENTS = "enrollments"
    ASSIGNMENTS = "assignments"
    GRADES = "grades"
    CALENDAR_EVENTS = "calendar_events"
    ATTENDANCE_SESSIONS = "attendance_sessions"


class DedupStrategy(str, Enum):
    """How an incoming record is matched against existing local rows."""

    COMPOSITE = "composite"
    REMOTE_ID = "remote_id"


class SyncPhase(str, Enum):
    """Internal phase of the sync state machine."""

    IDLE = "idle"
    PROBING = "probing"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskPriority(int, Enum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class RemoteConfig(BaseModel):
    """Moodle site URL and web service token."""

    base_url: str
    token: str

    class Config:
        frozen = True

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if v is None or v.strip() == "":
            raise ValueError("Base URL cannot be empty")
        return v.strip().rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        if v is None or v.strip() == "":
            raise ValueError("Token cannot be empty")
        return v.strip()


# --- Coercion helpers -------------------------------------------------------


def to_int(value: Any) -> int | None:
    """Coerce a JSON scalar to int, returning None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = to_float(value)
    return int(number) if number is not None else None


def to_float(value: Any) -> float | None:
    """
    Coerce a JSON scalar to float, returning None when it is not numeric.

    NaN, infinity and integers too large for a float count as not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def epoch_to_datetime(value: Any) -> datetime | None:
    """
    Convert Moodle epoch seconds to an aware UTC datetime.

    Zero, negative, missing or out-of-range values mean "no date", never
    1970-01-01 and never an error.
    """
    if isinstance(value, datetime):
        return value
    seconds = to_float(value)
    if not seconds or seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (ValueError, OverflowError, OSError):
        return None


def _course_ref(value: Any) -> int | None:
    # Calendar events may carry the course as a nested object
    if isinstance(value, dict):
        return to_int(value.get("id"))
    return to_int(value)


# --- Raw record accessors ---------------------------------------------------


class RawCourse(BaseModel):
    """A course entry from core_enrol_get_users_courses."""

    id: int
    shortname: str = ""
    fullname: str | None = None
    displayname: str | None = None

    class Config:
        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def require_id(cls, v: Any) -> int:
        course_id = to_int(v)
        if course_id is None:
            raise ValueError("Course id is missing")
        return course_id

    @field_validator("shortname", mode="before")
    @classmethod
    def default_shortname(cls, v: Any) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("fullname", "displayname", mode="before")
    @classmethod
    def optional_text(cls, v: Any) -> str | None:
        return v if isinstance(v, str) and v.strip() else None

    @property
    def full_name(self) -> str:
        return self.fullname or self.displayname or f"Course {self.id}"


class RawAssignment(BaseModel):
    """An assignment from mod_assign_get_assignments, tagged with its course."""

    id: int | None = None
    courseid: int | None = None
    name: str = "Assignment"
    duedate: datetime | None = None

    class Config:
        extra = "ignore"

    @field_validator("id", "courseid", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> int | None:
        return _course_ref(v)

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        return v if isinstance(v, str) and v.strip() else "Assignment"

    @field_validator("duedate", mode="before")
    @classmethod
    def convert_epoch(cls, v: Any) -> datetime | None:
        return epoch_to_datetime(v)


class RawGradeItem(BaseModel):
    """A grade item from gradereport_user_get_grade_items, tagged with its course."""

    id: int | None = None
    courseid: int | None = None
    itemname: str = "Grade"
    graderaw: float | None = None
    grade: float | None = None
    grademax: float = 100.0

    class Config:
        extra = "ignore"

    @field_validator("id", "courseid", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> int | None:
        return to_int(v)

    @field_validator("itemname", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        return v if isinstance(v, str) and v.strip() else "Grade"

    @field_validator("graderaw", "grade", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float | None:
        return to_float(v)

    @field_validator("grademax", mode="before")
    @classmethod
    def default_max(cls, v: Any) -> float:
        value = to_float(v)
        return 100.0 if value is None else value

    @property
    def score(self) -> float:
        if self.graderaw is not None:
            return self.graderaw
        if self.grade is not None:
            return self.grade
        return 0.0


class RawCalendarEvent(BaseModel):
    """An event from core_calendar_get_calendar_events."""

    id: int | None = None
    courseid: int | None = None
    name: str = "Event"
    timestart: datetime | None = None
    eventtype: str = ""

    class Config:
        extra = "ignore"

    @field_validator("id", "courseid", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> int | None:
        return _course_ref(v)

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        return v if isinstance(v, str) and v.strip() else "Event"

    @field_validator("timestart", mode="before")
    @classmethod
    def convert_epoch(cls, v: Any) -> datetime | None:
        return epoch_to_datetime(v)

    @field_validator("eventtype", mode="before")
    @classmethod
    def default_type(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @classmethod
    def from_raw(cls, record: dict[str, Any]) -> "RawCalendarEvent":
        data = dict(record)
        if data.get("courseid") in (None, 0):
            data["courseid"] = data.get("course")
        return cls.model_validate(data)


class RawAttendanceSession(BaseModel):
    """A session from mod_attendance_get_sessions."""

    id: int
    courseid: int | None = None
    sessdate: float = 0.0
    duration: float = 3600.0
    statusset: str = ""
    studentpassword: str | None = None
    description: str | None = None

    class Config:
        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def require_id(cls, v: Any) -> int:
        session_id = to_int(v)
        if session_id is None:
            raise ValueError("Session id is missing")
        return session_id

    @field_validator("courseid", mode="before")
    @classmethod
    def coerce_course(cls, v: Any) -> int | None:
        return to_int(v)

    @field_validator("sessdate", mode="before")
    @classmethod
    def default_date(cls, v: Any) -> float:
        return to_float(v) or 0.0

    @field_validator("duration", mode="before")
    @classmethod
    def default_duration(cls, v: Any) -> float:
        value = to_float(v)
        return 3600.0 if value is None else value

    @field_validator("statusset", mode="before")
    @classmethod
    def stringify_statusset(cls, v: Any) -> str:
        if v is None or isinstance(v, dict | list):
            return ""
        return str(v)

    @field_validator("studentpassword", "description", mode="before")
    @classmethod
    def optional_text(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None

    @property
    def requires_passcode(self) -> bool:
        return bool(self.studentpassword)


# --- Local database models --------------------------------------------------


class DBCourse(BaseModel):
    """Model for a course in the database."""

    id: str
    moodle_course_id: int | None = None
    course_code: str | None = None
    course_name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
        extra = "ignore"


class DBTask(BaseModel):
    """Model for a task (assignment or calendar event) in the database."""

    id: str
    title: str
    due_date: datetime | None = None
    course_id: str | None = None
    completed: bool = False
    priority: int | None = None
    notes: str | None = None
    show_on_calendar: bool = True
    source: str | None = None
    moodle_assignment_id: int | None = None
    moodle_event_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
        extra = "ignore"


class DBGrade(BaseModel):
    """Model for a grade in the database."""

    id: str
    name: str
    course_id: str | None = None
    score: float = 0.0
    total_points: float = 100.0
    assignment_type: str | None = None
    moodle_grade_item_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
        extra = "ignore"


class DBAttendanceSession(BaseModel):
    """Model for an attendance session in the database."""

    id: int
    course_id: str | None = None
    moodle_course_id: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: str | None = None
    requires_passcode: bool = False
    room: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
        extra = "ignore"


# --- Sync results -----------------------------------------------------------


class SyncStatus(BaseModel):
    """Coarse sync status exposed to callers."""

    state: str = "idle"
    message: str | None = None
    last_sync: datetime | None = None


class SyncReport(BaseModel):
    """Per-kind record counts for one completed sync cycle."""

    courses: int = 0
    assignments: int = 0
    grades: int = 0
    calendar_events: int = 0
    attendance_sessions: int = 0
    capabilities: list[str] = Field(default_factory=list)
    finished_at: datetime | None = None
