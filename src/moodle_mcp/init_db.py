"""
Database initialization for Moodle MCP.

This module provides functions to initialize the SQLite database for Moodle MCP.
"""

import logging
import sqlite3
from pathlib import Path

# Configure logging
logger = logging.getLogger(__name__)


def create_database(db_path: str | Path) -> None:
    """
    Create and initialize the SQLite database for Moodle MCP.

    Args:
        db_path: Path to the database file
    """
    # Ensure the directory exists
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # Connect to the database
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row

    # Enable foreign keys
    conn.execute("PRAGMA foreign_keys = ON")

    cursor = conn.cursor()

    try:
        # Courses table. Local ids are generated; moodle_course_id is kept
        # so a stricter match can be switched on later.
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS courses (
            id TEXT PRIMARY KEY,
            moodle_course_id INTEGER,
            course_code TEXT,
            course_name TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """)

        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_courses_course_code ON courses(course_code);
        """)
        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_courses_course_name ON courses(course_name);
        """)

        # Tasks table (assignments and calendar events share it)
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            due_date TIMESTAMP,
            course_id TEXT,
            completed INTEGER NOT NULL DEFAULT 0,
            priority INTEGER,
            notes TEXT,
            show_on_calendar INTEGER NOT NULL DEFAULT 1,
            source TEXT,
            moodle_assignment_id INTEGER,
            moodle_event_id INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE SET NULL
        );
        """)

        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_tasks_dedup ON tasks(title, due_date, course_id);
        """)

        # Grades table
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS grades (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            course_id TEXT,
            score REAL NOT NULL DEFAULT 0,
            total_points REAL NOT NULL DEFAULT 100,
            assignment_type TEXT,
            moodle_grade_item_id INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE SET NULL
        );
        """)

        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_grades_dedup ON grades(name, course_id);
        """)

        # Attendance sessions table, keyed by the Moodle session id
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS attendance_sessions (
            id INTEGER PRIMARY KEY,
            course_id TEXT,
            moodle_course_id INTEGER,
            start_time TIMESTAMP,
            end_time TIMESTAMP,
            status TEXT,
            requires_passcode INTEGER NOT NULL DEFAULT 0,
            room TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE SET NULL
        );
        """)

        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_attendance_sessions_start ON attendance_sessions(start_time);
        """)

        conn.commit()
        logger.info(f"Database created successfully at {db_path}")
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Error creating database: {e}")
        raise
    finally:
        conn.close()
