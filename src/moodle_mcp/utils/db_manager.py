"""
Database Management Utilities

This module provides utilities for managing database connections and operations
for the local Moodle MCP entity store.
"""

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from moodle_mcp.exceptions import ReconciliationError

# Configure logging
logger = logging.getLogger(__name__)

# Project paths
PROJECT_DIR = Path(__file__).parent.parent.parent.parent
DB_DIR = PROJECT_DIR / "data"
DEFAULT_DB_PATH = DB_DIR / "moodle_mcp.db"

# Type variable for return type of persistence functions
T = TypeVar("T")


class DatabaseManager:
    """
    Database manager for handling connections and common operations.
    """

    def __init__(self, db_path: str | Path = None):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database (defaults to project's database)
        """
        self.db_path = str(db_path or DEFAULT_DB_PATH)

    def connect(self) -> tuple[sqlite3.Connection, sqlite3.Cursor]:
        """
        Connect to the SQLite database.

        Returns:
            Tuple of (connection, cursor)
        """
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()

        # Readers (MCP tools) may run while a sync is writing
        try:
            current_mode = cursor.execute("PRAGMA journal_mode").fetchone()[0]
            if current_mode.lower() != "wal":
                cursor.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            logger.warning(f"Could not enable WAL mode: {e}")

        cursor.execute("PRAGMA foreign_keys = ON")

        return conn, cursor

    def execute_query(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        """
        Execute a SQL query and return all results.

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            List of rows
        """
        conn, cursor = self.connect()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        finally:
            conn.close()

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """
        Execute a SQL update/insert and return the number of affected rows.

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            Number of affected rows
        """
        conn, cursor = self.connect()
        try:
            cursor.execute(query, params)
            affected_rows = cursor.rowcount
            conn.commit()
            return affected_rows
        except Exception as e:
            conn.rollback()
            logger.error(f"Error executing update: {e}")
            raise
        finally:
            conn.close()

    def get_by_id(self, table: str, id_value: Any) -> sqlite3.Row | None:
        """
        Get a record by ID.

        Args:
            table: Table name
            id_value: ID value

        Returns:
            Row or None if not found
        """
        conn, cursor = self.connect()
        try:
            cursor.execute(f"SELECT * FROM {table} WHERE id = ?", (id_value,))
            return cursor.fetchone()
        finally:
            conn.close()

    def count(self, table: str) -> int:
        """Return the number of rows in a table."""
        rows = self.execute_query(f"SELECT COUNT(*) AS n FROM {table}")
        return rows[0]["n"]

    def row_to_dict(self, row: sqlite3.Row | None) -> dict[str, Any]:
        """
        Convert a SQLite Row to a dictionary.

        Args:
            row: SQLite Row object or None

        Returns:
            Dictionary representation of the row
        """
        if row is None:
            return {}
        return {key: row[key] for key in row.keys()}

    def rows_to_dicts(self, rows: list[sqlite3.Row]) -> list[dict[str, Any]]:
        """
        Convert a list of SQLite Rows to a list of dictionaries.

        Args:
            rows: List of SQLite Row objects

        Returns:
            List of dictionaries
        """
        return [self.row_to_dict(row) for row in rows]


def run_in_transaction(
    db_manager: DatabaseManager,
    persist_func: Callable[..., T],
    *args: Any,
) -> T:
    """
    Run a synchronous persistence function inside one transaction.

    The function receives (conn, cursor, *args). The transaction is committed
    when it returns and rolled back when it raises; database errors are
    re-raised as ReconciliationError.
    """
    conn, cursor = db_manager.connect()
    try:
        result = persist_func(conn, cursor, *args)
        conn.commit()
        logger.debug(f"Committed transaction for {persist_func.__name__}")
        return result
    except Exception as e:
        logger.error(
            f"Database error in {persist_func.__name__}, rolling back: {e}",
            exc_info=True,
        )
        try:
            conn.rollback()
        except sqlite3.Error as rb_e:
            logger.error(f"Rollback failed: {rb_e}")
        if isinstance(e, sqlite3.Error):
            raise ReconciliationError(f"{persist_func.__name__} failed: {e}") from e
        raise
    finally:
        conn.close()


async def run_db_persist_in_thread(
    db_manager: DatabaseManager,
    persist_func: Callable[..., T],
    *args: Any,
) -> T:
    """Runs a synchronous DB persistence function in a thread."""
    return await asyncio.to_thread(run_in_transaction, db_manager, persist_func, *args)
