"""
Configuration file for pytest.

This file contains fixtures shared by the Moodle MCP tests. Every test gets
a fresh SQLite database in a temporary directory and a fake Moodle site.
"""

import os
import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from moodle_mcp.init_db import create_database
from moodle_mcp.models import RemoteConfig
from moodle_mcp.sync import SyncService
from moodle_mcp.utils.db_manager import DatabaseManager
from tests.fakes.fake_moodle import FakeMoodleAdapter, moodle_site

# Keep importers of moodle_mcp.config away from the real database
TEST_DATA_DIR = Path(__file__).parent / "test_data"
os.environ.setdefault("MOODLE_MCP_TEST_DB", str(TEST_DATA_DIR / "test_moodle_mcp.db"))


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """Return the path to a freshly initialized test database."""
    db_path = tmp_path / "moodle_mcp_test.db"
    create_database(db_path)
    return db_path


@pytest.fixture
def db_manager(test_db_path: Path) -> DatabaseManager:
    """Return a database manager for the test database."""
    return DatabaseManager(test_db_path)


@pytest.fixture
def db_connection(
    db_manager: DatabaseManager,
) -> Generator[tuple[sqlite3.Connection, sqlite3.Cursor], None, None]:
    """Return a connection and cursor for the test database."""
    conn, cursor = db_manager.connect()
    try:
        yield conn, cursor
    finally:
        conn.close()


@pytest.fixture
def remote_config() -> RemoteConfig:
    return RemoteConfig(base_url="https://moodle.example.edu/", token="test-token")


@pytest.fixture
def fake_moodle() -> FakeMoodleAdapter:
    """Return a fake adapter serving a site with every optional plugin."""
    return FakeMoodleAdapter(moodle_site())


@pytest.fixture
def sync_service(
    db_manager: DatabaseManager,
    fake_moodle: FakeMoodleAdapter,
    remote_config: RemoteConfig,
) -> SyncService:
    """Return a sync service talking to the fake Moodle site."""
    return SyncService(db_manager, fake_moodle, config=remote_config)
