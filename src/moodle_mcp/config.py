"""
Configuration Management for Moodle MCP

This module centralizes configuration loading and management for the Moodle MCP server.
It handles environment variables, path logic, and constant definitions.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Configure logging
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

# Configure paths
PROJECT_DIR = Path(__file__).parent.parent.parent
DB_DIR = PROJECT_DIR / "data"
DB_PATH = DB_DIR / "moodle_mcp.db"

# Allow overriding the database path for testing
if os.environ.get("MOODLE_MCP_TEST_DB"):
    DB_PATH = Path(os.environ.get("MOODLE_MCP_TEST_DB"))
    logger.info(f"Using test database: {DB_PATH}")

# Ensure directories exist
os.makedirs(DB_PATH.parent, exist_ok=True)

# Moodle web service configuration
MOODLE_URL = os.environ.get("MOODLE_URL")
MOODLE_TOKEN = os.environ.get("MOODLE_TOKEN")

# Seconds before a single web service call is abandoned
REQUEST_TIMEOUT = float(os.environ.get("MOODLE_REQUEST_TIMEOUT", "30"))

# Treat HTTP 200 responses carrying an exception payload as "capability missing"
STRICT_CAPABILITIES = os.environ.get("MOODLE_STRICT_CAPABILITIES", "").lower() in (
    "1",
    "true",
    "yes",
)

# Resource kinds that match on the stored Moodle id before the composite key,
# e.g. "enrollments,assignments"
STRICT_DEDUP = [
    kind.strip()
    for kind in os.environ.get("MOODLE_STRICT_DEDUP", "").split(",")
    if kind.strip()
]

# Initialize database if it doesn't exist
if not DB_PATH.exists():
    from moodle_mcp.init_db import create_database

    create_database(DB_PATH)
    logger.info(f"Database initialized at {DB_PATH}")

# Export configuration variables
__all__ = [
    "DB_PATH",
    "MOODLE_URL",
    "MOODLE_TOKEN",
    "PROJECT_DIR",
    "REQUEST_TIMEOUT",
    "STRICT_CAPABILITIES",
    "STRICT_DEDUP",
]
