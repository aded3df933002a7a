"""
Moodle Sync Service

This module provides the main orchestrator for synchronizing data between
the Moodle web services and the local database.
"""

import logging
from datetime import datetime

from moodle_mcp.exceptions import NotAuthenticatedError
from moodle_mcp.models import (
    DedupStrategy,
    RemoteConfig,
    ResourceKind,
    SyncPhase,
    SyncStatus,
)
from moodle_mcp.moodle_api_adapter import MoodleApiAdapter
from moodle_mcp.sync.all import sync_all
from moodle_mcp.sync.capabilities import CapabilitySet
from moodle_mcp.sync.fallback import fallback_for
from moodle_mcp.sync.reconciler import EntityReconciler
from moodle_mcp.utils.db_manager import DatabaseManager

# Configure logging
logger = logging.getLogger(__name__)


_IN_FLIGHT = {SyncPhase.PROBING, SyncPhase.FETCHING, SyncPhase.RECONCILING}


class SyncService:
    """
    Service for synchronizing data between Moodle and the local database.

    This class holds the session state of the sync engine (site config,
    last probed capabilities, sync phase) and orchestrates probing, fetching
    and reconciliation through sync_all().
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        api_adapter: MoodleApiAdapter,
        config: RemoteConfig | None = None,
        strict_capabilities: bool = False,
        dedup_strategies: dict[ResourceKind, DedupStrategy] | None = None,
    ):
        """
        Initialize the sync service.

        Args:
            db_manager: Database manager for database operations
            api_adapter: Moodle API adapter for web service calls
            config: Optional site URL and token
            strict_capabilities: Treat HTTP 200 exception payloads as missing capabilities
            dedup_strategies: Optional per-kind dedup strategy overrides
        """
        self.db_manager = db_manager
        self.api_adapter = api_adapter
        self.config = config
        self.strict_capabilities = strict_capabilities
        self.reconciler = EntityReconciler(db_manager, dedup_strategies)

        self.phase = SyncPhase.IDLE
        self.is_syncing = False
        self.last_sync: datetime | None = None
        self.last_error: str | None = None
        self.capabilities = CapabilitySet()

        self.sync_all = sync_all.__get__(self)

    def update_config(self, base_url: str, token: str) -> None:
        """Replace the site config, e.g. after re-authentication."""
        self.config = RemoteConfig(base_url=base_url, token=token)
        self.capabilities = CapabilitySet()
        logger.info(f"Moodle config updated for {self.config.base_url}")

    @property
    def is_authenticated(self) -> bool:
        return self.config is not None

    def require_config(self) -> RemoteConfig:
        if self.config is None:
            raise NotAuthenticatedError()
        return self.config

    def is_capability_available(self, function: str) -> bool:
        return function in self.capabilities

    @property
    def status(self) -> SyncStatus:
        """Coarse status: idle, syncing, completed or failed (with message)."""
        if self.phase in _IN_FLIGHT:
            state = "syncing"
        else:
            state = self.phase.value
        message = self.last_error if self.phase == SyncPhase.FAILED else None
        return SyncStatus(state=state, message=message, last_sync=self.last_sync)

    def fallback_url(self, feature: str, course_id: int | None = None) -> str | None:
        """
        Moodle web URL for a feature whose web service function is missing.

        Returns None when the feature is available programmatically or when
        no site is configured.
        """
        if self.config is None:
            return None
        return fallback_for(self.capabilities, self.config.base_url, feature, course_id)
