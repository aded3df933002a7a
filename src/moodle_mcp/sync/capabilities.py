"""
Moodle Capability Probing

This module detects which optional web service functions a Moodle site
supports by calling each one with empty parameters.
"""

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from moodle_mcp.exceptions import CapabilityUnavailableError, TransportError
from moodle_mcp.models import RemoteConfig
from moodle_mcp.moodle_api_adapter import MoodleApiAdapter

# Configure logging
logger = logging.getLogger(__name__)

# Bump PROBE_VERSION whenever PROBE_FUNCTIONS changes.
PROBE_VERSION = 1
PROBE_FUNCTIONS = (
    "mod_attendance_get_sessions",
    "mod_attendance_get_statuses",
    "mod_attendance_update_user_status",
    "core_message_get_conversations",
    "core_message_send_messages_to_conversation",
)

ATTENDANCE_SESSIONS = "mod_attendance_get_sessions"
ATTENDANCE_STATUSES = "mod_attendance_get_statuses"
ATTENDANCE_SUBMIT = "mod_attendance_update_user_status"
MESSAGE_CONVERSATIONS = "core_message_get_conversations"
MESSAGE_SEND = "core_message_send_messages_to_conversation"


@dataclass(frozen=True)
class CapabilitySet:
    """Web service functions known to work against one site."""

    available: frozenset[str] = field(default_factory=frozenset)
    version: int = PROBE_VERSION
    strict: bool = False

    def __contains__(self, function: object) -> bool:
        return function in self.available

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.available))

    def __len__(self) -> int:
        return len(self.available)

    def is_available(self, function: str) -> bool:
        return function in self.available

    @classmethod
    def of(cls, functions: Iterable[str], strict: bool = False) -> "CapabilitySet":
        return cls(available=frozenset(functions), strict=strict)


def require(capabilities: CapabilitySet, function: str) -> None:
    """Raise CapabilityUnavailableError unless the function was probed as available."""
    if function not in capabilities:
        raise CapabilityUnavailableError(function)


def is_error_payload(payload: Any) -> bool:
    """True for Moodle's HTTP 200 exception envelope."""
    return isinstance(payload, dict) and ("exception" in payload or "errorcode" in payload)


async def check_capability(
    adapter: MoodleApiAdapter,
    config: RemoteConfig,
    function: str,
    strict: bool = False,
) -> bool:
    """
    Check whether a single web service function is callable.

    In literal mode any response without a transport error counts as
    available, including Moodle's HTTP 200 exception payloads. In strict
    mode those payloads count as unavailable.
    """
    try:
        payload = await asyncio.to_thread(adapter.call, config, function, {})
    except TransportError as e:
        logger.info(f"Capability {function} unavailable: {e}")
        return False

    if strict and is_error_payload(payload):
        logger.info(
            f"Capability {function} unavailable (strict): {payload.get('errorcode') or payload.get('exception')}"
        )
        return False
    return True


async def probe(
    adapter: MoodleApiAdapter,
    config: RemoteConfig,
    strict: bool = False,
    functions: Iterable[str] = PROBE_FUNCTIONS,
) -> CapabilitySet:
    """
    Probe the site for every function in the probe list.

    Args:
        adapter: Moodle API adapter
        config: Site URL and token
        strict: Treat exception payloads as unavailable
        functions: Functions to probe (defaults to PROBE_FUNCTIONS)

    Returns:
        The set of available functions
    """
    available = []
    for function in functions:
        if await check_capability(adapter, config, function, strict=strict):
            available.append(function)

    capabilities = CapabilitySet.of(available, strict=strict)
    logger.info(f"Probed capabilities (v{PROBE_VERSION}, strict={strict}): {sorted(available)}")
    return capabilities
