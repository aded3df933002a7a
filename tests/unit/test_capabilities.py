"""
Tests for capability probing.
"""

import asyncio

import pytest

from moodle_mcp.exceptions import CapabilityUnavailableError
from moodle_mcp.sync.capabilities import (
    ATTENDANCE_SESSIONS,
    ATTENDANCE_SUBMIT,
    MESSAGE_CONVERSATIONS,
    PROBE_FUNCTIONS,
    CapabilitySet,
    check_capability,
    probe,
    require,
)
from tests.fakes.fake_moodle import FakeMoodleAdapter, moodle_site, without

EXCEPTION_PAYLOAD = {
    "exception": "invalid_parameter_exception",
    "errorcode": "invalidparameter",
    "message": "Invalid parameter value detected",
}


def test_probe_finds_every_supported_function(remote_config):
    adapter = FakeMoodleAdapter(moodle_site())

    capabilities = asyncio.run(probe(adapter, remote_config))

    assert set(capabilities) == set(PROBE_FUNCTIONS)
    assert adapter.called_functions() == list(PROBE_FUNCTIONS)
    assert all(params == {} for _, params in adapter.calls)


def test_transport_failure_means_unavailable(remote_config):
    adapter = FakeMoodleAdapter(without(moodle_site(), ATTENDANCE_SESSIONS, MESSAGE_CONVERSATIONS))

    capabilities = asyncio.run(probe(adapter, remote_config))

    assert ATTENDANCE_SESSIONS not in capabilities
    assert MESSAGE_CONVERSATIONS not in capabilities
    assert ATTENDANCE_SUBMIT in capabilities
    assert len(capabilities) == len(PROBE_FUNCTIONS) - 2


def test_literal_mode_accepts_exception_payload(remote_config):
    adapter = FakeMoodleAdapter({ATTENDANCE_SESSIONS: EXCEPTION_PAYLOAD})
    assert asyncio.run(check_capability(adapter, remote_config, ATTENDANCE_SESSIONS))


def test_strict_mode_rejects_exception_payload(remote_config):
    adapter = FakeMoodleAdapter({ATTENDANCE_SESSIONS: EXCEPTION_PAYLOAD})
    assert not asyncio.run(
        check_capability(adapter, remote_config, ATTENDANCE_SESSIONS, strict=True)
    )


def test_strict_mode_accepts_normal_payload(remote_config):
    adapter = FakeMoodleAdapter({ATTENDANCE_SESSIONS: []})
    capabilities = asyncio.run(
        probe(adapter, remote_config, strict=True, functions=[ATTENDANCE_SESSIONS])
    )
    assert list(capabilities) == [ATTENDANCE_SESSIONS]
    assert capabilities.strict is True


def test_capability_set_is_sorted_and_comparable():
    capabilities = CapabilitySet.of([MESSAGE_CONVERSATIONS, ATTENDANCE_SESSIONS])
    assert list(capabilities) == sorted([MESSAGE_CONVERSATIONS, ATTENDANCE_SESSIONS])
    assert capabilities.is_available(ATTENDANCE_SESSIONS)
    assert not CapabilitySet().is_available(ATTENDANCE_SESSIONS)


def test_require_raises_for_missing_capability():
    with pytest.raises(CapabilityUnavailableError) as exc_info:
        require(CapabilitySet(), ATTENDANCE_SUBMIT)
    assert exc_info.value.capability == ATTENDANCE_SUBMIT

    require(CapabilitySet.of([ATTENDANCE_SUBMIT]), ATTENDANCE_SUBMIT)
