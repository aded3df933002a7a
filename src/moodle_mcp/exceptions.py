"""
Exceptions raised by the Moodle MCP sync engine.
"""


class MoodleError(Exception):
    """Base class for all Moodle MCP errors."""


class TransportError(MoodleError):
    """A web service call failed at the network or HTTP level."""

    def __init__(self, message: str, function: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.function = function
        self.status_code = status_code


class NotAuthenticatedError(MoodleError):
    """No Moodle site URL and token have been configured."""

    def __init__(self, message: str = "Not authenticated with Moodle"):
        super().__init__(message)


class CapabilityUnavailableError(MoodleError):
    """A web service function is known to be unsupported by the site."""

    def __init__(self, capability: str):
        super().__init__(f"Moodle capability '{capability}' is not available")
        self.capability = capability


class ReconciliationError(MoodleError):
    """Writing synced records to the local database failed."""


class SessionClosedError(MoodleError):
    """An attendance session is not currently open for check-in."""

    def __init__(self, session_id: int):
        super().__init__(f"Attendance session {session_id} is not currently open")
        self.session_id = session_id
