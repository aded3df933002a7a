"""
Moodle API Adapter

This module provides a dedicated adapter for calling Moodle web service
functions over the REST protocol. It handles transport-level errors and
returns the decoded JSON payload untouched; shape validation is left to
callers.
"""

import logging
from typing import Any

import requests

from moodle_mcp.exceptions import NotAuthenticatedError, TransportError
from moodle_mcp.models import RemoteConfig

# Configure logging
logger = logging.getLogger(__name__)

REST_ENDPOINT = "/webservice/rest/server.php"
DEFAULT_TIMEOUT = 30.0


def encode_params(params: dict[str, Any] | None, prefix: str = "") -> dict[str, str]:
    """
    Flatten nested parameters into Moodle's indexed query form.

    {"courseids": [3, 5]} becomes {"courseids[0]": "3", "courseids[1]": "5"}
    and {"options": {"userevents": True}} becomes {"options[userevents]": "1"}.
    """
    flat: dict[str, str] = {}
    if not params:
        return flat

    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(encode_params(value, name))
        elif isinstance(value, list | tuple):
            flat.update(encode_params(dict(enumerate(value)), name))
        elif isinstance(value, bool):
            flat[name] = "1" if value else "0"
        elif value is None:
            continue
        else:
            flat[name] = str(value)
    return flat


class MoodleApiAdapter:
    """
    Adapter for calling Moodle web service functions.

    Each call is a single blocking HTTP GET; there are no retries. Callers
    run it in a worker thread from async code.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the Moodle API adapter.

        Args:
            session: Optional requests session (one is created if omitted)
            timeout: Seconds before a single call is abandoned
        """
        self.session = session or requests.Session()
        self.timeout = timeout

    def call(
        self,
        config: RemoteConfig | None,
        function: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Call a named Moodle web service function.

        Args:
            config: Site URL and token
            function: Web service function name, e.g. core_enrol_get_users_courses
            params: Function parameters; lists and dicts are flattened

        Returns:
            The decoded JSON body

        Raises:
            NotAuthenticatedError: if no config is supplied
            TransportError: on network failure, non-200 status or a body
                that is not JSON
        """
        if config is None:
            raise NotAuthenticatedError()

        query = {
            "wstoken": config.token,
            "moodlewsrestformat": "json",
            "wsfunction": function,
        }
        query.update(encode_params(params))
        url = f"{config.base_url}{REST_ENDPOINT}"

        logger.debug(f"Calling Moodle function {function}")
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Network error calling {function}: {e}")
            raise TransportError(f"Network error calling {function}: {e}", function) from e

        if response.status_code != 200:
            logger.warning(f"Moodle function {function} returned HTTP {response.status_code}")
            raise TransportError(
                f"Moodle function {function} returned HTTP {response.status_code}",
                function,
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Moodle function {function} returned a non-JSON body")
            raise TransportError(
                f"Moodle function {function} returned a non-JSON body", function, 200
            ) from e

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
