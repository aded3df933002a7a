"""
Main entry point for the moodle_mcp package.
This allows running the package with `python -m moodle_mcp`.
"""

import logging
import signal
import sys

from moodle_mcp.server import handle_shutdown_signal, mcp

logger = logging.getLogger("moodle_mcp")


def main() -> None:
    try:
        signal.signal(signal.SIGINT, handle_shutdown_signal)
        mcp.run()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Exiting gracefully.")
        sys.exit(0)


if __name__ == "__main__":
    main()
