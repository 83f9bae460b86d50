# src/tix_kanban/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the services loop (worker timer, GitHub queue) in a background thread,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.background import SHUTDOWN_GRACE_SECONDS, start_services_in_background
from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)
    services = start_services_in_background(state)
    if services is None:
        logger.error("Could not start background services; exiting.")
        return

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError):
        # Not on the main thread, or the platform lacks the signal.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the worker only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        services.stop()
        # aclose() waits up to SHUTDOWN_GRACE_SECONDS for in-flight agent runs.
        services.join(timeout=SHUTDOWN_GRACE_SECONDS + 10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
