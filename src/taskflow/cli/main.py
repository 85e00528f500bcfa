# src/taskflow/cli/main.py

"""
CLI entrypoints.

main(): initializes logging, builds AppState, then runs
- the notification sweeper in a background thread (optional),
- the console REPL in the main thread (optional).

sweep_main(): one due-soon/overdue sweep plus notification cleanup, then exit.
Meant for cron.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..notifications.notification_api import cleanup_old_notifications
from ..notifications.sweeper import SweeperBackgroundRunner, run_sweeps_once, start_sweeper_in_background

logger = logging.getLogger(__name__)


def _setup_logging_from(settings) -> None:
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/taskflow")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def _wait_for_signal() -> None:
    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks SIGTERM.
        logger.debug("Signal handlers not installed.", exc_info=True)

    stop_main.wait()


def main() -> None:
    settings = get_settings()
    _setup_logging_from(settings)

    logger.info("Starting %s...", getattr(settings, "app_name", "taskflow"))

    state = create_initial_state(settings=settings)

    sweeper: SweeperBackgroundRunner | None = None
    if settings.sweeper_enabled:
        sweeper = start_sweeper_in_background(
            state.rules,
            interval_seconds=settings.sweep_interval_seconds,
            lock=state.lock,
        )

    try:
        if settings.console_enabled:
            # The REPL handles Ctrl+C itself (KeyboardInterrupt from input()).
            run_console_loop(state)
        else:
            logger.info("Console disabled. Running the sweeper only. Press Ctrl+C to stop.")
            _wait_for_signal()
    finally:
        if sweeper is not None:
            sweeper.stop()
            sweeper.join(timeout=10.0)
        logger.info("Bye.")


def sweep_main() -> None:
    settings = get_settings()
    _setup_logging_from(settings)

    state = create_initial_state(settings=settings)
    result = run_sweeps_once(state.rules)
    removed = cleanup_old_notifications(state)
    logger.info(
        "Sweep finished: due_soon=%d overdue=%d cleaned=%d",
        result.due_soon,
        result.overdue,
        removed,
    )


if __name__ == "__main__":
    main()
