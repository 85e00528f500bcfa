# src/taskflow/notifications/sweeper.py

from __future__ import annotations

"""
Notification sweeper.

A small polling loop that, every interval:
- runs the due-soon sweep,
- runs the overdue sweep,
- logs what was issued and keeps going on failure.

The sweeps themselves are idempotent within their dedup windows, so the
interval only controls latency, not how many notifications users get.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .rules import NotificationRuleEngine, SweepResult

logger = logging.getLogger(__name__)


def run_sweeps_once(engine: NotificationRuleEngine, lock: Any | None = None) -> SweepResult:
    if lock is not None:
        with lock:
            return engine.run_sweeps()
    return engine.run_sweeps()


async def run_notification_sweeper(
        engine: NotificationRuleEngine,
        *,
        interval_seconds: float = 3600.0,
        stop_event: asyncio.Event | None = None,
        lock: Any | None = None,
        on_result: Callable[[SweepResult], None] | None = None,
) -> None:
    """
    Simple polling sweeper.

    To stop it, cancel the coroutine/task or set stop_event.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while stop_event is None or not stop_event.is_set():
        try:
            result = run_sweeps_once(engine, lock)
            logger.info("Sweep done due_soon=%d overdue=%d", result.due_soon, result.overdue)
            if on_result is not None:
                on_result(result)
        except Exception:
            logger.exception("Notification sweep failed")

        if stop_event is None:
            await asyncio.sleep(sleep_s)
            continue

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)


@dataclass
class SweeperBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal sweeper stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_sweeper_in_background(
        engine: NotificationRuleEngine,
        *,
        interval_seconds: float,
        lock: Any | None = None,
) -> SweeperBackgroundRunner | None:
    """
    Start the sweeper in a daemon thread with its own event loop
    (the console REPL blocks the main thread on input()).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_notification_sweeper(
                    engine,
                    interval_seconds=interval_seconds,
                    stop_event=stop_event,
                    lock=lock,
                )
            )
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="notification-sweeper", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Sweeper thread did not initialize properly.")
        return None

    logger.info("Sweeper background thread started (interval=%.0fs).", interval_seconds)
    return SweeperBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
