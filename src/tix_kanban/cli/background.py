# src/tix_kanban/cli/background.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.state import AppState

logger = logging.getLogger(__name__)

T = TypeVar("T")

SHUTDOWN_GRACE_SECONDS = 30.0


async def _run_services(state: AppState, stop_event: asyncio.Event) -> None:
    scheduler = state.scheduler
    try:
        scheduler.start()
        if state.github is not None:
            try:
                await state.github.start()
            except OSError:
                logger.exception("GitHub worker failed to start; GitHub checks disabled")
                state.github = None

        await stop_event.wait()

    except asyncio.CancelledError:
        logger.info("Services loop cancelled.")
    except Exception:
        logger.exception("Services loop crashed.")
    finally:
        await scheduler.aclose(grace_seconds=SHUTDOWN_GRACE_SECONDS)
        if state.github is not None:
            with contextlib.suppress(Exception):
                await state.github.stop()
        logger.info("Services stopped.")


@dataclass
class ServicesRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def call(self, fn: Callable[..., T], *args: Any, timeout: float | None = 30.0, **kwargs: Any) -> T:
        """Run a plain callable on the services loop thread and return its result."""

        async def _invoke() -> T:
            return fn(*args, **kwargs)

        return asyncio.run_coroutine_threadsafe(_invoke(), self.loop).result(timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal services stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_services_in_background(state: AppState) -> ServicesRunner | None:
    """
    Start the asyncio services (worker timer, GitHub queue) in a background thread
    so the console REPL can block on input() in the main thread.
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
            loop.run_until_complete(_run_services(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="tix-services", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Services thread did not initialize properly.")
        return None

    runner_handle = ServicesRunner(thread=t, loop=loop, stop_event=stop_event)
    state.services = runner_handle
    logger.info("Services background thread started.")
    return runner_handle
