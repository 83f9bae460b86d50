# src/tix_kanban/github/request_queue.py

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[Any]]


class RateLimitedQueue:
    """
    FIFO of deferred remote calls, drained by a single consumer.

    submit() returns a future immediately; the consumer runs one operation at a
    time and sleeps `delay_seconds` after each one (success or failure) before
    starting the next. The consumer task is started on demand and exits when
    the queue is empty.
    """

    def __init__(self, *, delay_seconds: float = 0.1, name: str = "requests") -> None:
        self.delay_seconds = max(0.0, float(delay_seconds))
        self.name = name
        self._items: deque[tuple[Operation, asyncio.Future[Any]]] = deque()
        self._consumer: asyncio.Task[None] | None = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def busy(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def submit(self, operation: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        if self._closed:
            raise RuntimeError(f"queue {self.name} is closed")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._items.append((operation, future))
        if not self.busy:
            self._consumer = loop.create_task(self._drain())
        return future

    async def _drain(self) -> None:
        while self._items:
            operation, future = self._items.popleft()
            if future.cancelled():
                continue
            try:
                result = await operation()
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as exc:
                logger.debug("Queue %s operation failed: %s", self.name, exc)
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            await asyncio.sleep(self.delay_seconds)

    async def aclose(self) -> None:
        """Cancel queued (not yet started) operations and stop the consumer."""
        self._closed = True
        while self._items:
            _, future = self._items.popleft()
            if not future.done():
                future.cancel()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
