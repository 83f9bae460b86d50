# tests/test_request_queue.py

from __future__ import annotations

import asyncio
import sys
import time

import pytest

from tix_kanban.core.errors import RequestTimeoutError
from tix_kanban.github.request_queue import RateLimitedQueue
from tix_kanban.github.worker_client import WorkerProcessClient

SILENT_WORKER = "import sys\nfor _ in sys.stdin:\n    pass\n"


@pytest.mark.asyncio
async def test_operations_run_one_at_a_time_in_fifo_order() -> None:
    queue = RateLimitedQueue(delay_seconds=0.0)
    log: list[str] = []
    active = 0

    def op(name: str):
        async def _run() -> str:
            nonlocal active
            active += 1
            assert active == 1
            log.append(f"start {name}")
            await asyncio.sleep(0.01)
            log.append(f"end {name}")
            active -= 1
            return name

        return _run

    futures = [queue.submit(op(n)) for n in ("a", "b", "c")]
    assert await asyncio.gather(*futures) == ["a", "b", "c"]
    assert log == ["start a", "end a", "start b", "end b", "start c", "end c"]


@pytest.mark.asyncio
async def test_failure_rejects_only_that_future_and_delay_still_applies() -> None:
    queue = RateLimitedQueue(delay_seconds=0.1)
    starts: list[float] = []

    async def boom() -> None:
        starts.append(time.monotonic())
        raise RuntimeError("remote said no")

    async def ok() -> str:
        starts.append(time.monotonic())
        return "fine"

    first = queue.submit(boom)
    second = queue.submit(ok)

    with pytest.raises(RuntimeError, match="remote said no"):
        await first
    assert await second == "fine"
    assert starts[1] - starts[0] >= 0.09


@pytest.mark.asyncio
async def test_submit_returns_immediately_and_consumer_restarts_on_demand() -> None:
    queue = RateLimitedQueue(delay_seconds=0.0)
    release = asyncio.Event()

    async def slow() -> int:
        await release.wait()
        return 1

    future = queue.submit(slow)
    assert not future.done()
    assert queue.busy

    release.set()
    assert await future == 1
    await asyncio.sleep(0.01)
    assert not queue.busy

    async def quick() -> int:
        return 2

    assert await queue.submit(quick) == 2


@pytest.mark.asyncio
async def test_aclose_cancels_queued_operations() -> None:
    queue = RateLimitedQueue(delay_seconds=0.0)
    hold = asyncio.Event()

    async def blocked() -> None:
        await hold.wait()

    running = queue.submit(blocked)
    queued = queue.submit(blocked)
    await asyncio.sleep(0.01)

    await queue.aclose()

    assert queued.cancelled()
    assert running.cancelled()
    with pytest.raises(RuntimeError):
        queue.submit(blocked)


@pytest.mark.asyncio
async def test_never_responding_worker_times_out_each_request_in_turn() -> None:
    timeout = 0.3
    delay = 0.2
    client = WorkerProcessClient([sys.executable, "-c", SILENT_WORKER], request_timeout=timeout)
    queue = RateLimitedQueue(delay_seconds=delay)
    starts: list[float] = []

    def op(n: int):
        async def _run():
            starts.append(time.monotonic())
            return await client.request("getRateLimit", {"n": n})

        return _run

    await client.start()
    try:
        futures = [queue.submit(op(n)) for n in range(3)]
        results = await asyncio.gather(*futures, return_exceptions=True)
    finally:
        await queue.aclose()
        await client.stop()

    assert all(isinstance(r, RequestTimeoutError) for r in results)
    assert len(starts) == 3
    # Each operation waits for the previous one's timeout plus the inter-operation delay.
    for earlier, later in zip(starts, starts[1:]):
        assert later - earlier >= timeout + delay - 0.02
    assert client.pending_count == 0
