# src/tix_kanban/github/api.py

"""
Queued GitHub operations.

Every call goes through one RateLimitedQueue and then to the worker process,
so the event loop never blocks on the GitHub API and calls are spaced out.
Each queue_* method returns a future immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from .request_queue import RateLimitedQueue
from .worker_client import WorkerProcessClient

logger = logging.getLogger(__name__)


class GitHubQueue:
    def __init__(
        self,
        client: WorkerProcessClient,
        *,
        delay_seconds: float = 0.1,
    ) -> None:
        self.client = client
        self.queue = RateLimitedQueue(delay_seconds=delay_seconds, name="github")

    async def start(self) -> None:
        await self.client.start()

    async def stop(self) -> None:
        await self.queue.aclose()
        await self.client.stop()

    def _enqueue(self, action: str, params: Mapping[str, Any]) -> asyncio.Future[Any]:
        logger.debug("Queueing %s (depth=%d)", action, len(self.queue))
        return self.queue.submit(lambda: self.client.request(action, params))

    def queue_pr_status_check(self, repo: str, pr_number: int) -> asyncio.Future[Any]:
        return self._enqueue("getPRStatus", {"repo": repo, "prNumber": int(pr_number)})

    def queue_all_pr_status_check(self, repos: list[str]) -> asyncio.Future[Any]:
        return self._enqueue("getAllPRStatus", {"repos": list(repos)})

    def queue_rate_limit_check(self) -> asyncio.Future[Any]:
        return self._enqueue("getRateLimit", {})
