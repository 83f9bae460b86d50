# src/tix_kanban/github/worker_client.py

"""
Client side of the external-API worker process.

Requests and responses are newline-delimited JSON over the child's stdin/stdout:
  request  {"id": ..., "action": ..., "params": {...}}
  response {"id": ..., "type": "result", "data": ...}
         | {"id": ..., "type": "error", "error": "..."}

Correlation is by id only. Each pending request holds a future in
`_pending`; the reader task resolves it when the matching line arrives.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from ..core.errors import (
    RequestTimeoutError,
    WorkerExitedError,
    WorkerNotRunningError,
    WorkerResponseError,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COMMAND: tuple[str, ...] = (sys.executable, "-m", "tix_kanban.github.worker_process")
DEFAULT_REQUEST_TIMEOUT = 60.0
# Responses carrying a whole PR list can exceed asyncio's 64 KiB default line limit.
_STREAM_LIMIT = 16 * 1024 * 1024


class WorkerProcessClient:
    def __init__(
        self,
        command: Sequence[str] = DEFAULT_WORKER_COMMAND,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._command = list(command)
        self.request_timeout = float(request_timeout)
        self._env = dict(env) if env is not None else None
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[Any]] = {}

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def start(self) -> None:
        if self.is_running:
            logger.info("Worker process already running pid=%s", self.pid)
            return

        env = os.environ.copy()
        if self._env:
            env.update(self._env)

        self._process = await asyncio.create_subprocess_exec(
            *self._command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            env=env,
            limit=_STREAM_LIMIT,
        )
        self._reader = asyncio.get_running_loop().create_task(self._read_responses(self._process))
        logger.info("Worker process started pid=%s", self._process.pid)

    async def stop(self) -> None:
        proc = self._process
        if proc is None:
            return
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
        with contextlib.suppress(Exception):
            await asyncio.wait_for(proc.wait(), timeout=5.0)
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        logger.info("Worker process stopped")

    def kill(self) -> None:
        """Hard-kill the child (the reader task notices the exit and fails pending requests)."""
        if self._process is not None and self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()

    async def request(self, action: str, params: Mapping[str, Any] | None = None) -> Any:
        proc = self._process
        if proc is None or proc.returncode is not None or proc.stdin is None:
            raise WorkerNotRunningError("Worker not running")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        line = json.dumps({"id": request_id, "action": action, "params": dict(params or {})})
        try:
            proc.stdin.write(line.encode("utf-8") + b"\n")
            await proc.stdin.drain()
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except TimeoutError as exc:
            raise RequestTimeoutError(
                f"Worker request timeout after {self.request_timeout:g}s: {action}"
            ) from exc
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise WorkerExitedError("Worker process exited") from exc
        finally:
            self._pending.pop(request_id, None)

    def _resolve(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.warning("Ignoring malformed worker message: %r", message)
            return
        future = self._pending.pop(str(message.get("id")), None)
        if future is None or future.done():
            # Late answer to a request that already timed out.
            return
        if message.get("type") == "result":
            future.set_result(message.get("data"))
        else:
            future.set_exception(WorkerResponseError(str(message.get("error") or "Unknown worker error")))

    def _fail_pending(self, exc: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)

    async def _read_responses(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        try:
            while True:
                raw = await proc.stdout.readline()
                if not raw:
                    break
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON worker output: %r", raw[:200])
                    continue
                self._resolve(message)
        except ValueError:
            logger.exception("Worker output line exceeded the stream limit")
        finally:
            code = await proc.wait()
            logger.warning("Worker process exited with code %s", code)
            if self._process is proc:
                self._process = None
            self._fail_pending(WorkerExitedError(f"Worker process exited (code {code})"))
