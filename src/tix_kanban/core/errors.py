# src/tix_kanban/core/errors.py

"""
Error taxonomy.

- NotFoundError: a referenced task/report does not exist (surfaced, not retried).
- ParseFailureError: a stored record is malformed. Single-record reads raise it;
  directory scans (summary rebuild, run listing) log it and move on.
- ProcessFailureError: the external agent could not be started.
- WorkerRequestError family: failures of one queued external-API request.

Hitting the concurrency ceiling is not an error: the scheduler just declines.
"""

from __future__ import annotations

from pathlib import Path


class TixError(Exception):
    """Base class for all tix-kanban errors."""


class NotFoundError(TixError, LookupError):
    kind = "record"

    def __init__(self, ident: str) -> None:
        super().__init__(f"{self.kind} not found: {ident}")
        self.ident = ident


class TaskNotFoundError(NotFoundError):
    kind = "task"


class ReportNotFoundError(NotFoundError):
    kind = "report"


class ParseFailureError(TixError, ValueError):
    def __init__(self, path: str | Path, reason: str) -> None:
        super().__init__(f"failed to parse {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class TaskParseError(ParseFailureError):
    pass


class ProcessFailureError(TixError):
    """External agent failed to start (missing binary, bad command template, OSError)."""


class WorkerRequestError(TixError):
    """A request to the external-API worker process did not produce a result."""


class WorkerNotRunningError(WorkerRequestError):
    pass


class WorkerExitedError(WorkerRequestError):
    pass


class RequestTimeoutError(WorkerRequestError, TimeoutError):
    pass


class WorkerResponseError(WorkerRequestError):
    """The worker answered the request with an error payload."""
