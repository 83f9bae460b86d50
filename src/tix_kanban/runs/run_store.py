# src/tix_kanban/runs/run_store.py

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from ..core.atomic_io import read_json, write_json_atomic
from ..core.errors import ParseFailureError
from ..tasks.task_models import parse_iso, utc_now_iso

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[a-z0-9]+$")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, rem = divmod(n, 36)
        out = _BASE36[rem] + out
        if n == 0:
            return out


def generate_run_id() -> str:
    """Millisecond timestamp in base36 followed by random hex; sorts roughly by start time."""
    return _base36(int(time.time() * 1000)) + secrets.token_hex(4)


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class RunRecord:
    id: str
    task_id: str
    persona: str
    started_at: str
    status: RunStatus = RunStatus.RUNNING
    output: str = ""
    completed_at: str | None = None
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status != RunStatus.RUNNING

    def finalize(self, *, succeeded: bool, output: str, error: str | None) -> None:
        """The one and only transition out of RUNNING."""
        if self.finished:
            raise RuntimeError(f"run {self.id} is already {self.status.value}")
        self.completed_at = utc_now_iso()
        self.output = output
        self.status = RunStatus.COMPLETED if succeeded else RunStatus.FAILED
        self.error = error or None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "persona": self.persona,
            "startedAt": self.started_at,
            "status": self.status.value,
            "output": self.output,
        }
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunRecord:
        return cls(
            id=str(data["id"]),
            task_id=str(data["taskId"]),
            persona=str(data.get("persona", "")),
            started_at=str(data["startedAt"]),
            status=RunStatus(data.get("status", RunStatus.RUNNING.value)),
            output=str(data.get("output", "")),
            completed_at=data.get("completedAt"),
            error=data.get("error"),
        )


class RunStore:
    """One JSON file per dispatch attempt, named by run id."""

    def __init__(self, runs_dir: str | Path) -> None:
        self._dir = Path(runs_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, run_id: str) -> Path | None:
        if not run_id or not _ID_RE.match(run_id):
            return None
        return self._dir / f"{run_id}.json"

    def start(self, *, task_id: str, persona: str) -> RunRecord:
        """Create and persist a RUNNING record so in-flight work is visible immediately."""
        run = RunRecord(
            id=generate_run_id(),
            task_id=task_id,
            persona=persona,
            started_at=utc_now_iso(),
        )
        self.save(run)
        return run

    def save(self, run: RunRecord) -> None:
        path = self._path(run.id)
        if path is None:
            raise ValueError(f"invalid run id: {run.id!r}")
        write_json_atomic(path, run.to_dict())

    def get(self, run_id: str) -> RunRecord | None:
        path = self._path(run_id)
        if path is None:
            return None
        try:
            return RunRecord.from_dict(read_json(path))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ParseFailureError(path, str(exc)) from exc

    def list_recent(self, limit: int = 10, *, task_id: str | None = None) -> list[RunRecord]:
        if limit <= 0:
            return []
        runs: list[RunRecord] = []
        for path in self._dir.glob("*.json"):
            try:
                run = RunRecord.from_dict(read_json(path))
            except FileNotFoundError:
                continue
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable run file %s: %s", path.name, exc)
                continue
            if task_id is not None and run.task_id != task_id:
                continue
            runs.append(run)
        runs.sort(key=lambda r: parse_iso(r.started_at), reverse=True)
        return runs[:limit]
