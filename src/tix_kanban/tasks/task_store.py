# src/tix_kanban/tasks/task_store.py

from __future__ import annotations

import json
import logging
import re
import secrets
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.atomic_io import read_json, write_json_atomic
from ..core.errors import TaskNotFoundError, TaskParseError
from .task_models import Comment, Link, LinkType, Task, TaskStatus, TaskSummary, utc_now_iso

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "_summary.json"
DEFAULT_PRIORITY = 100

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Incoming partial updates may use the on-disk (camelCase) names.
_FIELD_ALIASES = {
    "taskId": "task_id",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
_IMMUTABLE_FIELDS = frozenset({"task_id", "created_at", "updated_at"})
_MUTABLE_FIELDS = frozenset(
    {"title", "description", "status", "priority", "assignee", "tags", "comments", "links"}
)


def generate_id() -> str:
    return secrets.token_hex(8).upper()


class TaskStore:
    """
    JSON-file task store.

    Layout (one directory):
    - <taskId>.json   one full record per task (source of truth)
    - _summary.json   sorted TaskSummary projection of every record (a cache)

    Every write goes through write_json_atomic (temp file + rename), and every
    mutating call rebuilds the summary from a full directory scan before it
    returns. That is O(n) per write; task volumes are small, and it keeps the
    index trivially consistent with the records.

    Concurrency: read-modify-write without locks. Two processes writing the same
    task can lose an update (last rename wins) but can never corrupt a file.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        logger.info("TaskStore ready dir=%s", self._dir)

    @property
    def data_dir(self) -> Path:
        return self._dir

    # ---- low-level helpers ----

    def _summary_path(self) -> Path:
        return self._dir / SUMMARY_FILENAME

    def _task_path(self, task_id: str) -> Path | None:
        if not task_id or not _ID_RE.match(task_id) or f"{task_id}.json" == SUMMARY_FILENAME:
            return None
        return self._dir / f"{task_id}.json"

    def _write_task(self, task: Task) -> None:
        path = self._task_path(task.task_id)
        if path is None:
            raise ValueError(f"invalid task id: {task.task_id!r}")
        write_json_atomic(path, task.to_dict())

    def _task_files(self) -> list[Path]:
        return sorted(p for p in self._dir.glob("*.json") if p.name != SUMMARY_FILENAME)

    def rebuild_summary(self) -> list[TaskSummary]:
        """
        Regenerate _summary.json from the task records.

        Unparseable records are logged and left out; they never abort the rebuild.
        """
        summaries: list[TaskSummary] = []
        for path in self._task_files():
            try:
                task = Task.from_dict(read_json(path))
            except FileNotFoundError:
                # Deleted between listdir and read.
                continue
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable task file %s: %s", path.name, exc)
                continue
            summaries.append(task.summary())

        summaries.sort(key=TaskSummary.sort_key, reverse=True)
        write_json_atomic(self._summary_path(), {"tasks": [s.to_dict() for s in summaries]})
        logger.debug("Summary rebuilt: %d tasks", len(summaries))
        return summaries

    def _read_summary(self) -> list[TaskSummary] | None:
        try:
            raw = read_json(self._summary_path())
            return [TaskSummary.from_dict(item) for item in raw["tasks"]]
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Summary index unreadable, rebuilding: %s", exc)
            return None

    @staticmethod
    def _normalize_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for raw_key, value in changes.items():
            key = _FIELD_ALIASES.get(raw_key, raw_key)
            if key in _IMMUTABLE_FIELDS:
                continue
            if key not in _MUTABLE_FIELDS:
                raise ValueError(f"unknown task field: {raw_key}")
            out[key] = value
        return out

    @staticmethod
    def _coerce_field(key: str, value: Any) -> Any:
        if key == "status":
            return TaskStatus(value)
        if key == "priority":
            return DEFAULT_PRIORITY if value is None else int(value)
        if key == "tags":
            return [str(t) for t in value or []]
        if key == "comments":
            return [c if isinstance(c, Comment) else Comment.from_dict(c) for c in value or []]
        if key == "links":
            return [link if isinstance(link, Link) else Link.from_dict(link) for link in value or []]
        if key == "assignee":
            return None if value in (None, "") else str(value)
        return "" if value is None else str(value)

    # ---- public API ----

    def create(
        self,
        *,
        title: str,
        description: str = "",
        status: TaskStatus | str = TaskStatus.BACKLOG,
        priority: int | None = None,
        assignee: str | None = None,
        tags: list[str] | None = None,
    ) -> Task:
        now = utc_now_iso()
        task = Task(
            task_id=generate_id(),
            title=title or "",
            description=description or "",
            status=TaskStatus(status),
            priority=DEFAULT_PRIORITY if priority is None else int(priority),
            assignee=assignee or None,
            tags=list(tags or []),
            created_at=now,
            updated_at=now,
        )
        self._write_task(task)
        self.rebuild_summary()
        logger.info("Task created id=%s priority=%s assignee=%s", task.task_id, task.priority, task.assignee)
        return task

    def get(self, task_id: str) -> Task | None:
        """Return the task or None if it does not exist. Raises TaskParseError on a corrupt record."""
        path = self._task_path(task_id)
        if path is None:
            return None
        try:
            data = read_json(path)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TaskParseError(path, str(exc)) from exc
        try:
            return Task.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise TaskParseError(path, f"{type(exc).__name__}: {exc}") from exc

    def update(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        """
        Merge `changes` over the stored record.

        taskId / createdAt are preserved whatever `changes` contains; updatedAt is
        always re-stamped. Raises TaskNotFoundError if the task is absent.
        """
        existing = self.get(task_id)
        if existing is None:
            raise TaskNotFoundError(task_id)

        for key, value in self._normalize_changes(changes).items():
            setattr(existing, key, self._coerce_field(key, value))
        existing.updated_at = utc_now_iso()

        self._write_task(existing)
        self.rebuild_summary()
        return existing

    def delete(self, task_id: str) -> None:
        path = self._task_path(task_id)
        if path is not None:
            path.unlink(missing_ok=True)
        self.rebuild_summary()
        logger.info("Task deleted id=%s", task_id)

    def add_comment(
        self,
        task_id: str,
        text: str,
        *,
        author: str = "system",
        status: TaskStatus | str | None = None,
    ) -> Task:
        """Append a comment; with `status`, the move is part of the same write."""
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        task.comments.append(
            Comment(id=generate_id(), text=text, author=author, created_at=utc_now_iso())
        )
        changes: dict[str, Any] = {"comments": task.comments}
        if status is not None:
            changes["status"] = status
        return self.update(task_id, changes)

    def add_link(
        self,
        task_id: str,
        *,
        url: str,
        title: str = "",
        link_type: LinkType | str = LinkType.OTHER,
    ) -> Task:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        task.links.append(
            Link(
                id=generate_id(),
                url=url,
                title=title or url,
                type=LinkType.from_raw(str(link_type)),
                created_at=utc_now_iso(),
            )
        )
        return self.update(task_id, {"links": task.links})

    def list(
        self,
        *,
        status: TaskStatus | str | None = None,
        assignee: str | None = None,
    ) -> list[TaskSummary]:
        """Summaries sorted by priority desc, then updatedAt desc, with equality filters."""
        summaries = self._read_summary()
        if summaries is None:
            summaries = self.rebuild_summary()

        if status:
            summaries = [s for s in summaries if s.status == status]
        if assignee:
            summaries = [s for s in summaries if s.assignee == assignee]
        return summaries

    def board_summary(self) -> dict[TaskStatus, list[TaskSummary]]:
        board: dict[TaskStatus, list[TaskSummary]] = {status: [] for status in TaskStatus}
        for summary in self.list():
            board[summary.status].append(summary)
        return board

    def count(self) -> int:
        return len(self.list())
