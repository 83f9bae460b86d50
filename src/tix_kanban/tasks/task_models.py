# src/tix_kanban/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_iso(raw: str | None) -> datetime:
    """Parse a stored ISO timestamp; unparseable values sort as oldest."""
    if not raw:
        return datetime.min.replace(tzinfo=UTC)
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class TaskStatus(StrEnum):
    """
    Board columns.

    The worker moves tasks backlog -> in-progress -> review on success,
    or back to backlog on failure. "done" is set only by humans.
    """

    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"


class LinkType(StrEnum):
    PR = "pr"
    ISSUE = "issue"
    DOC = "doc"
    OTHER = "other"

    @classmethod
    def from_raw(cls, raw: str | None) -> LinkType:
        try:
            return cls(raw or "other")
        except ValueError:
            return cls.OTHER


@dataclass(slots=True)
class Comment:
    id: str
    text: str
    author: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "author": self.author, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            author=str(data.get("author", "system")),
            created_at=str(data.get("createdAt", "")),
        )


@dataclass(slots=True)
class Link:
    id: str
    url: str
    title: str
    type: LinkType
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "type": self.type.value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Link:
        return cls(
            id=str(data["id"]),
            url=str(data.get("url", "")),
            title=str(data.get("title", "")),
            type=LinkType.from_raw(data.get("type")),
            created_at=str(data.get("createdAt", "")),
        )


@dataclass(slots=True)
class Task:
    task_id: str
    title: str
    description: str
    status: TaskStatus
    priority: int
    assignee: str | None
    tags: list[str]
    created_at: str
    updated_at: str
    comments: list[Comment] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "taskId": self.task_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "comments": [c.to_dict() for c in self.comments],
            "links": [link.to_dict() for link in self.links],
        }
        if self.assignee is not None:
            data["assignee"] = self.assignee
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Build a Task from its on-disk JSON form. Raises KeyError/ValueError/TypeError."""
        if not isinstance(data, dict):
            raise TypeError("task record must be a JSON object")
        assignee = data.get("assignee")
        return cls(
            task_id=str(data["taskId"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            status=TaskStatus(data.get("status", TaskStatus.BACKLOG.value)),
            priority=int(data.get("priority", 100)),
            assignee=str(assignee) if assignee is not None else None,
            tags=[str(t) for t in data.get("tags") or []],
            created_at=str(data["createdAt"]),
            updated_at=str(data.get("updatedAt") or data["createdAt"]),
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            links=[Link.from_dict(link) for link in data.get("links") or []],
        )

    def summary(self) -> TaskSummary:
        return TaskSummary(
            task_id=self.task_id,
            title=self.title,
            status=self.status,
            priority=self.priority,
            assignee=self.assignee,
            tags=list(self.tags),
            updated_at=self.updated_at,
            comment_count=len(self.comments),
            link_count=len(self.links),
        )


@dataclass(frozen=True, slots=True)
class TaskSummary:
    """Denormalized row of the summary index (answers list queries without opening task files)."""

    task_id: str
    title: str
    status: TaskStatus
    priority: int
    assignee: str | None
    tags: list[str]
    updated_at: str
    comment_count: int
    link_count: int

    def sort_key(self) -> tuple[int, datetime]:
        return (self.priority, parse_iso(self.updated_at))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "taskId": self.task_id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority,
            "tags": list(self.tags),
            "updatedAt": self.updated_at,
            "commentCount": self.comment_count,
            "linkCount": self.link_count,
        }
        if self.assignee is not None:
            data["assignee"] = self.assignee
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskSummary:
        assignee = data.get("assignee")
        return cls(
            task_id=str(data["taskId"]),
            title=str(data.get("title", "")),
            status=TaskStatus(data["status"]),
            priority=int(data.get("priority", 100)),
            assignee=str(assignee) if assignee is not None else None,
            tags=[str(t) for t in data.get("tags") or []],
            updated_at=str(data.get("updatedAt", "")),
            comment_count=int(data.get("commentCount", 0)),
            link_count=int(data.get("linkCount", 0)),
        )
