# src/tix_kanban/core/ports.py

"""
Ports (interfaces) used by the worker scheduler.

The scheduler depends on Protocols instead of concrete implementations,
so tests can swap the store, persona source and agent for fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class TaskRepo(Protocol):
    def list(self, *, status: Any = None, assignee: str | None = None) -> list[Any]: ...
    def get(self, task_id: str) -> Any | None: ...
    def update(self, task_id: str, changes: Mapping[str, Any]) -> Any: ...
    def add_comment(
        self, task_id: str, text: str, *, author: str = "system", status: Any = None
    ) -> Any: ...


class PersonaSource(Protocol):
    """Read-only persona catalog."""
    def list_personas(self) -> list[Any]: ...


class RunRepo(Protocol):
    def start(self, *, task_id: str, persona: str) -> Any: ...
    def save(self, run: Any) -> None: ...
    def list_recent(self, limit: int = 10, *, task_id: str | None = None) -> list[Any]: ...


class AgentRunner(Protocol):
    """Runs the external agent to completion; returns an AgentResult-like object."""
    async def run(self, prompt: str) -> Any: ...
