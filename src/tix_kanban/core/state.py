# src/tix_kanban/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..cli.background import ServicesRunner
    from ..github.api import GitHubQueue
    from ..personas.catalog import PersonaCatalog
    from ..reports.report_store import ReportStore
    from ..runs.run_store import RunStore
    from ..tasks.task_scheduler import WorkerScheduler
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    task_store: TaskStore
    runs: RunStore
    personas: PersonaCatalog
    reports: ReportStore
    scheduler: WorkerScheduler

    github: GitHubQueue | None = None
    # Set once the asyncio services loop is running in its background thread.
    services: ServicesRunner | None = None
