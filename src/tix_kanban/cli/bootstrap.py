# src/tix_kanban/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local data directories exist,
- wires concrete implementations into AppState (stores, personas, agent, scheduler, GitHub queue).
"""

from __future__ import annotations

import logging

from ..agents.cli_agent import CliAgentRunner
from ..config import get_settings
from ..core.ports import AgentRunner
from ..core.state import AppState
from ..github.api import GitHubQueue
from ..github.worker_client import WorkerProcessClient
from ..personas.catalog import PersonaCatalog
from ..reports.report_store import ReportStore
from ..runs.run_store import RunStore
from ..tasks.task_scheduler import SchedulerSettings, WorkerScheduler
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_dir.mkdir(parents=True, exist_ok=True)
    settings.runs_dir.mkdir(parents=True, exist_ok=True)
    settings.reports_dir.mkdir(parents=True, exist_ok=True)
    settings.worker_state_path.parent.mkdir(parents=True, exist_ok=True)


def load_scheduler_settings(settings) -> SchedulerSettings:
    """Environment defaults, overridden by the persisted worker state file if present."""
    defaults = SchedulerSettings(
        enabled=settings.worker_enabled,
        interval=settings.worker_interval,
        max_concurrent=settings.worker_max_concurrent,
    )
    try:
        defaults.validate()
    except ValueError:
        logger.exception("Invalid worker settings in environment; using built-in defaults")
        defaults = SchedulerSettings()
    return SchedulerSettings.load(settings.worker_state_path, defaults)


def create_initial_state(*, settings=None, agent: AgentRunner | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_dir)
    runs = RunStore(settings.runs_dir)
    personas = PersonaCatalog(settings.personas_dir, settings.project_personas_dir)
    personas.seed_defaults()

    if agent is None:
        agent = CliAgentRunner(settings.agent_command)

    scheduler = WorkerScheduler(
        task_store,
        personas,
        runs,
        agent,
        settings=load_scheduler_settings(settings),
        agent_assignees=settings.agent_assignees,
        default_persona_id=settings.default_persona,
        settings_path=settings.worker_state_path,
    )

    github: GitHubQueue | None = None
    if settings.github_enabled:
        github = GitHubQueue(
            WorkerProcessClient(request_timeout=settings.github_request_timeout),
            delay_seconds=settings.github_queue_delay,
        )

    logger.info(
        "State ready: %d tasks in %s, worker %s",
        task_store.count(),
        settings.tasks_dir,
        scheduler.settings.to_dict(),
    )
    return AppState(
        settings=settings,
        task_store=task_store,
        runs=runs,
        personas=personas,
        reports=ReportStore(settings.reports_dir),
        scheduler=scheduler,
        github=github,
    )
