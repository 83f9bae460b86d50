# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tix_kanban.cli.bootstrap import create_initial_state
from tix_kanban.core.state import AppState
from tix_kanban.runs.run_store import RunStore
from tix_kanban.tasks.task_store import TaskStore

from .fakes import FakeAgentRunner


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="tix-test",
        log_level="DEBUG",
        console_enabled=False,
        github_enabled=False,
        # Paths (tmp per test run)
        data_dir=data_dir,
        tasks_dir=data_dir / "tasks",
        runs_dir=data_dir / "runs",
        reports_dir=data_dir / "reports",
        personas_dir=data_dir / "personas",
        project_personas_dir=tmp_path / "project-personas",
        worker_state_path=data_dir / "worker-settings.json",
        # Worker
        worker_enabled=True,
        worker_interval="*/30 * * * *",
        worker_max_concurrent=2,
        agent_command="claude --print {prompt}",
        agent_assignees=["ai", "bot", "claude"],
        default_persona="general-developer",
        # GitHub
        github_token=None,
        github_api_url="https://api.github.test",
        github_request_timeout=1.0,
        github_queue_delay=0.0,
    )


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks")


@pytest.fixture()
def run_store(tmp_path: Path) -> RunStore:
    return RunStore(tmp_path / "runs")


@pytest.fixture()
def agent() -> FakeAgentRunner:
    return FakeAgentRunner()


@pytest.fixture()
def state(settings: SimpleNamespace, agent: FakeAgentRunner) -> AppState:
    """
    AppState from the real composition root, with the agent swapped for a fake.

    Stores are real (files under tmp_path) because their behaviour is part of
    what we want to test.
    """
    return create_initial_state(settings=settings, agent=agent)
