# tests/test_bootstrap.py

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

from tix_kanban.cli.bootstrap import create_initial_state, load_scheduler_settings
from tix_kanban.core.atomic_io import read_json, write_json_atomic, write_text_atomic
from tix_kanban.personas.catalog import DEFAULT_PERSONAS


def test_state_wires_stores_and_seeds_personas(state, settings) -> None:
    assert settings.tasks_dir.is_dir()
    assert settings.reports_dir.is_dir()
    assert state.github is None
    assert state.services is None
    assert len(state.personas.list_personas()) == len(DEFAULT_PERSONAS)
    assert state.scheduler.settings.max_concurrent == settings.worker_max_concurrent
    assert not state.scheduler.is_started


def test_github_queue_is_built_only_when_enabled(settings, agent) -> None:
    settings.github_enabled = True
    state = create_initial_state(settings=settings, agent=agent)
    assert state.github is not None


def test_persisted_worker_settings_override_environment(settings) -> None:
    write_json_atomic(
        settings.worker_state_path,
        {"enabled": False, "interval": "0 * * * *", "maxConcurrent": 3},
    )

    loaded = load_scheduler_settings(settings)

    assert (loaded.enabled, loaded.interval, loaded.max_concurrent) == (False, "0 * * * *", 3)


def test_bad_worker_settings_fall_back(settings) -> None:
    settings.worker_interval = "whenever"
    settings.worker_state_path.parent.mkdir(parents=True, exist_ok=True)
    settings.worker_state_path.write_text("{not json", "utf-8")

    loaded = load_scheduler_settings(settings)

    assert loaded.interval == "*/30 * * * *"
    assert loaded.max_concurrent == 2


def test_partial_settings_file_keeps_other_defaults(settings) -> None:
    settings.worker_state_path.parent.mkdir(parents=True, exist_ok=True)
    settings.worker_state_path.write_text(json.dumps({"maxConcurrent": 5}), "utf-8")

    loaded = load_scheduler_settings(replace_ns(settings, worker_enabled=False))

    assert loaded.enabled is False
    assert loaded.max_concurrent == 5


def replace_ns(ns: SimpleNamespace, **changes) -> SimpleNamespace:
    return SimpleNamespace(**{**vars(ns), **changes})


def test_atomic_writes_leave_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "x.json"
    write_json_atomic(target, {"a": 1, "name": "ü"})
    write_json_atomic(target, {"a": 2})
    write_text_atomic(tmp_path / "nested" / "y.md", "hello")

    assert read_json(target) == {"a": 2}
    assert sorted(p.name for p in target.parent.iterdir()) == ["x.json", "y.md"]
