# src/tix_kanban/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Components get settings injected; nothing below the CLI reads the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TIX"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    github_enabled: bool

    # ---- Local data paths ----
    data_dir: Path
    tasks_dir: Path
    runs_dir: Path
    reports_dir: Path
    personas_dir: Path
    project_personas_dir: Path
    worker_state_path: Path

    # ---- Worker scheduler defaults (overridden by worker_state_path if present) ----
    worker_enabled: bool
    worker_interval: str
    worker_max_concurrent: int

    # ---- External agent ----
    agent_command: str
    agent_assignees: list[str]
    default_persona: str

    # ---- GitHub worker ----
    github_token: str | None
    github_api_url: str
    github_request_timeout: float
    github_queue_delay: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tix-kanban")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        github_enabled = _env_bool(_k("GITHUB_ENABLED"), False)

        data_dir = _env_path(_k("DATA_DIR"), Path.home() / ".tix-kanban")
        tasks_dir = _env_path(_k("TASKS_DIR"), data_dir / "tasks")
        runs_dir = _env_path(_k("RUNS_DIR"), data_dir / "runs")
        reports_dir = _env_path(_k("REPORTS_DIR"), data_dir / "reports")
        personas_dir = _env_path(_k("PERSONAS_DIR"), data_dir / "personas")
        project_personas_dir = _env_path(_k("PROJECT_PERSONAS_DIR"), Path("personas"))
        worker_state_path = _env_path(_k("WORKER_STATE_PATH"), data_dir / "worker-settings.json")

        worker_enabled = _env_bool(_k("WORKER_ENABLED"), True)
        worker_interval = _env(_k("WORKER_INTERVAL"), "*/30 * * * *").strip()
        worker_max_concurrent = _env_int(_k("WORKER_MAX_CONCURRENT"), 2)

        agent_command = _env(_k("AGENT_COMMAND"), "claude --print {prompt}")
        agent_assignees = _env_list(_k("AGENT_ASSIGNEES"), ["ai", "bot", "claude"])
        default_persona = _env(_k("DEFAULT_PERSONA"), "general-developer")

        github_token = _first_env(_k("GITHUB_TOKEN"), "GITHUB_TOKEN", default=None)
        github_api_url = _env(_k("GITHUB_API_URL"), "https://api.github.com").rstrip("/")
        github_request_timeout = _env_float(_k("GITHUB_REQUEST_TIMEOUT"), 60.0)
        github_queue_delay = _env_float(_k("GITHUB_QUEUE_DELAY"), 0.1)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            github_enabled=github_enabled,
            data_dir=data_dir,
            tasks_dir=tasks_dir,
            runs_dir=runs_dir,
            reports_dir=reports_dir,
            personas_dir=personas_dir,
            project_personas_dir=project_personas_dir,
            worker_state_path=worker_state_path,
            worker_enabled=worker_enabled,
            worker_interval=worker_interval,
            worker_max_concurrent=worker_max_concurrent,
            agent_command=agent_command,
            agent_assignees=agent_assignees,
            default_persona=default_persona,
            github_token=github_token,
            github_api_url=github_api_url,
            github_request_timeout=github_request_timeout,
            github_queue_delay=github_queue_delay,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
