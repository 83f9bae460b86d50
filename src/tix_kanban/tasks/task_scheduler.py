# src/tix_kanban/tasks/task_scheduler.py

"""
Worker scheduler.

A cron-driven loop that, on each firing:
- checks the enabled flag and the concurrency ceiling,
- picks the highest-priority backlog task assigned to an agent identity,
- claims it (status -> in-progress + running set),
- records a Run, launches the external agent,
- reconciles the task from the agent's exit code when it finishes.

The claim is the only guard against double dispatch. It holds within one
process; two schedulers sharing a store directory can both claim a task.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from croniter import croniter

from ..agents.cli_agent import AgentResult
from ..core.atomic_io import read_json, write_json_atomic
from ..core.errors import ProcessFailureError, TaskNotFoundError, TaskParseError
from ..core.ports import AgentRunner, PersonaSource, RunRepo, TaskRepo
from .task_models import TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ASSIGNEES: tuple[str, ...] = ("ai", "bot", "claude")
DEFAULT_PERSONA_ID = "general-developer"
NO_ERROR_OUTPUT = "Agent exited with code {code} and produced no error output."


@dataclass(slots=True)
class SchedulerSettings:
    enabled: bool = True
    interval: str = "*/30 * * * *"
    max_concurrent: int = 2

    def validate(self) -> None:
        if not croniter.is_valid(self.interval):
            raise ValueError(f"invalid cron expression: {self.interval!r}")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")

    @classmethod
    def load(cls, path: Path, defaults: SchedulerSettings) -> SchedulerSettings:
        """Overlay a persisted settings file on `defaults`. A bad file is logged and ignored."""
        if not path.exists():
            return replace(defaults)
        try:
            raw = read_json(path)
            loaded = replace(
                defaults,
                enabled=bool(raw.get("enabled", defaults.enabled)),
                interval=str(raw.get("interval", defaults.interval)),
                max_concurrent=int(raw.get("maxConcurrent", defaults.max_concurrent)),
            )
            loaded.validate()
            return loaded
        except (OSError, json.JSONDecodeError, AttributeError, TypeError, ValueError):
            logger.exception("Ignoring unreadable worker settings file %s", path)
            return replace(defaults)

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "interval": self.interval, "maxConcurrent": self.max_concurrent}


def build_prompt(persona: Any, task: Any) -> str:
    return (
        f"{persona.prompt}\n"
        "\n"
        "## Task\n"
        f"**Title:** {task.title}\n"
        f"**Description:** {task.description}\n"
        "\n"
        "## Instructions\n"
        f"{task.description}\n"
        "\n"
        "Please complete this task and provide a summary of what you did."
    )


class WorkerScheduler:
    """
    Owns the timer, the settings and the set of task ids currently running.

    Lifecycle: construct -> start() inside a running event loop -> stop()/aclose().
    trigger() runs one check-then-dispatch outside the timer and returns the
    asyncio.Task that completes with the finished RunRecord (or None when
    nothing was dispatched).
    """

    def __init__(
        self,
        task_store: TaskRepo,
        personas: PersonaSource,
        runs: RunRepo,
        agent: AgentRunner,
        *,
        settings: SchedulerSettings | None = None,
        agent_assignees: Iterable[str] = DEFAULT_AGENT_ASSIGNEES,
        default_persona_id: str = DEFAULT_PERSONA_ID,
        settings_path: str | Path | None = None,
    ) -> None:
        self._tasks = task_store
        self._personas = personas
        self._runs = runs
        self._agent = agent
        self._settings = replace(settings) if settings is not None else SchedulerSettings()
        self._settings.validate()
        self._assignees = frozenset(a.strip().lower() for a in agent_assignees if a.strip())
        self._default_persona_id = default_persona_id
        self._settings_path = Path(settings_path) if settings_path is not None else None

        self._running: set[str] = set()
        self._jobs: set[asyncio.Task[Any]] = set()
        self._timer: asyncio.Task[None] | None = None

    # ---- introspection ----

    @property
    def settings(self) -> SchedulerSettings:
        return replace(self._settings)

    @property
    def running(self) -> frozenset[str]:
        return frozenset(self._running)

    @property
    def is_started(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def next_fire_time(self) -> datetime | None:
        if not self.is_started:
            return None
        return croniter(self._settings.interval, self._now()).get_next(datetime)

    def get_status(self) -> dict[str, Any]:
        try:
            recent = [run.to_dict() for run in self._runs.list_recent(10)]
        except Exception:
            logger.exception("list_recent runs failed")
            recent = []
        next_fire = self.next_fire_time()
        return {
            "settings": self._settings.to_dict(),
            "running": sorted(self._running),
            "nextRunAt": next_fire.isoformat() if next_fire else None,
            "recentRuns": recent,
        }

    # ---- lifecycle ----

    def start(self) -> None:
        """Start (or restart) the timer. Must be called from inside the event loop."""
        self.stop()
        self._timer = asyncio.get_running_loop().create_task(self._timer_loop())
        logger.info("Worker timer started with interval: %s", self._settings.interval)

    def stop(self) -> None:
        """Stop the timer. In-flight runs keep going."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("Worker timer stopped")

    async def wait_idle(self) -> None:
        """Wait until every dispatched run has been reconciled."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    async def aclose(self, grace_seconds: float = 30.0) -> None:
        self.stop()
        if not self._jobs:
            return
        _, pending = await asyncio.wait(list(self._jobs), timeout=grace_seconds)
        if pending:
            logger.warning("Shutting down with %d agent run(s) still in flight", len(pending))

    async def update_settings(
        self,
        *,
        enabled: bool | None = None,
        interval: str | None = None,
        max_concurrent: int | None = None,
    ) -> SchedulerSettings:
        return self.apply_settings(enabled=enabled, interval=interval, max_concurrent=max_concurrent)

    def apply_settings(
        self,
        *,
        enabled: bool | None = None,
        interval: str | None = None,
        max_concurrent: int | None = None,
    ) -> SchedulerSettings:
        """
        Validate, persist and apply new settings. A changed interval restarts a
        running timer; in-flight runs are untouched. Call on the loop thread.
        """
        updated = replace(self._settings)
        if enabled is not None:
            updated.enabled = bool(enabled)
        if interval is not None:
            updated.interval = interval.strip()
        if max_concurrent is not None:
            updated.max_concurrent = int(max_concurrent)
        updated.validate()

        interval_changed = updated.interval != self._settings.interval
        self._settings = updated

        if self._settings_path is not None:
            try:
                write_json_atomic(self._settings_path, updated.to_dict())
            except OSError:
                logger.exception("Failed to persist worker settings to %s", self._settings_path)

        if interval_changed and self.is_started:
            self.start()

        logger.info("Worker settings updated: %s", updated.to_dict())
        return replace(updated)

    # ---- dispatch ----

    async def trigger(self) -> asyncio.Task[Any] | None:
        """Manual trigger: dispatch one task if under the concurrency ceiling (ignores `enabled`)."""
        return self.try_dispatch()

    def try_dispatch(self) -> asyncio.Task[Any] | None:
        """Synchronous body of trigger(); needs a running loop on the calling thread."""
        if len(self._running) >= self._settings.max_concurrent:
            logger.info(
                "Worker not triggered: %d/%d runs in flight",
                len(self._running),
                self._settings.max_concurrent,
            )
            return None
        return self.run_cycle()

    async def tick(self) -> asyncio.Task[Any] | None:
        """One timer firing."""
        if not self._settings.enabled:
            return None
        return self.try_dispatch()

    def run_cycle(self) -> asyncio.Task[Any] | None:
        """
        Select, claim and launch. Never raises: failures are logged and the next
        firing starts selection from scratch.

        Everything up to the claim is synchronous, so the ceiling check in
        trigger() and the claim cannot interleave with another cycle.
        """
        try:
            return self._dispatch_next()
        except Exception:
            logger.exception("Worker cycle failed")
            return None

    def _select_candidate(self) -> Any | None:
        for summary in self._tasks.list(status=TaskStatus.BACKLOG):
            assignee = (summary.assignee or "").strip().lower()
            if assignee in self._assignees and summary.task_id not in self._running:
                return summary
        return None

    def _resolve_persona(self) -> Any:
        personas = self._personas.list_personas()
        if not personas:
            raise RuntimeError("No personas available")
        for persona in personas:
            if persona.id == self._default_persona_id:
                return persona
        return personas[0]

    def _release_claim(self, task_id: str) -> None:
        self._running.discard(task_id)
        try:
            self._tasks.update(task_id, {"status": TaskStatus.BACKLOG})
        except Exception:
            logger.exception("Failed to release claim on task %s", task_id)

    def _dispatch_next(self) -> asyncio.Task[Any] | None:
        summary = self._select_candidate()
        if summary is None:
            logger.debug("No agent tasks in backlog")
            return None

        task_id = summary.task_id
        try:
            task = self._tasks.get(task_id)
        except TaskParseError:
            logger.exception("Task %s is corrupt; skipping this cycle", task_id)
            return None
        if task is None:
            logger.error("Failed to load task %s; skipping this cycle", task_id)
            return None

        self._tasks.update(task_id, {"status": TaskStatus.IN_PROGRESS})
        self._running.add(task_id)
        logger.info("Picked up task %s: %s", task_id, task.title)

        try:
            persona = self._resolve_persona()
            run = self._runs.start(task_id=task_id, persona=persona.id)
        except Exception:
            self._release_claim(task_id)
            raise

        prompt = build_prompt(persona, task)
        logger.info("Running task %s with persona %s (run %s)", task_id, persona.name, run.id)

        job = asyncio.get_running_loop().create_task(self._execute(task_id, persona, run, prompt))
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        return job

    async def _execute(self, task_id: str, persona: Any, run: Any, prompt: str) -> Any:
        try:
            try:
                result = await self._agent.run(prompt)
            except ProcessFailureError as exc:
                logger.error("Agent failed to start for task %s: %s", task_id, exc)
                result = AgentResult(exit_code=None, stdout="", stderr=str(exc))
            except Exception as exc:
                logger.exception("Agent run crashed for task %s", task_id)
                result = AgentResult(exit_code=None, stdout="", stderr=f"{type(exc).__name__}: {exc}")
        finally:
            self._running.discard(task_id)

        run.finalize(succeeded=result.succeeded, output=result.stdout, error=result.stderr or None)
        try:
            self._runs.save(run)
        except Exception:
            logger.exception("Failed to save run %s", run.id)

        self._reconcile(task_id, persona, result)
        return run

    def _reconcile(self, task_id: str, persona: Any, result: Any) -> None:
        if result.succeeded:
            text = f"{persona.name} completed this task:\n\n{result.stdout.strip()}"
            new_status = TaskStatus.REVIEW
        else:
            error = result.stderr.strip() or NO_ERROR_OUTPUT.format(code=result.exit_code)
            text = f"{persona.name} failed to complete this task:\n\n{error}"
            new_status = TaskStatus.BACKLOG

        try:
            self._tasks.add_comment(task_id, text, author=persona.id, status=new_status)
        except TaskNotFoundError:
            logger.warning("Task %s was deleted while its run was in flight", task_id)
            return
        except Exception:
            logger.exception("Failed to record outcome for task %s", task_id)
            return

        if new_status == TaskStatus.REVIEW:
            logger.info("Task %s -> review", task_id)
        else:
            logger.warning("Task %s failed (exit=%s) -> backlog", task_id, result.exit_code)

    @staticmethod
    def _now() -> datetime:
        return datetime.now().astimezone()

    async def _timer_loop(self) -> None:
        # Slots come from one iterator, so each slot fires at most once.
        schedule = croniter(self._settings.interval, self._now())
        while True:
            now = self._now()
            next_fire = schedule.get_next(datetime)
            while next_fire <= now:
                next_fire = schedule.get_next(datetime)
            await asyncio.sleep((next_fire - now).total_seconds())
            await self.tick()
