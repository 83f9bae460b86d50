# tests/test_commands.py

from __future__ import annotations

import asyncio
import json
import sys
from types import SimpleNamespace

import pytest

from tix_kanban.cli.commands import CommandRegistry, registry
from tix_kanban.connectors.console_connector import handle_line
from tix_kanban.github.api import GitHubQueue
from tix_kanban.github.worker_client import WorkerProcessClient
from tix_kanban.tasks.task_models import TaskStatus


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/b y", emit=lambda _: None) == "h3"
    assert reg.handle(state, "/BEE") == "h3"
    assert called == {"h2": 1, "h3": 2}


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_help_lists_every_command(state) -> None:
    text = registry.handle(state, "/help") or ""
    for name in (
        "tasks", "task", "add", "move", "comment", "delete", "board", "worker", "runs", "reports",
        "link", "report", "pr", "prs", "ratelimit",
    ):
        assert f"/{name} " in text


def test_add_list_and_show_task(state) -> None:
    reply = registry.handle(state, "/add 150 ai Fix the login bug") or ""
    assert reply.startswith("Created ")
    task_id = reply.split()[1].rstrip(":")

    listing = registry.handle(state, "/tasks backlog @ai") or ""
    assert task_id in listing
    assert "p150" in listing
    assert "Fix the login bug" in listing

    shown = registry.handle(state, f"/task {task_id}") or ""
    assert "status=backlog priority=150 assignee=ai" in shown

    assert registry.handle(state, "/add high ai nope") == "Usage: /add <priority> <assignee|-> <title...>"
    assert "Unknown status" in (registry.handle(state, "/tasks archived") or "")


def test_add_without_assignee_is_not_picked_by_agent_filter(state) -> None:
    registry.handle(state, "/add 10 - human work")
    assert registry.handle(state, "/tasks @ai") == "No tasks."
    [summary] = state.task_store.list()
    assert summary.assignee is None


def test_move_comment_and_delete(state) -> None:
    task = state.task_store.create(title="x")

    assert registry.handle(state, f"/move {task.task_id} review") == f"{task.task_id} -> review"
    assert "Unknown status" in (registry.handle(state, f"/move {task.task_id} shipped") or "")
    assert registry.handle(state, "/move NOPE done") == "Task not found: NOPE"

    reply = registry.handle(state, f"/comment {task.task_id} looks good to me") or ""
    assert "1 total" in reply
    stored = state.task_store.get(task.task_id)
    assert stored is not None
    assert stored.status == TaskStatus.REVIEW
    assert stored.comments[0].text == "looks good to me"
    assert stored.comments[0].author == "console"

    assert registry.handle(state, f"/delete {task.task_id}") == f"Deleted {task.task_id}."
    assert registry.handle(state, f"/task {task.task_id}") == f"Task not found: {task.task_id}"
    assert registry.handle(state, "/delete ALREADYGONE") == "Deleted ALREADYGONE."


def test_board_shows_every_column(state) -> None:
    state.task_store.create(title="in backlog")
    board = registry.handle(state, "/board") or ""
    for status in TaskStatus:
        assert f"== {status} (" in board
    assert "== backlog (1) ==" in board


def test_worker_status_and_settings(state, settings) -> None:
    status = registry.handle(state, "/worker") or ""
    assert "interval='*/30 * * * *'" in status
    assert "running: -" in status

    assert "enabled=False" in (registry.handle(state, "/worker off") or "")
    assert not state.scheduler.settings.enabled

    reply = registry.handle(state, "/worker interval 0 9 * * 1-5") or ""
    assert "interval='0 9 * * 1-5'" in reply
    assert "maxConcurrent=4" in (registry.handle(state, "/worker max 4") or "")
    assert "Invalid worker setting" in (registry.handle(state, "/worker max 0") or "")
    assert "Invalid worker setting" in (registry.handle(state, "/worker interval soon") or "")

    persisted = json.loads(settings.worker_state_path.read_text("utf-8"))
    assert persisted == {"enabled": False, "interval": "0 9 * * 1-5", "maxConcurrent": 4}


def test_worker_trigger_needs_running_services(state) -> None:
    assert registry.handle(state, "/worker trigger") == "Worker services are not running."


def test_runs_and_reports_listing(state) -> None:
    assert registry.handle(state, "/runs") == "No runs."
    assert registry.handle(state, "/reports") == "No reports."

    run = state.runs.start(task_id="T1", persona="general-developer")
    report = state.reports.save_report("Sprint summary", "text", task_id="T1")

    assert run.id in (registry.handle(state, "/runs") or "")
    assert registry.handle(state, "/runs OTHER") == "No runs."
    assert f"{report.id}  Sprint summary (task T1)" == registry.handle(state, "/reports")


def test_console_line_handling_without_services(state) -> None:
    assert handle_line(state, "hello") == "Not a command. Use /help to list available commands."
    assert handle_line(state, "/board").startswith("== backlog")


def test_unreadable_task_is_reported(state) -> None:
    task = state.task_store.create(title="x")
    (state.task_store.data_dir / f"{task.task_id}.json").write_bytes(b'{"taskId": "\xff"}')

    reply = registry.handle(state, f"/task {task.task_id}") or ""
    assert reply.startswith(f"Task {task.task_id} is unreadable")


def test_link_guesses_type_or_takes_it_explicitly(state) -> None:
    task = state.task_store.create(title="x")

    reply = registry.handle(state, f"/link {task.task_id} https://github.com/o/r/pull/3")
    assert reply == f"Link [pr] added to {task.task_id} (1 total)."
    reply = registry.handle(state, f"/link {task.task_id} https://wiki.example/runbook doc Deploy runbook")
    assert reply == f"Link [doc] added to {task.task_id} (2 total)."
    assert registry.handle(state, "/link NOPE https://x.example") == "Task not found: NOPE"

    stored = state.task_store.get(task.task_id)
    assert stored is not None
    assert [(link.type, link.title) for link in stored.links] == [
        ("pr", "https://github.com/o/r/pull/3"),
        ("doc", "Deploy runbook"),
    ]
    assert "link [doc] Deploy runbook: https://wiki.example/runbook" in (
        registry.handle(state, f"/task {task.task_id}") or ""
    )


def test_report_add_show_and_delete(state) -> None:
    reply = registry.handle(state, "/report add T1 Auth audit | No findings.") or ""
    assert reply.startswith("Saved report ")
    report_id = reply.split()[-1].rstrip(".")

    shown = registry.handle(state, f"/report {report_id}") or ""
    assert shown.startswith(f"{report_id}: Auth audit")
    assert "task=T1" in shown
    assert shown.endswith("No findings.")

    assert registry.handle(state, f"/report rm {report_id}") == f"Deleted report {report_id}."
    assert registry.handle(state, f"/report {report_id}") == f"Report not found: {report_id}"
    assert (registry.handle(state, "/report add - no separator") or "").startswith("Usage:")


def test_github_commands_need_github_and_services(state) -> None:
    assert "disabled" in (registry.handle(state, "/ratelimit") or "")
    state.github = object()
    assert registry.handle(state, "/pr o/r 7") == "Worker services are not running."
    assert (registry.handle(state, "/pr o/r seven") or "").startswith("Usage:")
    assert (registry.handle(state, "/prs notarepo") or "").startswith("Usage:")


CANNED_GITHUB_WORKER = """
import json, sys
for line in sys.stdin:
    msg = json.loads(line)
    if msg["action"] == "getPRStatus":
        data = {"number": msg["params"]["prNumber"], "title": "Add retries", "state": "open",
                "draft": False, "url": "https://github.com/o/r/pull/7",
                "checks": [{"conclusion": "success", "status": "completed"},
                           {"conclusion": None, "status": "in_progress"}],
                "reviews": [{"state": "APPROVED", "reviewer": "bob"}]}
        out = {"id": msg["id"], "type": "result", "data": data}
    elif msg["action"] == "getRateLimit":
        out = {"id": msg["id"], "type": "result",
               "data": {"rate": {"limit": 5000, "remaining": 4321, "reset": 0}}}
    else:
        out = {"id": msg["id"], "type": "error", "error": "GitHub API rate limit exceeded"}
    sys.stdout.write(json.dumps(out) + "\\n")
    sys.stdout.flush()
"""


@pytest.mark.asyncio
async def test_github_commands_deliver_results_through_emit(state) -> None:
    state.github = GitHubQueue(
        WorkerProcessClient([sys.executable, "-c", CANNED_GITHUB_WORKER], request_timeout=5.0),
        delay_seconds=0.0,
    )
    state.services = SimpleNamespace()
    emitted: list[str] = []

    await state.github.start()
    try:
        assert registry.handle(state, "/pr o/r #7", emit=emitted.append) == "Queued PR check for o/r#7."
        assert registry.handle(state, "/ratelimit", emit=emitted.append) == "Queued rate limit check."
        assert registry.handle(state, "/prs o/r", emit=emitted.append) == "Queued open-PR check for 1 repo(s)."
        for _ in range(500):
            if len(emitted) == 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await state.github.stop()

    pr, limits, failed = emitted
    assert pr.startswith("[GITHUB] o/r#7:")
    assert "#7 [open] Add retries" in pr
    assert "checks: 1 passed, 0 failed, 1 pending; reviews: bob=APPROVED" in pr
    assert "4321/5000 requests left, resets at 1970-01-01T00:00:00+00:00" in limits
    assert failed == "[GITHUB] open PRs failed: GitHub API rate limit exceeded"
