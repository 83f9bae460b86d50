# src/tix_kanban/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, cast

from ..core.errors import ReportNotFoundError, TaskNotFoundError, TaskParseError
from ..core.state import AppState
from ..tasks.task_models import LinkType, TaskStatus, TaskSummary

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, /worker, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_summary(s: TaskSummary) -> str:
    extras = []
    if s.comment_count:
        extras.append(f"{s.comment_count} comments")
    if s.tags:
        extras.append("#" + " #".join(s.tags))
    tail = f"  ({', '.join(extras)})" if extras else ""
    return f"{s.task_id}  [{s.status}] p{s.priority} @{s.assignee or '-'}  {s.title}{tail}"


def _parse_status(raw: str) -> TaskStatus | None:
    try:
        return TaskStatus(raw.lower())
    except ValueError:
        return None


def _statuses() -> str:
    return ", ".join(s.value for s in TaskStatus)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks                  -> all tasks
    /tasks backlog          -> filter by status
    /tasks backlog @ai      -> filter by status and assignee
    """
    status: TaskStatus | None = None
    assignee: str | None = None
    for arg in args:
        if arg.startswith("@"):
            assignee = arg[1:] or None
            continue
        status = _parse_status(arg)
        if status is None:
            return f"Unknown status: {arg}. Use one of: {_statuses()}."

    summaries = state.task_store.list(status=status, assignee=assignee)
    if not summaries:
        return "No tasks."
    return "\n".join(_format_summary(s) for s in summaries)


def cmd_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /task <id>"
    try:
        task = state.task_store.get(args[0])
    except TaskParseError as exc:
        return f"Task {args[0]} is unreadable: {exc.reason}"
    if task is None:
        return f"Task not found: {args[0]}"

    lines = [
        f"{task.task_id}: {task.title}",
        f"  status={task.status} priority={task.priority} assignee={task.assignee or '-'}",
        f"  created={task.created_at} updated={task.updated_at}",
    ]
    if task.tags:
        lines.append(f"  tags: {', '.join(task.tags)}")
    if task.description:
        lines.append("")
        lines.append(task.description)
    for link in task.links:
        lines.append(f"  link [{link.type}] {link.title}: {link.url}")
    if task.comments:
        lines.append("")
        lines.append(f"Comments ({len(task.comments)}):")
        for c in task.comments:
            lines.append(f"- {c.author} @ {c.created_at}:")
            lines.extend(f"    {line}" for line in c.text.splitlines() or [""])
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <priority> <assignee|-> <title...>"""
    usage = "Usage: /add <priority> <assignee|-> <title...>"
    if len(args) < 3:
        return usage
    try:
        priority = int(args[0])
    except ValueError:
        return usage
    assignee = None if args[1] == "-" else args[1]
    task = state.task_store.create(title=" ".join(args[2:]), priority=priority, assignee=assignee)
    return f"Created {task.task_id}: {task.title}"


def cmd_move(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /move <id> <status>"
    status = _parse_status(args[1])
    if status is None:
        return f"Unknown status: {args[1]}. Use one of: {_statuses()}."
    try:
        task = state.task_store.update(args[0], {"status": status})
    except TaskNotFoundError:
        return f"Task not found: {args[0]}"
    return f"{task.task_id} -> {task.status}"


def cmd_comment(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /comment <id> <text...>"
    try:
        task = state.task_store.add_comment(args[0], " ".join(args[1:]), author="console")
    except TaskNotFoundError:
        return f"Task not found: {args[0]}"
    return f"Comment added to {task.task_id} ({len(task.comments)} total)."


def cmd_delete(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /delete <id>"
    state.task_store.delete(args[0])
    return f"Deleted {args[0]}."


def cmd_board(state: AppState, args: list[str]) -> str:
    board = state.task_store.board_summary()
    lines: list[str] = []
    for status, items in board.items():
        lines.append(f"== {status} ({len(items)}) ==")
        lines.extend(f"  {_format_summary(s)}" for s in items)
    return "\n".join(lines)


def _worker_status(state: AppState) -> str:
    status = state.scheduler.get_status()
    settings = status["settings"]
    lines = [
        "Worker:",
        f"  enabled={settings['enabled']} interval='{settings['interval']}' "
        f"maxConcurrent={settings['maxConcurrent']}",
        f"  running: {', '.join(status['running']) or '-'}",
        f"  next run: {status['nextRunAt'] or '-'}",
    ]
    if status["recentRuns"]:
        lines.append("  recent runs:")
        for run in status["recentRuns"][:5]:
            lines.append(f"    {run['id']} task={run['taskId']} {run['status']} ({run['startedAt']})")
    return "\n".join(lines)


def cmd_worker(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /worker                 -> status
    /worker trigger         -> dispatch one task now (if under the ceiling)
    /worker on | off        -> enable/disable the timer-driven dispatch
    /worker interval <cron> -> change the schedule (5-field cron)
    /worker max <n>         -> change the concurrency ceiling
    """
    if not args or args[0].lower() == "status":
        return _worker_status(state)

    sub = args[0].lower()
    scheduler = state.scheduler

    if sub == "trigger":
        if state.services is None:
            return "Worker services are not running."
        if emit:
            with contextlib.suppress(Exception):
                emit("[WORKER] Looking for an agent task...")
        job = scheduler.try_dispatch()
        if job is None:
            return "Nothing dispatched (no eligible task, or concurrency limit reached)."
        return f"Dispatched. Running: {', '.join(sorted(scheduler.running))}"

    try:
        if sub in ("on", "off"):
            updated = scheduler.apply_settings(enabled=sub == "on")
        elif sub == "interval" and len(args) >= 2:
            updated = scheduler.apply_settings(interval=" ".join(args[1:]))
        elif sub == "max" and len(args) == 2:
            updated = scheduler.apply_settings(max_concurrent=int(args[1]))
        else:
            return "Usage: /worker [status|trigger|on|off|interval <cron>|max <n>]"
    except ValueError as exc:
        return f"Invalid worker setting: {exc}"

    logger.debug("Worker settings changed from console: %s", updated.to_dict())
    return (
        f"Worker settings: enabled={updated.enabled} interval='{updated.interval}' "
        f"maxConcurrent={updated.max_concurrent}"
    )


def cmd_runs(state: AppState, args: list[str]) -> str:
    """/runs [task_id]"""
    runs = state.runs.list_recent(10, task_id=args[0] if args else None)
    if not runs:
        return "No runs."
    lines = []
    for run in runs:
        when = run.completed_at or run.started_at
        lines.append(f"{run.id}  task={run.task_id} persona={run.persona} {run.status} ({when})")
    return "\n".join(lines)


def cmd_reports(state: AppState, args: list[str]) -> str:
    reports = state.reports.list_reports()
    if not reports:
        return "No reports."
    return "\n".join(
        f"{r.id}  {r.title}" + (f" (task {r.task_id})" if r.task_id else "") for r in reports
    )


def cmd_link(state: AppState, args: list[str]) -> str:
    """/link <id> <url> [pr|issue|doc|other] [title...]"""
    if len(args) < 2:
        return "Usage: /link <id> <url> [pr|issue|doc|other] [title...]"
    task_id, url, rest = args[0], args[1], args[2:]
    if rest and rest[0].lower() in {t.value for t in LinkType}:
        link_type = LinkType(rest[0].lower())
        rest = rest[1:]
    else:
        link_type = _guess_link_type(url)
    try:
        task = state.task_store.add_link(task_id, url=url, title=" ".join(rest), link_type=link_type)
    except TaskNotFoundError:
        return f"Task not found: {task_id}"
    return f"Link [{link_type}] added to {task.task_id} ({len(task.links)} total)."


def _guess_link_type(url: str) -> LinkType:
    if "/pull/" in url:
        return LinkType.PR
    if "/issues/" in url:
        return LinkType.ISSUE
    return LinkType.OTHER


def cmd_report(state: AppState, args: list[str]) -> str:
    """
    /report <id>                                 -> show a report
    /report add <task_id|-> <title...> | <body>  -> save a report
    /report rm <id>                              -> delete a report
    """
    usage = "Usage: /report <id> | /report add <task_id|-> <title...> | <body...> | /report rm <id>"
    if not args:
        return usage

    sub = args[0].lower()
    if sub == "add":
        title, sep, body = " ".join(args[2:]).partition("|")
        if len(args) < 3 or not sep or not title.strip():
            return usage
        task_id = None if args[1] == "-" else args[1]
        report = state.reports.save_report(title.strip(), body.strip(), task_id=task_id)
        return f"Saved report {report.id}."

    if sub == "rm":
        if len(args) != 2:
            return usage
        state.reports.delete_report(args[1])
        return f"Deleted report {args[1]}."

    try:
        report = state.reports.get_report(args[0])
    except ReportNotFoundError:
        return f"Report not found: {args[0]}"
    except (OSError, ValueError) as exc:
        return f"Report {args[0]} is unreadable: {exc}"
    lines = [f"{report.id}: {report.title}", f"  created={report.created_at}"]
    if report.task_id:
        lines.append(f"  task={report.task_id}")
    if report.tags:
        lines.append(f"  tags: {', '.join(report.tags)}")
    if report.summary:
        lines.append(f"  {report.summary}")
    lines.append("")
    lines.append(report.content)
    return "\n".join(lines)


# ---- GitHub (answers arrive later through emit) ----


def _github_unavailable(state: AppState) -> str | None:
    if state.github is None:
        return "GitHub checks are disabled. Set TIX_GITHUB_ENABLED=1 to enable them."
    if state.services is None:
        return "Worker services are not running."
    return None


def _deliver(
    emit: CommandEmitter | None,
    what: str,
    fmt: Callable[[Any], str],
) -> Callable[[asyncio.Future[Any]], None]:
    def done(future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            text = f"[GITHUB] {what}: cancelled."
        elif future.exception() is not None:
            text = f"[GITHUB] {what} failed: {future.exception()}"
        else:
            text = f"[GITHUB] {what}:\n{fmt(future.result())}"
        if emit is None:
            logger.info("%s", text)
            return
        try:
            emit(text)
        except Exception:
            logger.exception("Failed to deliver GitHub result")

    return done


def _format_pr(pr: dict[str, Any]) -> str:
    draft = " draft" if pr.get("draft") else ""
    checks = pr.get("checks") or []
    passed = sum(1 for c in checks if c.get("conclusion") == "success")
    failed = sum(1 for c in checks if c.get("conclusion") in ("failure", "timed_out", "cancelled"))
    pending = sum(1 for c in checks if c.get("status") != "completed")
    reviews = ", ".join(f"{r.get('reviewer')}={r.get('state')}" for r in pr.get("reviews") or []) or "-"
    return (
        f"  #{pr.get('number')} [{pr.get('state')}{draft}] {pr.get('title')}\n"
        f"    checks: {passed} passed, {failed} failed, {pending} pending; reviews: {reviews}\n"
        f"    {pr.get('url')}"
    )


def _format_all_prs(result: dict[str, list[dict[str, Any]]]) -> str:
    lines = []
    for repo, prs in result.items():
        lines.append(f"  {repo}: {len(prs)} open")
        lines.extend(_format_pr(pr) for pr in prs)
    return "\n".join(lines)


def _format_rate_limit(data: dict[str, Any]) -> str:
    rate = data.get("rate") or {}
    reset = rate.get("reset")
    when = datetime.fromtimestamp(int(reset), UTC).isoformat() if reset is not None else "-"
    return f"  {rate.get('remaining', '?')}/{rate.get('limit', '?')} requests left, resets at {when}"


def cmd_pr(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/pr <owner/repo> <number>"""
    if len(args) != 2 or "/" not in args[0] or not args[1].lstrip("#").isdigit():
        return "Usage: /pr <owner/repo> <number>"
    if (problem := _github_unavailable(state)) is not None:
        return problem
    repo, number = args[0], int(args[1].lstrip("#"))
    future = state.github.queue_pr_status_check(repo, number)
    future.add_done_callback(_deliver(emit, f"{repo}#{number}", _format_pr))
    return f"Queued PR check for {repo}#{number}."


def cmd_prs(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/prs <owner/repo...>"""
    if not args or any("/" not in repo for repo in args):
        return "Usage: /prs <owner/repo> [owner/repo...]"
    if (problem := _github_unavailable(state)) is not None:
        return problem
    future = state.github.queue_all_pr_status_check(args)
    future.add_done_callback(_deliver(emit, "open PRs", _format_all_prs))
    return f"Queued open-PR check for {len(args)} repo(s)."


def cmd_ratelimit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if (problem := _github_unavailable(state)) is not None:
        return problem
    future = state.github.queue_rate_limit_check()
    future.add_done_callback(_deliver(emit, "rate limit", _format_rate_limit))
    return "Queued rate limit check."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [status] [@assignee].", aliases=["ls"])
registry.register("task", cmd_task, help_text="Show one task with comments: /task <id>.")
registry.register("add", cmd_add, help_text="Create a task: /add <priority> <assignee|-> <title...>.")
registry.register("move", cmd_move, help_text="Change status: /move <id> <status>.")
registry.register("comment", cmd_comment, help_text="Append a comment: /comment <id> <text...>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("board", cmd_board, help_text="Board view grouped by status.")
registry.register(
    "worker",
    cmd_worker,
    help_text="Worker control: /worker [status|trigger|on|off|interval <cron>|max <n>].",
)
registry.register("runs", cmd_runs, help_text="Recent agent runs: /runs [task_id].")
registry.register("reports", cmd_reports, help_text="List saved reports.")
registry.register("link", cmd_link, help_text="Attach a link: /link <id> <url> [pr|issue|doc|other] [title...].")
registry.register("report", cmd_report, help_text="Show, add or delete a report: /report <id> | add ... | rm <id>.")
registry.register("pr", cmd_pr, help_text="Queue a GitHub PR status check: /pr <owner/repo> <number>.")
registry.register("prs", cmd_prs, help_text="Queue open-PR checks: /prs <owner/repo...>.")
registry.register("ratelimit", cmd_ratelimit, help_text="Queue a GitHub rate limit check.")
