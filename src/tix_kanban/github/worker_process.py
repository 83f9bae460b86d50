# src/tix_kanban/github/worker_process.py

"""
External-API worker process.

Run as `python -m tix_kanban.github.worker_process`. Reads one JSON request
per line on stdin, answers one JSON line per request on stdout. stdout is the
protocol channel, so all logging goes to stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TextIO

import httpx

from ..config import get_settings
from ..core.errors import TixError
from ..logging_setup import setup_worker_logging

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class GitHubRateLimitError(TixError):
    pass


class UnknownActionError(TixError):
    pass


def _reset_time(headers: httpx.Headers) -> str:
    raw = headers.get("X-RateLimit-Reset")
    try:
        return datetime.fromtimestamp(int(raw or ""), UTC).isoformat()
    except ValueError:
        return "unknown"


def build_client(*, token: str | None, api_url: str = DEFAULT_API_URL, timeout: float = 30.0) -> httpx.Client:
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "tix-kanban",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.Client(base_url=api_url, headers=headers, timeout=timeout)


class GitHubActions:
    """Action handlers. One instance per worker process, sharing one httpx.Client."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "getPRStatus": self._get_pr_status_action,
            "getAllPRStatus": self._get_all_pr_status_action,
            "getRateLimit": lambda _params: self.get_rate_limit(),
        }

    @property
    def actions(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, action: str, params: Mapping[str, Any]) -> Any:
        handler = self._handlers.get(action)
        if handler is None:
            raise UnknownActionError(f"Unknown action: {action}")
        return handler(params)

    def _get(self, url: str, **params: Any) -> Any:
        response = self._client.get(url, params=params or None)
        if response.status_code in (403, 429) and response.headers.get("X-RateLimit-Remaining") == "0":
            raise GitHubRateLimitError(
                f"GitHub API rate limit exceeded; resets at {_reset_time(response.headers)}"
            )
        response.raise_for_status()
        return response.json()

    # ---- actions ----

    def get_pr_status(self, repo: str, pr_number: int) -> dict[str, Any]:
        pr = self._get(f"/repos/{repo}/pulls/{pr_number}")

        checks: list[dict[str, Any]] = []
        head_sha = (pr.get("head") or {}).get("sha")
        if head_sha:
            runs = self._get(f"/repos/{repo}/commits/{head_sha}/check-runs")
            checks = [
                {"conclusion": run.get("conclusion"), "status": run.get("status")}
                for run in runs.get("check_runs", [])
            ]

        reviews = [
            {"state": review.get("state"), "reviewer": (review.get("user") or {}).get("login", "")}
            for review in self._get(f"/repos/{repo}/pulls/{pr_number}/reviews")
            if review.get("state")
        ]

        if pr.get("merged") or pr.get("merged_at"):
            state = "merged"
        else:
            state = str(pr.get("state", "open")).lower()

        return {
            "number": pr.get("number", pr_number),
            "title": pr.get("title", ""),
            "state": state,
            "draft": bool(pr.get("draft", False)),
            "url": pr.get("html_url", ""),
            "checks": checks,
            "reviews": reviews,
            "mergeable": bool(pr.get("mergeable")),
            "createdAt": pr.get("created_at"),
            "updatedAt": pr.get("updated_at"),
        }

    def get_all_pr_status(self, repos: list[str]) -> dict[str, list[dict[str, Any]]]:
        """Open PRs per repo. A repo that fails is logged and reported with an empty list."""
        out: dict[str, list[dict[str, Any]]] = {}
        for repo in repos:
            try:
                pulls = self._get(f"/repos/{repo}/pulls", state="open", per_page=100)
                out[repo] = [self.get_pr_status(repo, int(p["number"])) for p in pulls]
            except GitHubRateLimitError:
                raise
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                logger.warning("PR status failed for %s: %s", repo, exc)
                out[repo] = []
        return out

    def get_rate_limit(self) -> dict[str, Any]:
        return self._get("/rate_limit")

    def _get_pr_status_action(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return self.get_pr_status(str(params["repo"]), int(params["prNumber"]))

    def _get_all_pr_status_action(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return self.get_all_pr_status([str(r) for r in params.get("repos") or []])


def handle_request(actions: GitHubActions, message: Any) -> dict[str, Any] | None:
    """Turn one decoded request into one response dict (None if it carries no id)."""
    if not isinstance(message, dict) or "id" not in message:
        logger.warning("Dropping request without id: %r", message)
        return None

    request_id = message["id"]
    action = str(message.get("action", ""))
    try:
        data = actions.dispatch(action, message.get("params") or {})
    except Exception as exc:
        logger.warning("Action %s failed: %s", action, exc)
        return {"id": request_id, "type": "error", "error": str(exc) or type(exc).__name__}
    return {"id": request_id, "type": "result", "data": data}


def serve(actions: GitHubActions, stdin: TextIO, stdout: TextIO) -> None:
    """Process requests until stdin closes."""
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed request line: %r", line[:200])
            continue
        response = handle_request(actions, message)
        if response is not None:
            stdout.write(json.dumps(response) + "\n")
            stdout.flush()


def main() -> None:
    settings = get_settings()
    setup_worker_logging(getattr(logging, str(settings.log_level).upper(), logging.INFO))

    with build_client(token=settings.github_token, api_url=settings.github_api_url) as client:
        logger.info("GitHub worker ready")
        serve(GitHubActions(client), sys.stdin, sys.stdout)
    logger.info("GitHub worker: stdin closed, exiting")


if __name__ == "__main__":
    main()
