# src/tix_kanban/reports/report_store.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.atomic_io import write_text_atomic
from ..core.errors import ReportNotFoundError
from ..personas.catalog import render_front_matter, split_front_matter
from ..tasks.task_models import parse_iso

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def slugify(title: str) -> str:
    return _SLUG_RE.sub("-", title.lower()).strip("-") or "report"


@dataclass(slots=True)
class Report:
    id: str
    title: str
    summary: str
    tags: list[str]
    task_id: str | None
    created_at: str
    updated_at: str
    filename: str
    content: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


class ReportStore:
    """
    Markdown reports, one file per report: <YYYY-MM-DD>-<slug>.md.

    Each file starts with a YAML header (title, summary, tags, taskId,
    createdAt, updatedAt) followed by the free-text body.
    """

    def __init__(self, reports_dir: str | Path) -> None:
        self._dir = Path(reports_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, report_id: str) -> Path | None:
        if not report_id or not _ID_RE.match(report_id) or report_id.startswith("."):
            return None
        return self._dir / f"{report_id}.md"

    def save_report(
        self,
        title: str,
        content: str,
        *,
        summary: str = "",
        tags: list[str] | None = None,
        task_id: str | None = None,
        slug: str | None = None,
    ) -> Report:
        now = datetime.now(UTC)
        now_iso = now.isoformat()
        report_id = f"{now.date().isoformat()}-{slugify(slug or title)}"
        filename = f"{report_id}.md"

        meta = {
            "title": title,
            "summary": summary,
            "tags": list(tags or []),
            "taskId": task_id,
            "createdAt": now_iso,
            "updatedAt": now_iso,
        }
        write_text_atomic(self._dir / filename, render_front_matter(meta, content))
        logger.info("Report saved %s (task=%s)", filename, task_id)

        return Report(
            id=report_id,
            title=title,
            summary=summary,
            tags=list(tags or []),
            task_id=task_id,
            created_at=now_iso,
            updated_at=now_iso,
            filename=filename,
            content=content,
        )

    def _load(self, path: Path) -> Report:
        meta, body = split_front_matter(path.read_text("utf-8"))
        stat = path.stat()
        mtime = datetime.fromtimestamp(stat.st_mtime, UTC).isoformat()
        task_id = meta.get("taskId")
        known = {"title", "summary", "tags", "taskId", "createdAt", "updatedAt"}
        return Report(
            id=path.stem,
            title=str(meta.get("title") or path.name),
            summary=str(meta.get("summary") or ""),
            tags=[str(t) for t in meta.get("tags") or []],
            task_id=str(task_id) if task_id else None,
            created_at=str(meta.get("createdAt") or mtime),
            updated_at=str(meta.get("updatedAt") or mtime),
            filename=path.name,
            content=body.strip("\n"),
            extra={k: v for k, v in meta.items() if k not in known},
        )

    def list_reports(self) -> list[Report]:
        """Report metadata (content left empty), newest first."""
        reports: list[Report] = []
        for path in self._dir.glob("*.md"):
            try:
                report = self._load(path)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable report %s: %s", path.name, exc)
                continue
            report.content = ""
            reports.append(report)
        reports.sort(key=lambda r: parse_iso(r.created_at), reverse=True)
        return reports

    def get_report(self, report_id: str) -> Report:
        path = self._path(report_id)
        if path is None or not path.exists():
            raise ReportNotFoundError(report_id)
        return self._load(path)

    def delete_report(self, report_id: str) -> None:
        path = self._path(report_id)
        if path is not None:
            path.unlink(missing_ok=True)
