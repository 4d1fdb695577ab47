"""
Completed-task reports (CSV, plain text and a printable HTML page).
"""

from __future__ import annotations

import csv
import html
import io
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Optional

from reahub.db import DbClient, ProfileRecord, TaskRecord
from reahub.storage import StorageClient
from reahub.types import TaskStatus

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "ID",
    "Title",
    "Type",
    "Priority",
    "Client",
    "Supplier",
    "Created By",
    "Assigned To",
    "Created At",
    "Completed At",
    "Description",
]

HTML_STYLE = """
    body { font-family: Arial, sans-serif; padding: 40px; }
    h1 { color: #333; border-bottom: 3px solid #4CAF50; padding-bottom: 10px; }
    h2 { color: #555; margin-top: 30px; }
    .metadata { background: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0; }
    .task { border: 1px solid #ddd; padding: 15px; margin: 10px 0; border-radius: 5px; }
    .task-title { font-weight: bold; color: #2196F3; }
    .summary { background: #fff3cd; padding: 10px; margin: 10px 0; border-left: 4px solid #ffc107; }
    @media print { .task { page-break-inside: avoid; } }
"""


def _fmt_date(ts: Optional[float]) -> str:
    if ts is None:
        return "N/A"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def _fmt_datetime(ts: Optional[float]) -> str:
    if ts is None:
        return "N/A"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


class _Names:
    """Resolves user ids to display names, caching profile lookups."""

    def __init__(self, db: DbClient):
        self._db = db
        self._cache: dict[str, Optional[ProfileRecord]] = {}

    def __call__(self, user_id: Optional[str], default: str) -> str:
        if not user_id:
            return default
        if user_id not in self._cache:
            self._cache[user_id] = self._db.get_profile(user_id)
        profile = self._cache[user_id]
        return profile.display_name if profile else default


def tasks_to_csv(tasks: Iterable[TaskRecord], names) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for task in tasks:
        writer.writerow(
            [
                task.id,
                task.title,
                task.type.value,
                task.priority.value,
                task.client_name or "N/A",
                task.supplier_name or "N/A",
                names(task.created_by, "Unknown"),
                names(task.assigned_to, "Unassigned"),
                _fmt_date(task.created_at),
                _fmt_date(task.completed_at),
                task.description or "",
            ]
        )
    return buffer.getvalue()


def summarize(values: Iterable[str], by_count: bool = False) -> list[tuple[str, int]]:
    counts = Counter(values)
    if by_count:
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return list(counts.items())


def _summary_lines(pairs: list[tuple[str, int]]) -> str:
    return "\n".join(f"  {key}: {count}" for key, count in pairs)


def build_text_report(
    tasks: list[TaskRecord], names, generated_at: float, period_days: int
) -> str:
    by_type = summarize(t.type.value for t in tasks)
    by_priority = summarize(t.priority.value for t in tasks)
    by_user = summarize((names(t.assigned_to, "Unassigned") for t in tasks), by_count=True)
    details = "\n".join(
        f"- {t.title}\n"
        f"  Type: {t.type.value}\n"
        f"  Priority: {t.priority.value}\n"
        f"  Client: {t.client_name or 'N/A'}\n"
        f"  Completed: {_fmt_datetime(t.completed_at)}\n"
        f"  Assigned to: {names(t.assigned_to, 'Unassigned')}\n"
        for t in tasks
    )
    return (
        "COMPLETED TASKS REPORT\n"
        f"Generated: {_fmt_datetime(generated_at)}\n"
        f"Period: Last {period_days} days\n\n"
        f"Total Completed Tasks: {len(tasks)}\n\n"
        f"SUMMARY BY TYPE:\n{_summary_lines(by_type)}\n\n"
        f"SUMMARY BY PRIORITY:\n{_summary_lines(by_priority)}\n\n"
        f"SUMMARY BY USER:\n{_summary_lines(by_user)}\n\n"
        f"DETAILED TASKS:\n{details or 'No tasks'}\n"
    )


def build_html_report(
    tasks: list[TaskRecord], names, generated_at: float, period_days: int
) -> str:
    esc = html.escape

    def summary_block(pairs: list[tuple[str, int]]) -> str:
        return "".join(f"<div>{esc(key)}: {count}</div>" for key, count in pairs)

    by_type = summarize(t.type.value for t in tasks)
    by_priority = summarize(t.priority.value for t in tasks)
    by_user = summarize((names(t.assigned_to, "Unassigned") for t in tasks), by_count=True)
    task_blocks = "".join(
        '<div class="task">'
        f'<div class="task-title">{esc(t.title)}</div>'
        f"<div><strong>Type:</strong> {esc(t.type.value)} | "
        f"<strong>Priority:</strong> {esc(t.priority.value)}</div>"
        f"<div><strong>Client:</strong> {esc(t.client_name or 'N/A')} | "
        f"<strong>Supplier:</strong> {esc(t.supplier_name or 'N/A')}</div>"
        f"<div><strong>Completed:</strong> {_fmt_datetime(t.completed_at)}</div>"
        f"<div><strong>Assigned to:</strong> {esc(names(t.assigned_to, 'Unassigned'))}</div>"
        f"<div><strong>Description:</strong> {esc(t.description or 'N/A')}</div>"
        "</div>"
        for t in tasks
    )
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"UTF-8\">\n"
        f"<title>Completed Tasks Report</title>\n<style>{HTML_STYLE}</style>\n"
        "</head>\n<body>\n"
        "<h1>COMPLETED TASKS REPORT</h1>\n"
        '<div class="metadata">'
        f"<strong>Generated:</strong> {_fmt_datetime(generated_at)}<br>"
        f"<strong>Period:</strong> Last {period_days} days<br>"
        f"<strong>Total Completed Tasks:</strong> {len(tasks)}</div>\n"
        f'<h2>SUMMARY BY TYPE</h2>\n<div class="summary">{summary_block(by_type)}</div>\n'
        f'<h2>SUMMARY BY PRIORITY</h2>\n<div class="summary">{summary_block(by_priority)}</div>\n'
        f'<h2>SUMMARY BY USER</h2>\n<div class="summary">{summary_block(by_user)}</div>\n'
        f"<h2>DETAILED TASKS</h2>\n{task_blocks or '<p>No tasks</p>'}\n"
        "</body>\n</html>\n"
    )


def export_tasks_csv(db: DbClient, tasks: Iterable[TaskRecord]) -> str:
    return tasks_to_csv(tasks, _Names(db))


def run_report_generation(
    db: DbClient,
    storage: StorageClient,
    now: Optional[float] = None,
    period_days: int = 7,
) -> dict:
    now = time.time() if now is None else now
    logger.info("Starting report generation...")
    tasks = db.list_tasks(
        statuses=[TaskStatus.DONE],
        completed_since=now - period_days * 86400,
        include_deleted=True,
    )
    tasks.sort(key=lambda t: t.completed_at or 0, reverse=True)
    logger.info("Found %d completed tasks", len(tasks))

    names = _Names(db)
    report_date = _fmt_date(now)
    stem = f"completed-tasks-{report_date}-{int(now * 1000)}"
    files = {
        "csv": (tasks_to_csv(tasks, names), "text/csv"),
        "txt": (build_text_report(tasks, names, now, period_days), "text/plain"),
        "html": (build_html_report(tasks, names, now, period_days), "text/html"),
    }
    for ext, (content, content_type) in files.items():
        path = f"reports/{stem}.{ext}"
        storage.upload_text(path, content, content_type)
        logger.info("Uploaded %s", path)

    return {
        "success": True,
        "message": "Reports generated successfully",
        "task_count": len(tasks),
        "csv_file": f"{stem}.csv",
        "txt_file": f"{stem}.txt",
        "html_file": f"{stem}.html",
    }
