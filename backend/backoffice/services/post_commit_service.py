# Overview: Runs best-effort follow-up tasks after an order upsert commits; each task has its own failure boundary.

"""
Post-commit tasks.

The order row is already committed when these run. A task that raises is
logged, its session work rolled back, and the next task still runs; nothing
here can undo or block the order upsert.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from flask import current_app

from ..extensions import db


STATUS_OK = "ok"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class TaskOutcome:
    name: str
    status: str
    detail: Any = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status, "detail": self.detail, "error": self.error}


@dataclass(frozen=True)
class PostCommitTask:
    """`run` returns a detail value, or None when there was nothing to do."""
    name: str
    run: Callable[[], Any]


def run_post_commit_tasks(tasks: Sequence[PostCommitTask]) -> list[TaskOutcome]:
    outcomes: list[TaskOutcome] = []
    for task in tasks:
        try:
            detail = task.run()
        except Exception as exc:  # noqa: BLE001
            db.session.rollback()
            current_app.logger.warning("Post-commit task %s failed", task.name, exc_info=True)
            outcomes.append(TaskOutcome(task.name, STATUS_FAILED, error=str(exc)))
            continue
        status = STATUS_SKIPPED if detail is None else STATUS_OK
        outcomes.append(TaskOutcome(task.name, status, detail=detail))
    return outcomes
