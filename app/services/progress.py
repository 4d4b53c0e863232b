"""
Startup Backoffice Platform
Progress Aggregator.

Explicit recompute functions, called by the operation that changed the
underlying data inside its own transaction (they never commit):

  recompute_milestone_progress(sprint)  after any milestone change
  recompute_board_progress(board)       after any task create/move/archive

Both write `progress_percentage` on the Sprint; the most recent recompute
wins. An empty board reads as EMPTY_BOARD_PROGRESS (default 100).
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from app.models import db
from app.models.board import DONE_TASK_STATUS, BoardColumn, Task

logger = logging.getLogger(__name__)

DEFAULT_EMPTY_BOARD_PROGRESS = 100


def percentage(part: int, whole: int) -> int:
    """Integer percentage rounded half up; callers handle whole == 0."""
    return (part * 200 + whole) // (2 * whole)


def milestone_percentage(completed: int, total: int) -> int:
    """round(completed / total * 100), defined as 0 when there are no milestones."""
    if total <= 0:
        return 0
    return percentage(completed, total)


def _empty_board_progress() -> int:
    return current_app.config.get("EMPTY_BOARD_PROGRESS", DEFAULT_EMPTY_BOARD_PROGRESS)


def recompute_milestone_progress(sprint):
    """Refresh milestone counters, phase and percentage on a sprint."""
    milestones = sprint.milestones.all()
    total = len(milestones)
    completed = sum(1 for m in milestones if m.status == "completed")
    sprint.total_milestones = total
    sprint.completed_milestones = completed
    if sprint.status != "completed":
        sprint.progress_percentage = milestone_percentage(completed, total)
    pending = [m for m in milestones if m.status != "completed"]
    sprint.current_phase = pending[0].name if pending else None
    sprint.progress_updated_at = datetime.now(timezone.utc)
    logger.debug("Sprint %s milestone progress %s/%s", sprint.id, completed, total)
    return sprint


def _counted_tasks(board_id):
    """Non-archived tasks sitting in non-archived columns."""
    return (
        Task.query
        .join(BoardColumn, Task.column_id == BoardColumn.id)
        .filter(
            Task.board_id == board_id,
            Task.archived_at.is_(None),
            BoardColumn.archived_at.is_(None),
        )
    )


def task_counts(board_id) -> tuple[int, int]:
    """Return (total_tasks, done_tasks) for a board."""
    q = _counted_tasks(board_id)
    total = q.count()
    done = q.filter(Task.status == DONE_TASK_STATUS).count()
    return total, done


def board_percentage(total: int, done: int) -> int:
    if total == 0:
        return _empty_board_progress()
    return percentage(done, total)


def recompute_board_progress(board):
    """
    Persist task-based progress on the sprint linked to `board`.

    Returns the sprint, or None when the board is not linked to one.
    """
    if board.sprint_id is None:
        return None
    sprint = board.sprint
    db.session.flush()
    total, done = task_counts(board.id)
    sprint.total_tasks = total
    sprint.done_tasks = done
    if sprint.status != "completed":
        sprint.progress_percentage = board_percentage(total, done)
    sprint.progress_updated_at = datetime.now(timezone.utc)
    logger.debug("Sprint %s task progress %s/%s → %s%%",
                 sprint.id, done, total, sprint.progress_percentage)
    return sprint


def board_summary(board) -> dict:
    """Per-column task counts plus the board-wide completion figure."""
    columns = []
    for column in board.active_columns():
        tasks = Task.query.filter(
            Task.column_id == column.id, Task.archived_at.is_(None),
        ).count()
        done = tasks if column.is_completed else 0
        columns.append({
            "column_id": column.id,
            "name": column.name,
            "role": column.role,
            "task_count": tasks,
            "wip_limit": column.wip_limit,
            "progress": board_percentage(tasks, done),
        })
    total, done = task_counts(board.id)
    return {
        "board_id": board.id,
        "sprint_id": board.sprint_id,
        "total_tasks": total,
        "done_tasks": done,
        "percentage": board_percentage(total, done),
        "columns": columns,
    }
