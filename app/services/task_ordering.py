"""
Startup Backoffice Platform
Task Ordering Engine.

Keeps task positions dense and zero-based within every column:

  create   new task goes to the tail (max position + 1, or 0)
  move     same column: shift the siblings between old and new slot by one
           cross column: close the gap in the source, open a slot in the target
  archive  close the gap left behind

Subtasks, time logs, comments, watchers and attachments hang off a task and
never touch positions; each change still appends a TaskActivity row.

Each operation runs as one transaction under the board row lock (see
board_service.lock_board), derives the task status from the target column's
role, appends a TaskActivity row, recomputes sprint progress, commits, and
only then publishes the realtime event and notifications.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func

from app.auth import Actor
from app.core.exceptions import (
    AccessDenied,
    MissingFieldError,
    NotFoundError,
    PreconditionFailed,
    ValidationError,
)
from app.models import db
from app.models.board import (
    SUBTASK_STATUSES,
    TASK_PRIORITIES,
    Board,
    BoardColumn,
    Task,
    TaskActivity,
    TaskComment,
    TaskSubtask,
    TaskTimeLog,
)
from app.services import progress
from app.services.board_service import authorize, get_column, lock_board
from app.services.notification import get_notifier
from app.services.realtime import board_topic, get_realtime
from app.utils.helpers import parse_date, parse_int, parse_number

logger = logging.getLogger(__name__)

# Fields a client may change through update_task; status/column/position only move
_EDITABLE_FIELDS = (
    "title", "description", "priority", "assignee_id", "assignee_type", "due_date", "tags",
    "estimated_hours",
)
_MOVE_ONLY_FIELDS = ("status", "column_id", "position")

MAX_COMMENT_LENGTH = 2000
MAX_ESTIMATED_HOURS = 1000
SUBTASK_TITLE_LENGTH = (3, 200)
# Bounds for one time-log entry, in hours
MIN_LOGGED_HOURS = 0.1
MAX_LOGGED_HOURS = 24


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _active_tasks(column_id):
    return Task.query.filter(Task.column_id == column_id, Task.archived_at.is_(None))


def _shift(column_id, *conditions, delta, exclude_id=None):
    """Add `delta` to the position of active tasks in a column matching conditions."""
    q = _active_tasks(column_id).filter(*conditions)
    if exclude_id is not None:
        q = q.filter(Task.id != exclude_id)
    return q.update({Task.position: Task.position + delta}, synchronize_session="fetch")


def _log_activity(task: Task, actor: Actor, action: str, description: str, details=None) -> TaskActivity:
    entry = TaskActivity(
        task_id=task.id,
        action=action,
        description=description,
        actor_id=actor.id,
        actor_type=actor.type,
        details=details or {},
    )
    db.session.add(entry)
    return entry


def _apply_column_status(task: Task, column: BoardColumn) -> None:
    task.status = column.task_status
    if column.is_completed:
        task.completed_at = task.completed_at or _utcnow()
    else:
        task.completed_at = None


def _add_watcher(task: Task, user_id: int, user_type: str) -> bool:
    if user_id is None or task.is_watched_by(user_id, user_type):
        return False
    task.watchers = [*(task.watchers or []), {"id": user_id, "type": user_type}]
    return True


def _check_wip_limit(column: BoardColumn) -> None:
    if column.wip_limit and _active_tasks(column.id).count() >= column.wip_limit:
        raise PreconditionFailed(
            f"Column '{column.name}' reached its WIP limit of {column.wip_limit}",
            details={"column_id": column.id, "wip_limit": column.wip_limit},
        )


def _publish(board_id: int, event: str, payload: dict) -> None:
    get_realtime().publish(board_topic(board_id), event, payload)


def get_task(task_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if task is None or task.is_archived:
        raise NotFoundError(resource="Task", resource_id=task_id)
    return task


def get_task_for_actor(task_id: int, actor: Actor) -> Task:
    task = get_task(task_id)
    authorize(task.board, actor)
    return task


def _lock_task(task_id: int, actor: Actor, permission: str) -> tuple[Board, Task]:
    """Resolve the task, lock its board, then re-read the task under the lock."""
    board_id = get_task(task_id).board_id
    board = lock_board(board_id)
    authorize(board, actor, permission)
    task = db.session.get(Task, task_id, populate_existing=True)
    if task is None or task.is_archived:
        raise NotFoundError(resource="Task", resource_id=task_id)
    return board, task


def list_tasks(board_id: int, actor: Actor, column_id: int | None = None):
    board = db.session.get(Board, board_id)
    if board is None or board.is_archived:
        raise NotFoundError(resource="Board", resource_id=board_id)
    authorize(board, actor)
    q = (
        Task.query
        .join(BoardColumn, Task.column_id == BoardColumn.id)
        .filter(
            Task.board_id == board.id,
            Task.archived_at.is_(None),
            BoardColumn.archived_at.is_(None),
        )
    )
    if column_id is not None:
        q = q.filter(Task.column_id == column_id)
    return q.order_by(BoardColumn.position, Task.position)


# ═════════════════════════════════════════════════════════════════════════════
# Create / move / archive
# ═════════════════════════════════════════════════════════════════════════════

def create_task(board_id: int, actor: Actor, data: dict) -> Task:
    """Create a task at the tail of its column."""
    board = lock_board(board_id)
    authorize(board, actor, "can_create_tasks")

    title = (data.get("title") or "").strip()
    if not title:
        raise MissingFieldError("title")
    column_id = data.get("column_id")
    if column_id is None:
        columns = board.active_columns()
        if not columns:
            raise PreconditionFailed("Board has no active column")
        column = columns[0]
    else:
        column = get_column(board, parse_int(column_id, "column_id"))
    _check_wip_limit(column)
    priority = data.get("priority") or "medium"
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority}",
                              details={"priority": f"must be one of {sorted(TASK_PRIORITIES)}"})

    last = (
        db.session.query(func.max(Task.position))
        .filter(Task.column_id == column.id, Task.archived_at.is_(None))
        .scalar()
    )
    task = Task(
        board_id=board.id,
        column_id=column.id,
        title=title,
        description=data.get("description") or "",
        priority=priority,
        position=0 if last is None else last + 1,
        assignee_id=parse_int(data.get("assignee_id"), "assignee_id"),
        assignee_type=data.get("assignee_type") or ("admin" if data.get("assignee_id") else None),
        due_date=parse_date(data.get("due_date"), "due_date"),
        estimated_hours=parse_number(data.get("estimated_hours"), "estimated_hours",
                                     minimum=0, maximum=MAX_ESTIMATED_HOURS),
        tags=list(data.get("tags") or []),
        watchers=[],
        attachments=[],
        created_by=actor.id,
        created_by_type=actor.type,
    )
    _apply_column_status(task, column)
    _add_watcher(task, actor.id, actor.type)
    if task.assignee_id is not None:
        _add_watcher(task, task.assignee_id, task.assignee_type)
    db.session.add(task)
    db.session.flush()

    _log_activity(task, actor, "created", f"Task created in {column.name}",
                  {"column_id": column.id, "position": task.position})
    progress.recompute_board_progress(board)
    db.session.commit()

    logger.info("Task %s created on board %s column %s pos %s",
                task.id, board.id, column.id, task.position)
    _publish(board.id, "task_created", {"task": task.to_dict()})
    return task


def move_task(task_id: int, actor: Actor, *, column_id, position) -> Task:
    """
    Move a task to (column_id, position) keeping both columns dense.

    Position bounds: 0..n-1 within the same column, 0..n when entering a
    column that holds n tasks.
    """
    board, task = _lock_task(task_id, actor, "can_edit_tasks")
    target_id = parse_int(column_id, "column_id")
    if target_id is None:
        raise MissingFieldError("column_id")
    new_column = get_column(board, target_id)
    new_position = parse_int(position, "position", minimum=0)
    if new_position is None:
        raise MissingFieldError("position")

    old_column = task.column
    old_position = task.position
    same_column = new_column.id == old_column.id

    count = _active_tasks(new_column.id).count()
    upper = count - 1 if same_column else count
    if new_position > upper:
        raise ValidationError(
            f"position must be between 0 and {upper}",
            details={"position": "out of range"},
        )

    if same_column and new_position == old_position:
        # Nothing to write; end the transaction to release the board lock
        db.session.commit()
        return task

    if same_column:
        if new_position > old_position:
            _shift(old_column.id, Task.position > old_position, Task.position <= new_position,
                   delta=-1, exclude_id=task.id)
        else:
            _shift(old_column.id, Task.position >= new_position, Task.position < old_position,
                   delta=1, exclude_id=task.id)
    else:
        _check_wip_limit(new_column)
        _shift(old_column.id, Task.position > old_position, delta=-1, exclude_id=task.id)
        _shift(new_column.id, Task.position >= new_position, delta=1)

    task.column_id = new_column.id
    task.column = new_column
    task.position = new_position
    previous_status = task.status
    _apply_column_status(task, new_column)
    _log_activity(task, actor, "moved", f"Moved to column: {new_column.name}", {
        "old_column_id": old_column.id,
        "new_column_id": new_column.id,
        "old_position": old_position,
        "new_position": new_position,
        "old_status": previous_status,
        "new_status": task.status,
    })
    sprint = progress.recompute_board_progress(board)
    db.session.commit()

    logger.info("Task %s moved %s:%s → %s:%s on board %s",
                task.id, old_column.id, old_position, new_column.id, new_position, board.id)
    _publish(board.id, "task_moved", {
        "task": task.to_dict(),
        "from": {"column_id": old_column.id, "position": old_position},
        "to": {"column_id": new_column.id, "position": new_position},
        "progress": sprint.progress_percentage if sprint is not None else None,
    })
    if new_column.role == "review" and old_column.role != "review":
        get_notifier().notify_many(
            [w for w in task.watchers or [] if w != actor.as_recipient()],
            "task_ready_for_review",
            {"task_id": task.id, "title": task.title, "board_id": board.id},
        )
    return task


def archive_task(task_id: int, actor: Actor) -> Task:
    """Archive a task and close the gap among its remaining siblings."""
    board, task = _lock_task(task_id, actor, "can_delete_tasks")
    old_position = task.position
    task.archive()
    db.session.flush()
    _shift(task.column_id, Task.position > old_position, delta=-1, exclude_id=task.id)
    _log_activity(task, actor, "archived", "Task archived",
                  {"column_id": task.column_id, "position": old_position})
    progress.recompute_board_progress(board)
    db.session.commit()

    logger.info("Task %s archived on board %s", task.id, board.id)
    _publish(board.id, "task_archived", {"task_id": task.id, "column_id": task.column_id})
    return task


# ═════════════════════════════════════════════════════════════════════════════
# Details, comments, watchers, attachments
# ═════════════════════════════════════════════════════════════════════════════

def update_task(task_id: int, actor: Actor, data: dict) -> Task:
    """Change descriptive fields. Status, column and position change only via move_task."""
    blocked = [f for f in _MOVE_ONLY_FIELDS if f in data]
    if blocked:
        raise ValidationError(
            "status, column_id and position change only by moving the task",
            details={f: "use the move endpoint" for f in blocked},
        )
    board, task = _lock_task(task_id, actor, "can_edit_tasks")

    changes = {}
    for field in _EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise MissingFieldError("title")
        elif field == "priority" and value not in TASK_PRIORITIES:
            raise ValidationError(f"Invalid priority: {value}",
                                  details={"priority": f"must be one of {sorted(TASK_PRIORITIES)}"})
        elif field == "assignee_id":
            value = parse_int(value, "assignee_id")
        elif field == "due_date":
            value = parse_date(value, "due_date")
        elif field == "tags":
            value = list(value or [])
        elif field == "estimated_hours":
            value = parse_number(value, "estimated_hours", minimum=0, maximum=MAX_ESTIMATED_HOURS)
        old = getattr(task, field)
        if old != value:
            changes[field] = {
                "from": old.isoformat() if hasattr(old, "isoformat") else old,
                "to": value.isoformat() if hasattr(value, "isoformat") else value,
            }
            setattr(task, field, value)

    if not changes:
        # Release the board lock taken by _lock_task
        db.session.commit()
        return task
    if "assignee_id" in changes and task.assignee_id is not None:
        task.assignee_type = task.assignee_type or "admin"
        _add_watcher(task, task.assignee_id, task.assignee_type)
    _log_activity(task, actor, "updated", f"Updated {', '.join(sorted(changes))}", changes)
    db.session.commit()

    _publish(board.id, "task_updated", {"task": task.to_dict(), "changes": sorted(changes)})
    return task


def add_comment(task_id: int, actor: Actor, *, content: str, is_internal: bool = False,
                mentions=None) -> TaskComment:
    """Post a comment; mentioned users become watchers and are notified."""
    task = get_task_for_actor(task_id, actor)
    if not (content or "").strip():
        raise MissingFieldError("content")
    if len(content.strip()) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment exceeds {MAX_COMMENT_LENGTH} characters",
                              details={"content": "too long"})
    if is_internal and not actor.is_admin:
        raise AccessDenied("Only admins post internal comments")
    mentions = mentions or []
    if not isinstance(mentions, list) or any(
        not isinstance(m, dict) or "id" not in m or m.get("type") not in ("admin", "startup")
        for m in mentions
    ):
        raise ValidationError("mentions must be a list of {id, type}", details={"mentions": "invalid"})

    comment = TaskComment(
        task_id=task.id,
        author_id=actor.id,
        author_type=actor.type,
        content=content.strip(),
        is_internal=bool(is_internal),
        mentions=mentions,
    )
    db.session.add(comment)
    for mention in mentions:
        _add_watcher(task, mention["id"], mention["type"])
    _log_activity(task, actor, "commented", "Comment added", {"internal": bool(is_internal)})
    db.session.commit()

    _publish(task.board_id, "task_updated", {"task_id": task.id, "comment": comment.to_dict()})
    recipients = [m for m in mentions if not (is_internal and m["type"] == "startup")]
    get_notifier().notify_many(recipients, "task_comment_mention", {
        "task_id": task.id, "title": task.title, "comment_id": comment.id,
    })
    return comment


def list_comments(task_id: int, actor: Actor) -> list[TaskComment]:
    task = get_task_for_actor(task_id, actor)
    q = task.comments
    if not actor.is_admin:
        q = q.filter(TaskComment.is_internal.is_(False))
    return q.all()


def watch_task(task_id: int, actor: Actor, *, user_id=None, user_type=None) -> Task:
    """Add a watcher (the actor itself when no user is given)."""
    task = get_task_for_actor(task_id, actor)
    user_id = parse_int(user_id, "user_id") if user_id is not None else actor.id
    user_type = user_type or actor.type
    if user_type not in ("admin", "startup"):
        raise ValidationError("user_type must be admin or startup", details={"user_type": "invalid"})
    if _add_watcher(task, user_id, user_type):
        _log_activity(task, actor, "watcher_added", f"Watcher {user_type}:{user_id} added")
        db.session.commit()
    return task


def unwatch_task(task_id: int, actor: Actor, *, user_id=None, user_type=None) -> Task:
    task = get_task_for_actor(task_id, actor)
    user_id = parse_int(user_id, "user_id") if user_id is not None else actor.id
    user_type = user_type or actor.type
    if task.is_watched_by(user_id, user_type):
        task.watchers = [
            w for w in task.watchers
            if not (w.get("id") == user_id and w.get("type") == user_type)
        ]
        _log_activity(task, actor, "watcher_removed", f"Watcher {user_type}:{user_id} removed")
        db.session.commit()
    return task


def add_attachment(task_id: int, actor: Actor, *, name: str, url: str) -> Task:
    """Record metadata for a file already stored in external blob storage."""
    task = get_task_for_actor(task_id, actor)
    authorize(task.board, actor, "can_edit_tasks")
    if not (name or "").strip():
        raise MissingFieldError("name")
    if not (url or "").strip():
        raise MissingFieldError("url")
    attachment = {
        "name": name.strip(),
        "url": url.strip(),
        "uploaded_by": actor.id,
        "uploaded_by_type": actor.type,
        "uploaded_at": _utcnow().isoformat(),
    }
    task.attachments = [*(task.attachments or []), attachment]
    _log_activity(task, actor, "attachment_added", f"Attachment {attachment['name']} added")
    db.session.commit()
    return task


# ═════════════════════════════════════════════════════════════════════════════
# Comment edit / delete
# ═════════════════════════════════════════════════════════════════════════════

def _get_comment(task: Task, comment_id: int, actor: Actor) -> TaskComment:
    comment = db.session.get(TaskComment, comment_id)
    if comment is None or comment.task_id != task.id:
        raise NotFoundError(resource="Comment", resource_id=comment_id)
    # Startups never learn that an internal comment exists
    if comment.is_internal and not actor.is_admin:
        raise NotFoundError(resource="Comment", resource_id=comment_id)
    return comment


def _is_author(comment: TaskComment, actor: Actor) -> bool:
    return comment.author_id == actor.id and comment.author_type == actor.type


def update_comment(task_id: int, comment_id: int, actor: Actor, *, content: str) -> TaskComment:
    """Edit a comment's text. Only its author may edit it."""
    task = get_task_for_actor(task_id, actor)
    comment = _get_comment(task, comment_id, actor)
    if not _is_author(comment, actor):
        raise AccessDenied("Only the author can edit this comment")
    if not (content or "").strip():
        raise MissingFieldError("content")
    content = content.strip()
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment exceeds {MAX_COMMENT_LENGTH} characters",
                              details={"content": "too long"})
    if content == comment.content:
        return comment

    comment.content = content
    comment.edited_at = _utcnow()
    comment.edited_by = actor.id
    _log_activity(task, actor, "comment_edited", "Comment edited", {"comment_id": comment.id})
    db.session.commit()

    _publish(task.board_id, "task_updated", {"task_id": task.id, "comment": comment.to_dict()})
    return comment


def delete_comment(task_id: int, comment_id: int, actor: Actor) -> None:
    """Remove a comment. Authors delete their own; admins delete any."""
    task = get_task_for_actor(task_id, actor)
    comment = _get_comment(task, comment_id, actor)
    if not (actor.is_admin or _is_author(comment, actor)):
        raise AccessDenied("Only the author or an admin can delete this comment")

    db.session.delete(comment)
    _log_activity(task, actor, "comment_deleted", "Comment deleted", {"comment_id": comment_id})
    db.session.commit()
    logger.info("Comment %s on task %s deleted by %s:%s", comment_id, task.id, actor.type, actor.id)

    _publish(task.board_id, "task_updated", {"task_id": task.id, "deleted_comment_id": comment_id})


# ═════════════════════════════════════════════════════════════════════════════
# Subtasks
# ═════════════════════════════════════════════════════════════════════════════

def _subtask_title(value) -> str:
    title = (value or "").strip()
    if not title:
        raise MissingFieldError("title")
    low, high = SUBTASK_TITLE_LENGTH
    if not low <= len(title) <= high:
        raise ValidationError(f"title must be {low}-{high} characters", details={"title": "length"})
    return title


def _apply_subtask_status(subtask: TaskSubtask, status: str) -> None:
    if status not in SUBTASK_STATUSES:
        raise ValidationError(
            f"Invalid subtask status: {status}",
            details={"status": f"must be one of {sorted(SUBTASK_STATUSES)}"},
        )
    subtask.status = status
    if status == "completed":
        subtask.completed_at = subtask.completed_at or _utcnow()
    else:
        subtask.completed_at = None


def _get_subtask(task: Task, subtask_id: int) -> TaskSubtask:
    subtask = db.session.get(TaskSubtask, subtask_id)
    if subtask is None or subtask.task_id != task.id:
        raise NotFoundError(resource="Subtask", resource_id=subtask_id)
    return subtask


def add_subtask(task_id: int, actor: Actor, data: dict) -> TaskSubtask:
    task = get_task_for_actor(task_id, actor)
    authorize(task.board, actor, "can_edit_tasks")

    subtask = TaskSubtask(
        task_id=task.id,
        title=_subtask_title(data.get("title")),
        description=data.get("description") or "",
        assignee_id=parse_int(data.get("assignee_id"), "assignee_id"),
        due_date=parse_date(data.get("due_date"), "due_date"),
        created_by=actor.id,
        created_by_type=actor.type,
    )
    _apply_subtask_status(subtask, data.get("status") or "pending")
    db.session.add(subtask)
    db.session.flush()
    _log_activity(task, actor, "subtask_added", f"Subtask '{subtask.title}' added",
                  {"subtask_id": subtask.id})
    db.session.commit()

    _publish(task.board_id, "task_updated", {"task_id": task.id, "subtask": subtask.to_dict()})
    return subtask


def update_subtask(task_id: int, subtask_id: int, actor: Actor, data: dict) -> TaskSubtask:
    task = get_task_for_actor(task_id, actor)
    authorize(task.board, actor, "can_edit_tasks")
    subtask = _get_subtask(task, subtask_id)

    changes = {}
    if "title" in data:
        title = _subtask_title(data["title"])
        if title != subtask.title:
            changes["title"] = {"from": subtask.title, "to": title}
            subtask.title = title
    if "description" in data and (data["description"] or "") != subtask.description:
        changes["description"] = {"from": subtask.description, "to": data["description"] or ""}
        subtask.description = data["description"] or ""
    if "assignee_id" in data:
        assignee_id = parse_int(data["assignee_id"], "assignee_id")
        if assignee_id != subtask.assignee_id:
            changes["assignee_id"] = {"from": subtask.assignee_id, "to": assignee_id}
            subtask.assignee_id = assignee_id
    if "due_date" in data:
        due_date = parse_date(data["due_date"], "due_date")
        if due_date != subtask.due_date:
            changes["due_date"] = {
                "from": subtask.due_date.isoformat() if subtask.due_date else None,
                "to": due_date.isoformat() if due_date else None,
            }
            subtask.due_date = due_date
    if "status" in data and data["status"] != subtask.status:
        previous = subtask.status
        _apply_subtask_status(subtask, data["status"])
        changes["status"] = {"from": previous, "to": subtask.status}

    if not changes:
        return subtask

    _log_activity(task, actor, "subtask_updated", f"Subtask '{subtask.title}' updated",
                  {"subtask_id": subtask.id, "changes": changes})
    db.session.commit()

    _publish(task.board_id, "task_updated", {"task_id": task.id, "subtask": subtask.to_dict()})
    return subtask


def delete_subtask(task_id: int, subtask_id: int, actor: Actor) -> None:
    task = get_task_for_actor(task_id, actor)
    authorize(task.board, actor, "can_edit_tasks")
    subtask = _get_subtask(task, subtask_id)
    title = subtask.title

    db.session.delete(subtask)
    _log_activity(task, actor, "subtask_deleted", f"Subtask '{title}' deleted",
                  {"subtask_id": subtask_id})
    db.session.commit()

    _publish(task.board_id, "task_updated", {"task_id": task.id, "deleted_subtask_id": subtask_id})


# ═════════════════════════════════════════════════════════════════════════════
# Time logs
# ═════════════════════════════════════════════════════════════════════════════

def _refresh_total_hours(task: Task) -> float:
    total = (
        db.session.query(func.coalesce(func.sum(TaskTimeLog.hours), 0.0))
        .filter(TaskTimeLog.task_id == task.id)
        .scalar()
    )
    task.total_hours = round(float(total), 2)
    return task.total_hours


def log_time(task_id: int, actor: Actor, *, hours, description: str, log_date=None) -> TaskTimeLog:
    """
    Book hours against a task (admins only).

    The task's total_hours is re-summed from its logs in the same transaction,
    taken under the board lock so concurrent bookings cannot lose an update.
    """
    if not actor.is_admin:
        raise AccessDenied("Only admins log time")
    if hours is None or hours == "":
        raise MissingFieldError("hours")
    hours = parse_number(hours, "hours", minimum=MIN_LOGGED_HOURS, maximum=MAX_LOGGED_HOURS)
    description = (description or "").strip()
    if len(description) < 3 or len(description) > 500:
        raise ValidationError("description must be 3-500 characters", details={"description": "length"})
    log_date = parse_date(log_date, "log_date") or date.today()

    board, task = _lock_task(task_id, actor, "can_edit_tasks")
    entry = TaskTimeLog(
        task_id=task.id,
        hours=hours,
        description=description,
        log_date=log_date,
        logged_by=actor.id,
        logged_by_type=actor.type,
    )
    db.session.add(entry)
    db.session.flush()
    total = _refresh_total_hours(task)
    _log_activity(task, actor, "time_logged", f"{hours:g}h logged",
                  {"time_log_id": entry.id, "hours": hours, "total_hours": total})
    db.session.commit()
    logger.info("Logged %sh on task %s (total %sh)", hours, task.id, total)

    _publish(board.id, "task_updated", {"task_id": task.id, "total_hours": total})
    return entry


def list_time_logs(task_id: int, actor: Actor) -> list[TaskTimeLog]:
    task = get_task_for_actor(task_id, actor)
    return task.time_logs.all()


def delete_time_log(task_id: int, log_id: int, actor: Actor) -> Task:
    if not actor.is_admin:
        raise AccessDenied("Only admins delete time logs")
    board, task = _lock_task(task_id, actor, "can_edit_tasks")
    entry = db.session.get(TaskTimeLog, log_id)
    if entry is None or entry.task_id != task.id:
        raise NotFoundError(resource="TimeLog", resource_id=log_id)

    hours = entry.hours
    db.session.delete(entry)
    db.session.flush()
    total = _refresh_total_hours(task)
    _log_activity(task, actor, "time_log_deleted", f"{hours:g}h log removed",
                  {"time_log_id": log_id, "hours": hours, "total_hours": total})
    db.session.commit()

    _publish(board.id, "task_updated", {"task_id": task.id, "total_hours": total})
    return task
