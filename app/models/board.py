"""
Startup Backoffice Platform
Kanban board domain models.

Models:
    - Board: kanban board, optionally bound 1:1 to a sprint
    - BoardColumn: ordered bucket with an explicit workflow role
    - BoardMember: (user, role, permission set) entry on a board
    - Task: unit of work holding a dense position inside its column
    - TaskComment: discussion entry on a task (editable by its author)
    - TaskSubtask: checklist item under a task
    - TaskTimeLog: hours booked against a task; Task.total_hours is their sum
    - TaskActivity: append-only task activity log
"""

from datetime import datetime, timezone

from app.models import db
from app.models.archive import ArchiveMixin

# ── Shared constants ─────────────────────────────────────────────────────

COLUMN_ROLES = {"todo", "doing", "review", "done"}

# Task status is derived from the role of the column it sits in
ROLE_TASK_STATUS = {
    "todo": "todo",
    "doing": "in_progress",
    "review": "in_review",
    "done": "done",
}
DONE_TASK_STATUS = "done"

DEFAULT_COLUMNS = (
    ("To Do", "todo"),
    ("In Progress", "doing"),
    ("Review", "review"),
    ("Done", "done"),
)

TASK_PRIORITIES = {"low", "medium", "high", "urgent"}

SUBTASK_STATUSES = {"pending", "in_progress", "completed"}

MEMBER_ROLES = {"owner", "admin", "member", "viewer"}

MEMBER_PERMISSIONS = (
    "can_create_tasks",
    "can_edit_tasks",
    "can_delete_tasks",
    "can_manage_columns",
    "can_invite_members",
    "can_view_analytics",
)

DEFAULT_PERMISSIONS = {
    "owner": dict.fromkeys(MEMBER_PERMISSIONS, True),
    "admin": dict.fromkeys(MEMBER_PERMISSIONS, True),
    "member": {
        "can_create_tasks": True,
        "can_edit_tasks": True,
        "can_delete_tasks": False,
        "can_manage_columns": False,
        "can_invite_members": False,
        "can_view_analytics": True,
    },
    "viewer": {
        "can_create_tasks": False,
        "can_edit_tasks": False,
        "can_delete_tasks": False,
        "can_manage_columns": False,
        "can_invite_members": False,
        "can_view_analytics": True,
    },
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Board(ArchiveMixin, db.Model):
    """
    Kanban board.

    Column positions form a dense zero-based ordering among columns that are
    not archived at insert time; archived columns keep their slot.
    """

    __tablename__ = "boards"

    id = db.Column(db.Integer, primary_key=True)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="SET NULL"),
        nullable=True, unique=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    owner_id = db.Column(db.Integer, nullable=True)
    owner_type = db.Column(db.String(10), nullable=True, comment="admin | startup")
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    sprint = db.relationship("Sprint", backref=db.backref("board", uselist=False))
    columns = db.relationship(
        "BoardColumn", backref="board", lazy="dynamic",
        cascade="all, delete-orphan", order_by="BoardColumn.position",
    )
    members = db.relationship(
        "BoardMember", backref="board", lazy="dynamic", cascade="all, delete-orphan",
    )
    tasks = db.relationship(
        "Task", backref="board", lazy="dynamic", cascade="all, delete-orphan",
    )

    def active_columns(self):
        return self.columns.filter(BoardColumn.archived_at.is_(None)).all()

    def to_dict(self, include_columns=False):
        result = {
            "id": self.id,
            "sprint_id": self.sprint_id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "owner_type": self.owner_type,
            "created_by": self.created_by,
            "is_archived": self.is_archived,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_columns:
            result["columns"] = [c.to_dict() for c in self.active_columns()]
            result["members"] = [m.to_dict() for m in self.members]
        return result

    def __repr__(self):
        return f"<Board {self.id}: {self.name}>"


class BoardColumn(ArchiveMixin, db.Model):
    """Ordered bucket on a board. `role` drives task status and progress."""

    __tablename__ = "board_columns"

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(
        db.Integer, db.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(10), nullable=False, default="todo", comment="todo | doing | review | done")
    position = db.Column(db.Integer, nullable=False, default=0)
    wip_limit = db.Column(db.Integer, nullable=False, default=0, comment="0 = unlimited")
    color = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def is_completed(self):
        return self.role == "done"

    @property
    def task_status(self):
        return ROLE_TASK_STATUS[self.role]

    def to_dict(self):
        return {
            "id": self.id,
            "board_id": self.board_id,
            "name": self.name,
            "role": self.role,
            "position": self.position,
            "is_completed": self.is_completed,
            "wip_limit": self.wip_limit,
            "color": self.color,
            "is_archived": self.is_archived,
        }

    def __repr__(self):
        return f"<BoardColumn {self.id}: {self.name} ({self.role}) @{self.position}>"


class BoardMember(db.Model):
    __tablename__ = "board_members"
    __table_args__ = (
        db.UniqueConstraint("board_id", "user_id", "user_type", name="uq_board_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(
        db.Integer, db.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, nullable=False)
    user_type = db.Column(db.String(10), nullable=False, comment="admin | startup")
    role = db.Column(db.String(10), nullable=False, default="member")
    permissions = db.Column(db.JSON, default=dict)
    added_by = db.Column(db.Integer, nullable=True)
    added_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def has_permission(self, permission):
        if self.role in ("owner", "admin"):
            return True
        return bool((self.permissions or {}).get(permission))

    def to_dict(self):
        return {
            "id": self.id,
            "board_id": self.board_id,
            "user_id": self.user_id,
            "user_type": self.user_type,
            "role": self.role,
            "permissions": self.permissions or {},
            "added_by": self.added_by,
            "added_at": _iso(self.added_at),
        }

    def __repr__(self):
        return f"<BoardMember {self.user_type}:{self.user_id} on board {self.board_id} ({self.role})>"


class Task(ArchiveMixin, db.Model):
    """
    Kanban task.

    `position` is dense and zero-based within its column. `status` mirrors the
    role of the column and is never set independently of a create or move.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_column_position", "column_id", "position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(
        db.Integer, db.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    column_id = db.Column(
        db.Integer, db.ForeignKey("board_columns.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="todo")
    priority = db.Column(db.String(10), nullable=False, default="medium", comment="low | medium | high | urgent")
    position = db.Column(db.Integer, nullable=False, default=0)
    assignee_id = db.Column(db.Integer, nullable=True)
    assignee_type = db.Column(db.String(10), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    tags = db.Column(db.JSON, default=list)
    watchers = db.Column(db.JSON, default=list, comment="[{id, type}]")
    attachments = db.Column(db.JSON, default=list, comment="[{name, url}] in external storage")
    created_by = db.Column(db.Integer, nullable=True)
    created_by_type = db.Column(db.String(10), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    total_hours = db.Column(db.Float, nullable=False, default=0.0, comment="Sum of time logs")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    column = db.relationship("BoardColumn")
    subtasks = db.relationship(
        "TaskSubtask", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskSubtask.id",
    )
    time_logs = db.relationship(
        "TaskTimeLog", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskTimeLog.id",
    )
    comments = db.relationship(
        "TaskComment", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskComment.id",
    )
    activity = db.relationship(
        "TaskActivity", backref="task", lazy="dynamic",
        cascade="all, delete-orphan", order_by="TaskActivity.id",
    )

    def is_watched_by(self, user_id, user_type):
        return any(
            w.get("id") == user_id and w.get("type") == user_type
            for w in self.watchers or []
        )

    def to_dict(self, include_details=False):
        result = {
            "id": self.id,
            "board_id": self.board_id,
            "column_id": self.column_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "position": self.position,
            "assignee_id": self.assignee_id,
            "assignee_type": self.assignee_type,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "tags": self.tags or [],
            "watchers": self.watchers or [],
            "attachments": self.attachments or [],
            "created_by": self.created_by,
            "completed_at": _iso(self.completed_at),
            "estimated_hours": self.estimated_hours,
            "total_hours": self.total_hours or 0.0,
            "is_archived": self.is_archived,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_details:
            result["comments"] = [c.to_dict() for c in self.comments]
            result["subtasks"] = [s.to_dict() for s in self.subtasks]
            result["time_logs"] = [t.to_dict() for t in self.time_logs]
            result["activity"] = [a.to_dict() for a in self.activity]
        return result

    def __repr__(self):
        return f"<Task {self.id}: {self.title} col={self.column_id} pos={self.position}>"


class TaskComment(db.Model):
    __tablename__ = "task_comments"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_id = db.Column(db.Integer, nullable=False)
    author_type = db.Column(db.String(10), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False, comment="Hidden from startups")
    mentions = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    edited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    edited_by = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "author_id": self.author_id,
            "author_type": self.author_type,
            "content": self.content,
            "is_internal": self.is_internal,
            "mentions": self.mentions or [],
            "created_at": _iso(self.created_at),
            "edited_at": _iso(self.edited_at),
            "edited_by": self.edited_by,
        }


class TaskSubtask(db.Model):
    __tablename__ = "task_subtasks"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in_progress | completed")
    assignee_id = db.Column(db.Integer, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_by_type = db.Column(db.String(10), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "assignee_id": self.assignee_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": _iso(self.completed_at),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }


class TaskTimeLog(db.Model):
    """Hours booked against a task on a given day."""

    __tablename__ = "task_time_logs"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    hours = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    log_date = db.Column(db.Date, nullable=False)
    logged_by = db.Column(db.Integer, nullable=False)
    logged_by_type = db.Column(db.String(10), nullable=False)
    logged_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "hours": self.hours,
            "description": self.description,
            "log_date": self.log_date.isoformat() if self.log_date else None,
            "logged_by": self.logged_by,
            "logged_by_type": self.logged_by_type,
            "logged_at": _iso(self.logged_at),
        }


class TaskActivity(db.Model):
    """Append-only task activity entry (created, moved, archived, ...)."""

    __tablename__ = "task_activity"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    action = db.Column(db.String(30), nullable=False)
    description = db.Column(db.String(500), default="")
    actor_id = db.Column(db.Integer, nullable=True)
    actor_type = db.Column(db.String(10), nullable=True)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "action": self.action,
            "description": self.description,
            "actor_id": self.actor_id,
            "actor_type": self.actor_type,
            "details": self.details or {},
            "created_at": _iso(self.created_at),
        }
