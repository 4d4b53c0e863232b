"""
Startup Backoffice Platform
Board Service — boards, columns, members and the sprint payment gate.

Column positions are a dense zero-based ordering over every column of a
board, archived ones included: inserting at `p` shifts every column with
`position >= p` up by one, archiving keeps the slot. All structural changes
lock the board row first so they serialise with task moves.

Usage:
    from app.services import board_service

    board = board_service.get_or_create_board_for_sprint(sprint_id, actor)
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.auth import Actor
from app.core.exceptions import (
    AccessDenied,
    AlreadyExistsError,
    MissingFieldError,
    NotFoundError,
    PaymentRequired,
    PreconditionFailed,
    ValidationError,
)
from app.models import db
from app.models.board import (
    COLUMN_ROLES,
    DEFAULT_COLUMNS,
    DEFAULT_PERMISSIONS,
    MEMBER_PERMISSIONS,
    MEMBER_ROLES,
    ROLE_TASK_STATUS,
    Board,
    BoardColumn,
    BoardMember,
    Task,
)
from app.services import progress
from app.services.realtime import board_topic, get_realtime
from app.services.sprint_lifecycle import get_for_actor as get_sprint_for_actor
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

# Only used when a column is created without an explicit role
_ROLE_BY_NAME = {
    "todo": "todo", "to do": "todo", "backlog": "todo",
    "doing": "doing", "in progress": "doing", "in-progress": "doing",
    "review": "review", "in review": "review", "testing": "review",
    "done": "done", "completed": "done", "finished": "done",
}


def infer_column_role(name: str) -> str:
    return _ROLE_BY_NAME.get((name or "").strip().lower(), "todo")


# ═════════════════════════════════════════════════════════════════════════════
# Lookups, locking, authorisation
# ═════════════════════════════════════════════════════════════════════════════

def get_board(board_id: int) -> Board:
    board = db.session.get(Board, board_id)
    if board is None or board.is_archived:
        raise NotFoundError(resource="Board", resource_id=board_id)
    return board


def lock_board(board_id: int) -> Board:
    """Load the board with a row lock (SELECT ... FOR UPDATE where supported).

    Every mutation of columns or task positions on a board takes this lock
    first, so concurrent moves on one board run one after another.
    """
    board = Board.query.filter_by(id=board_id).with_for_update().first()
    if board is None or board.is_archived:
        raise NotFoundError(resource="Board", resource_id=board_id)
    return board


def get_member(board: Board, actor: Actor) -> BoardMember | None:
    return board.members.filter_by(user_id=actor.id, user_type=actor.type).first()


def authorize(board: Board, actor: Actor, permission: str | None = None) -> None:
    """
    Admin actors hold every board permission. A startup must be a member of
    the board (or own its sprint) and, when given, hold `permission`.
    """
    if actor.is_admin:
        return
    member = get_member(board, actor)
    if member is None:
        if board.sprint is not None and board.sprint.startup_id == actor.id:
            perms = DEFAULT_PERMISSIONS["member"]
            if permission and not perms.get(permission):
                raise AccessDenied(f"Missing board permission: {permission}")
            return
        raise NotFoundError(resource="Board", resource_id=board.id)
    if permission and not member.has_permission(permission):
        raise AccessDenied(f"Missing board permission: {permission}")


def get_board_for_actor(board_id: int, actor: Actor) -> Board:
    board = get_board(board_id)
    authorize(board, actor)
    return board


def list_boards(actor: Actor):
    q = Board.query.filter(Board.archived_at.is_(None))
    if not actor.is_admin:
        q = q.filter(Board.members.any(
            (BoardMember.user_id == actor.id) & (BoardMember.user_type == actor.type)
        ))
    return q.order_by(Board.created_at.desc())


def get_column(board: Board, column_id: int, *, include_archived: bool = False) -> BoardColumn:
    column = board.columns.filter_by(id=column_id).first()
    if column is None or (column.is_archived and not include_archived):
        raise NotFoundError(resource="Column", resource_id=column_id)
    return column


def _publish(board: Board, event: str, payload: dict) -> None:
    get_realtime().publish(board_topic(board.id), event, payload)


# ═════════════════════════════════════════════════════════════════════════════
# Board creation
# ═════════════════════════════════════════════════════════════════════════════

def _add_default_columns(board: Board) -> None:
    for position, (name, role) in enumerate(DEFAULT_COLUMNS):
        db.session.add(BoardColumn(board_id=board.id, name=name, role=role, position=position))


def _add_member_row(board: Board, user_id: int, user_type: str, role: str,
                    permissions: dict | None = None, added_by: int | None = None) -> BoardMember:
    member = BoardMember(
        board_id=board.id,
        user_id=user_id,
        user_type=user_type,
        role=role,
        permissions={**DEFAULT_PERMISSIONS[role], **_clean_permissions(permissions)},
        added_by=added_by,
    )
    db.session.add(member)
    return member


def create_board(actor: Actor, *, name: str, description: str = "") -> Board:
    """Standalone board (not linked to a sprint) with the default columns."""
    if not actor.is_admin:
        raise AccessDenied("Only admins create standalone boards")
    if not (name or "").strip():
        raise MissingFieldError("name")
    board = Board(
        name=name.strip(),
        description=description or "",
        owner_id=actor.id,
        owner_type=actor.type,
        created_by=actor.id,
    )
    db.session.add(board)
    db.session.flush()
    _add_default_columns(board)
    _add_member_row(board, actor.id, actor.type, "owner", added_by=actor.id)
    db.session.commit()
    logger.info("Board %s created by admin %s", board.id, actor.id)
    return board


def get_or_create_board_for_sprint(sprint_id: int, actor: Actor) -> Board:
    """
    Return the sprint's board, creating it with the default columns on first
    request. Refused with PaymentRequired unless the selected package is paid.
    """
    sprint = get_sprint_for_actor(sprint_id, actor)
    if not sprint.is_paid:
        logger.info("Board access refused for sprint %s: payment %s",
                    sprint.id, sprint.selected_package_payment_status)
        raise PaymentRequired(sprint.id)

    if sprint.board is not None:
        if sprint.board.is_archived:
            raise NotFoundError(resource="Board", resource_id=sprint.board.id)
        return sprint.board

    board = Board(
        sprint_id=sprint.id,
        name=f"{sprint.name} Board",
        description=sprint.description or "",
        owner_id=sprint.startup_id,
        owner_type="startup",
        created_by=actor.id,
    )
    db.session.add(board)
    try:
        db.session.flush()
    except IntegrityError:
        # Another request created it first
        db.session.rollback()
        logger.info("Board for sprint %s created concurrently; reusing it", sprint_id)
        return Board.query.filter_by(sprint_id=sprint_id).one()

    _add_default_columns(board)
    if sprint.startup_id is not None:
        _add_member_row(board, sprint.startup_id, "startup", "member", added_by=actor.id)
    for admin_id in sprint.team or []:
        _add_member_row(board, admin_id, "admin", "admin", added_by=actor.id)
    db.session.flush()
    progress.recompute_board_progress(board)
    db.session.commit()
    logger.info("Board %s created for sprint %s", board.id, sprint.id)
    return board


def archive_board(board_id: int, actor: Actor) -> Board:
    if not actor.is_admin:
        raise AccessDenied("Only admins archive boards")
    board = lock_board(board_id)
    board.archive()
    db.session.commit()
    logger.info("Board %s archived by admin %s", board.id, actor.id)
    return board


# ═════════════════════════════════════════════════════════════════════════════
# Columns
# ═════════════════════════════════════════════════════════════════════════════

def _validate_role(role: str) -> str:
    if role not in COLUMN_ROLES:
        raise ValidationError(f"Invalid column role: {role}",
                              details={"role": f"must be one of {sorted(COLUMN_ROLES)}"})
    return role


def add_column(board_id: int, actor: Actor, *, name: str, role: str | None = None,
               position=None, wip_limit=0, color: str | None = None) -> BoardColumn:
    """Insert a column at `position` (default: after the last column)."""
    board = lock_board(board_id)
    authorize(board, actor, "can_manage_columns")
    if not (name or "").strip():
        raise MissingFieldError("name")
    role = _validate_role(role) if role else infer_column_role(name)

    total = board.columns.count()
    p = parse_int(position, "position", minimum=0, maximum=total)
    if p is None:
        p = total

    (
        BoardColumn.query
        .filter(BoardColumn.board_id == board.id, BoardColumn.position >= p)
        .update({BoardColumn.position: BoardColumn.position + 1}, synchronize_session="fetch")
    )
    column = BoardColumn(
        board_id=board.id,
        name=name.strip(),
        role=role,
        position=p,
        wip_limit=parse_int(wip_limit, "wip_limit", minimum=0) or 0,
        color=color,
    )
    db.session.add(column)
    db.session.commit()

    logger.info("Board %s column %s '%s' (%s) inserted at %s", board.id, column.id, column.name, role, p)
    _publish(board, "column_changed", {"action": "added", "column": column.to_dict()})
    return column


def update_column(board_id: int, column_id: int, actor: Actor, data: dict) -> BoardColumn:
    """Rename, recolour, change WIP limit or role of a column.

    A role change re-derives the status of every task in the column.
    """
    board = lock_board(board_id)
    authorize(board, actor, "can_manage_columns")
    column = get_column(board, column_id)

    if "name" in data:
        if not (data["name"] or "").strip():
            raise MissingFieldError("name")
        column.name = data["name"].strip()
    if "wip_limit" in data:
        column.wip_limit = parse_int(data["wip_limit"], "wip_limit", minimum=0) or 0
    if "color" in data:
        column.color = data["color"]
    if "role" in data and data["role"] != column.role:
        column.role = _validate_role(data["role"])
        # Tasks entering a done column keep an earlier completion stamp
        completed_at = (
            func.coalesce(Task.completed_at, datetime.now(timezone.utc))
            if column.is_completed else None
        )
        Task.query.filter(Task.column_id == column.id).update(
            {Task.status: ROLE_TASK_STATUS[column.role], Task.completed_at: completed_at},
            synchronize_session="fetch",
        )
        progress.recompute_board_progress(board)
    db.session.commit()

    _publish(board, "column_changed", {"action": "updated", "column": column.to_dict()})
    return column


def archive_column(board_id: int, column_id: int, actor: Actor) -> BoardColumn:
    """Archive a column. Its slot is not reclaimed and its tasks drop out of progress."""
    board = lock_board(board_id)
    authorize(board, actor, "can_manage_columns")
    column = get_column(board, column_id)
    remaining = [c for c in board.active_columns() if c.id != column.id]
    if not remaining:
        raise PreconditionFailed("A board must keep at least one active column")
    column.archive()
    db.session.flush()
    progress.recompute_board_progress(board)
    db.session.commit()

    logger.info("Board %s column %s archived", board.id, column.id)
    _publish(board, "column_changed", {"action": "archived", "column": column.to_dict()})
    return column


# ═════════════════════════════════════════════════════════════════════════════
# Members
# ═════════════════════════════════════════════════════════════════════════════

def _clean_permissions(permissions: dict | None) -> dict:
    if not permissions:
        return {}
    if not isinstance(permissions, dict):
        raise ValidationError("permissions must be an object", details={"permissions": "invalid"})
    unknown = set(permissions) - set(MEMBER_PERMISSIONS)
    if unknown:
        raise ValidationError(f"Unknown permissions: {sorted(unknown)}",
                              details={"permissions": "unknown keys"})
    return {k: bool(v) for k, v in permissions.items()}


def add_member(board_id: int, actor: Actor, *, user_id, user_type: str,
               role: str = "member", permissions: dict | None = None) -> BoardMember:
    board = lock_board(board_id)
    authorize(board, actor, "can_invite_members")
    user_id = parse_int(user_id, "user_id", minimum=1)
    if user_id is None:
        raise MissingFieldError("user_id")
    if user_type not in ("admin", "startup"):
        raise ValidationError("user_type must be admin or startup", details={"user_type": "invalid"})
    if role not in MEMBER_ROLES:
        raise ValidationError(f"Invalid member role: {role}",
                              details={"role": f"must be one of {sorted(MEMBER_ROLES)}"})
    if board.members.filter_by(user_id=user_id, user_type=user_type).first():
        raise AlreadyExistsError("BoardMember", "user", f"{user_type}:{user_id}")

    member = _add_member_row(board, user_id, user_type, role, permissions, added_by=actor.id)
    db.session.commit()
    logger.info("Board %s member %s:%s added as %s", board.id, user_type, user_id, role)
    return member


def _get_member_row(board: Board, member_id: int) -> BoardMember:
    member = board.members.filter_by(id=member_id).first()
    if member is None:
        raise NotFoundError(resource="BoardMember", resource_id=member_id)
    return member


def update_member(board_id: int, member_id: int, actor: Actor, *, role: str | None = None,
                  permissions: dict | None = None) -> BoardMember:
    board = lock_board(board_id)
    authorize(board, actor, "can_invite_members")
    member = _get_member_row(board, member_id)
    if role is not None:
        if role not in MEMBER_ROLES:
            raise ValidationError(f"Invalid member role: {role}",
                                  details={"role": f"must be one of {sorted(MEMBER_ROLES)}"})
        member.role = role
        member.permissions = dict(DEFAULT_PERMISSIONS[role])
    if permissions:
        member.permissions = {**(member.permissions or {}), **_clean_permissions(permissions)}
    db.session.commit()
    return member


def remove_member(board_id: int, member_id: int, actor: Actor) -> None:
    board = lock_board(board_id)
    authorize(board, actor, "can_invite_members")
    member = _get_member_row(board, member_id)
    if member.role == "owner":
        raise PreconditionFailed("The board owner cannot be removed")
    db.session.delete(member)
    db.session.commit()
    logger.info("Board %s member %s removed", board.id, member_id)
