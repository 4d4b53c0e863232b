"""
Task ordering engine — dense zero-based positions per column.

Covers:
    - create: tail placement, status from column role
    - move: within-column reorder (up/down), cross-column, no-op, bounds
    - archive: gap closing
    - activity log is append-only
    - a random create/move/archive walk keeps every column dense
"""

import random

import pytest

from app.core.exceptions import AccessDenied, MissingFieldError, NotFoundError, PreconditionFailed, ValidationError
from app.models import db
from app.models.board import Board, BoardColumn, Task, TaskActivity
from app.services import board_service, task_ordering

BASE = "/api/v1"


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _three_column_board(admin) -> tuple[Board, BoardColumn, BoardColumn, BoardColumn]:
    """ToDo(0), Doing(1), Done(2) on a standalone board."""
    board = Board(name="Fixture board", owner_id=admin.id, owner_type="admin", created_by=admin.id)
    db.session.add(board)
    db.session.flush()
    todo = BoardColumn(board_id=board.id, name="ToDo", role="todo", position=0)
    doing = BoardColumn(board_id=board.id, name="Doing", role="doing", position=1)
    done = BoardColumn(board_id=board.id, name="Done", role="done", position=2)
    db.session.add_all([todo, doing, done])
    db.session.commit()
    return board, todo, doing, done


def _titles(column_id) -> list[str]:
    tasks = (
        Task.query
        .filter(Task.column_id == column_id, Task.archived_at.is_(None))
        .order_by(Task.position)
        .all()
    )
    return [t.title for t in tasks]


def _positions(column_id) -> list[int]:
    return sorted(
        t.position for t in
        Task.query.filter(Task.column_id == column_id, Task.archived_at.is_(None)).all()
    )


def _assert_dense(board):
    for column in board.active_columns():
        positions = _positions(column.id)
        assert positions == list(range(len(positions))), column.name


def _fill(board, column, admin, *titles):
    return [
        task_ordering.create_task(board.id, admin, {"title": title, "column_id": column.id})
        for title in titles
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def test_create_appends_to_tail(admin):
    board, todo, _, done = _three_column_board(admin)

    a, b, c = _fill(board, todo, admin, "A", "B", "C")
    assert [a.position, b.position, c.position] == [0, 1, 2]
    assert a.status == "todo"

    (d,) = _fill(board, done, admin, "D")
    assert d.position == 0
    assert d.status == "done"
    assert d.completed_at is not None


def test_create_defaults_to_first_active_column(admin):
    board, todo, _, _ = _three_column_board(admin)

    task = task_ordering.create_task(board.id, admin, {"title": "Anywhere"})
    assert task.column_id == todo.id


def test_create_requires_title(admin):
    board, todo, _, _ = _three_column_board(admin)

    with pytest.raises(MissingFieldError):
        task_ordering.create_task(board.id, admin, {"title": "  ", "column_id": todo.id})


def test_creator_watches_task(admin, realtime_events):
    board, todo, _, _ = _three_column_board(admin)

    (task,) = _fill(board, todo, admin, "Watch me")
    assert task.is_watched_by(admin.id, "admin")
    assert realtime_events.events[-1]["event"] == "task_created"
    assert realtime_events.events[-1]["topic"] == f"board:{board.id}"


def test_wip_limit_blocks_create(admin):
    board, todo, _, _ = _three_column_board(admin)
    todo.wip_limit = 2
    db.session.commit()

    _fill(board, todo, admin, "A", "B")
    with pytest.raises(PreconditionFailed):
        _fill(board, todo, admin, "C")


# ═════════════════════════════════════════════════════════════════════════════
# Move
# ═════════════════════════════════════════════════════════════════════════════


def test_move_last_todo_to_top_of_done(admin):
    board, todo, _, done = _three_column_board(admin)
    _, _, c = _fill(board, todo, admin, "A", "B", "C")

    moved = task_ordering.move_task(c.id, admin, column_id=done.id, position=0)

    assert _titles(todo.id) == ["A", "B"]
    assert _positions(todo.id) == [0, 1]
    assert _titles(done.id) == ["C"]
    assert moved.position == 0
    assert moved.status == "done"


def test_move_down_within_column(admin):
    board, todo, _, _ = _three_column_board(admin)
    a, _, _, _ = _fill(board, todo, admin, "A", "B", "C", "D")

    task_ordering.move_task(a.id, admin, column_id=todo.id, position=2)
    assert _titles(todo.id) == ["B", "C", "A", "D"]
    _assert_dense(board)


def test_move_up_within_column(admin):
    board, todo, _, _ = _three_column_board(admin)
    _, _, _, d = _fill(board, todo, admin, "A", "B", "C", "D")

    task_ordering.move_task(d.id, admin, column_id=todo.id, position=1)
    assert _titles(todo.id) == ["A", "D", "B", "C"]
    _assert_dense(board)


def test_cross_column_insert_in_middle(admin):
    board, todo, doing, _ = _three_column_board(admin)
    a, _ = _fill(board, todo, admin, "A", "B")
    _fill(board, doing, admin, "X", "Y")

    task = task_ordering.move_task(a.id, admin, column_id=doing.id, position=1)
    assert _titles(todo.id) == ["B"]
    assert _titles(doing.id) == ["X", "A", "Y"]
    assert task.status == "in_progress"
    _assert_dense(board)


def test_cross_column_append_at_end(admin):
    board, todo, doing, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")
    _fill(board, doing, admin, "X", "Y")

    task_ordering.move_task(a.id, admin, column_id=doing.id, position=2)
    assert _titles(doing.id) == ["X", "Y", "A"]
    assert _titles(todo.id) == []


def test_no_op_move_writes_nothing(admin, realtime_events):
    board, todo, _, _ = _three_column_board(admin)
    _, b, _ = _fill(board, todo, admin, "A", "B", "C")
    activity_before = TaskActivity.query.count()
    events_before = len(realtime_events.events)

    task_ordering.move_task(b.id, admin, column_id=todo.id, position=1)
    assert _titles(todo.id) == ["A", "B", "C"]
    assert TaskActivity.query.count() == activity_before
    assert len(realtime_events.events) == events_before


def test_only_task_to_position_zero(admin):
    board, todo, _, _ = _three_column_board(admin)
    (only,) = _fill(board, todo, admin, "Solo")

    task = task_ordering.move_task(only.id, admin, column_id=todo.id, position=0)
    assert task.position == 0


@pytest.mark.parametrize("position", [3, 99])
def test_same_column_position_out_of_range(admin, position):
    board, todo, _, _ = _three_column_board(admin)
    a, _, _ = _fill(board, todo, admin, "A", "B", "C")

    with pytest.raises(ValidationError):
        task_ordering.move_task(a.id, admin, column_id=todo.id, position=position)
    _assert_dense(board)


def test_cross_column_position_out_of_range(admin):
    board, todo, doing, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")
    _fill(board, doing, admin, "X")

    with pytest.raises(ValidationError):
        task_ordering.move_task(a.id, admin, column_id=doing.id, position=2)


def test_negative_position_rejected(admin):
    board, todo, _, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")

    with pytest.raises(ValidationError):
        task_ordering.move_task(a.id, admin, column_id=todo.id, position=-1)


def test_move_to_other_board_column_is_not_found(admin):
    board, todo, _, _ = _three_column_board(admin)
    other, other_todo, _, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")

    with pytest.raises(NotFoundError):
        task_ordering.move_task(a.id, admin, column_id=other_todo.id, position=0)


def test_move_logs_activity(admin, realtime_events):
    board, todo, doing, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")

    task_ordering.move_task(a.id, admin, column_id=doing.id, position=0)
    entry = a.activity.filter_by(action="moved").one()
    assert entry.details["old_column_id"] == todo.id
    assert entry.details["new_column_id"] == doing.id
    assert entry.details["old_position"] == 0
    assert entry.details["new_position"] == 0
    assert entry.actor_id == admin.id and entry.actor_type == "admin"

    event = realtime_events.events[-1]
    assert event["event"] == "task_moved"
    assert event["payload"]["from"] == {"column_id": todo.id, "position": 0}
    assert event["payload"]["to"] == {"column_id": doing.id, "position": 0}


def test_moving_into_review_notifies_watchers(admin, startup, notifications):
    board = board_service.create_board(admin, name="Review flow")
    todo, _, review, _ = board.active_columns()
    task = task_ordering.create_task(board.id, admin, {
        "title": "Deck", "column_id": todo.id, "assignee_id": startup.id, "assignee_type": "startup",
    })

    task_ordering.move_task(task.id, admin, column_id=review.id, position=0)
    sent = [n for n in notifications.sent if n["template"] == "task_ready_for_review"]
    assert [n["to"] for n in sent] == [{"id": startup.id, "type": "startup"}]


def test_status_is_not_settable_through_update(admin):
    board, todo, _, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")

    with pytest.raises(ValidationError):
        task_ordering.update_task(a.id, admin, {"status": "done"})


def test_unchanged_update_ends_transaction(admin, realtime_events):
    board, todo, _, _ = _three_column_board(admin)
    (a,) = _fill(board, todo, admin, "A")
    activity_before = TaskActivity.query.count()
    events_before = len(realtime_events.events)

    task_ordering.update_task(a.id, admin, {"title": "A"})
    assert not db.session.in_transaction()
    assert TaskActivity.query.count() == activity_before
    assert len(realtime_events.events) == events_before


# ═════════════════════════════════════════════════════════════════════════════
# Archive
# ═════════════════════════════════════════════════════════════════════════════


def test_archive_closes_gap(admin):
    board, todo, _, _ = _three_column_board(admin)
    _, b, _ = _fill(board, todo, admin, "A", "B", "C")

    task_ordering.archive_task(b.id, admin)
    assert _titles(todo.id) == ["A", "C"]
    assert _positions(todo.id) == [0, 1]

    with pytest.raises(NotFoundError):
        task_ordering.get_task(b.id)


def test_member_without_delete_permission_cannot_archive(board, startup):
    task = task_ordering.create_task(board.id, startup, {"title": "Mine"})

    with pytest.raises(AccessDenied):
        task_ordering.archive_task(task.id, startup)


def test_activity_log_only_grows(admin):
    board, todo, doing, _ = _three_column_board(admin)
    a, _ = _fill(board, todo, admin, "A", "B")
    counts = [TaskActivity.query.count()]

    task_ordering.move_task(a.id, admin, column_id=doing.id, position=0)
    counts.append(TaskActivity.query.count())
    task_ordering.update_task(a.id, admin, {"title": "A2"})
    counts.append(TaskActivity.query.count())
    task_ordering.archive_task(a.id, admin)
    counts.append(TaskActivity.query.count())

    assert counts == sorted(counts)
    assert counts[-1] == counts[0] + 3


# ═════════════════════════════════════════════════════════════════════════════
# Property: random walk keeps every column dense
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_random_operations_keep_positions_dense(admin, seed):
    rng = random.Random(seed)
    board, *columns = _three_column_board(admin)

    for step in range(40):
        live = Task.query.filter(Task.board_id == board.id, Task.archived_at.is_(None)).all()
        op = rng.choice(["create", "move", "move", "archive"]) if live else "create"
        if op == "create":
            column = rng.choice(columns)
            task_ordering.create_task(board.id, admin, {"title": f"T{step}", "column_id": column.id})
        elif op == "move":
            task = rng.choice(live)
            target = rng.choice(columns)
            n = len(_positions(target.id))
            upper = n - 1 if target.id == task.column_id else n
            task_ordering.move_task(task.id, admin, column_id=target.id, position=rng.randint(0, upper))
        else:
            task_ordering.archive_task(rng.choice(live).id, admin)
        _assert_dense(board)


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


def test_api_create_and_move(client, board, startup_headers):
    columns = {c.role: c.id for c in board.active_columns()}
    ids = []
    for title in ("A", "B", "C"):
        res = client.post(f"{BASE}/boards/{board.id}/tasks",
                          json={"title": title, "column_id": columns["todo"]},
                          headers=startup_headers)
        assert res.status_code == 201
        ids.append(res.get_json()["id"])

    res = client.post(f"{BASE}/tasks/{ids[2]}/move",
                      json={"column_id": columns["done"], "position": 0},
                      headers=startup_headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "done"

    res = client.get(f"{BASE}/boards/{board.id}/tasks?column_id={columns['todo']}", headers=startup_headers)
    assert [t["position"] for t in res.get_json()] == [0, 1]


def test_api_move_out_of_range_is_422(client, board, startup, startup_headers):
    task = task_ordering.create_task(board.id, startup, {"title": "A"})

    res = client.post(f"{BASE}/tasks/{task.id}/move",
                      json={"column_id": task.column_id, "position": 5},
                      headers=startup_headers)
    assert res.status_code == 422


def test_api_outsider_cannot_see_task(client, board, startup, other_startup_headers):
    task = task_ordering.create_task(board.id, startup, {"title": "Private"})

    res = client.get(f"{BASE}/tasks/{task.id}", headers=other_startup_headers)
    assert res.status_code == 404
