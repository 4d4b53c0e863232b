"""
Startup Backoffice Platform
Admin Analytics Service.

Aggregates onboarding metrics for the admin dashboard:
  - questionnaire, sprint and task counts by status (all time)
  - tasks by priority and overdue tasks
  - new questionnaires / sprints within the requested period
  - daily questionnaire submissions within the period

Periods: 7d | 30d | 90d | 1y (default 30d).
"""

import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func

from app.core.exceptions import ValidationError
from app.models import db
from app.models.board import DONE_TASK_STATUS, Task
from app.models.questionnaire import Questionnaire
from app.models.sprint import Sprint

logger = logging.getLogger(__name__)

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_PERIOD = "30d"


def _utcnow():
    return datetime.now(timezone.utc)


def resolve_period(period=None):
    """Return (label, start) for a period label; start is timezone-aware UTC."""
    label = period or DEFAULT_PERIOD
    if label not in PERIODS:
        raise ValidationError(
            f"Unknown period: {label}", details={"period": f"must be one of {list(PERIODS)}"},
        )
    return label, _utcnow() - timedelta(days=PERIODS[label])


def _count_by(column, *filters):
    rows = (
        db.session.query(column, func.count())
        .filter(*filters)
        .group_by(column)
        .all()
    )
    return {key or "unknown": count for key, count in rows}


def get_questionnaires_by_status():
    return _count_by(Questionnaire.status)


def get_sprints_by_status():
    return _count_by(Sprint.status, Sprint.archived_at.is_(None))


def get_tasks_by_status():
    return _count_by(Task.status, Task.archived_at.is_(None))


def get_tasks_by_priority():
    return _count_by(Task.priority, Task.archived_at.is_(None))


def get_overdue_tasks(limit=20):
    """Active tasks past their due date that are not done, oldest due first."""
    q = Task.query_active().filter(
        Task.due_date.isnot(None),
        Task.due_date < date.today(),
        Task.status != DONE_TASK_STATUS,
    )
    total = q.count()
    items = q.order_by(Task.due_date.asc(), Task.id.asc()).limit(limit).all()
    return {
        "total": total,
        "items": [
            {
                "id": t.id,
                "board_id": t.board_id,
                "title": t.title,
                "status": t.status,
                "priority": t.priority,
                "due_date": t.due_date.isoformat(),
            }
            for t in items
        ],
    }


def get_submission_trend(since):
    """Daily questionnaire submission counts since `since`."""
    day = func.date(Questionnaire.submitted_at)
    rows = (
        db.session.query(day.label("day"), func.count(Questionnaire.id).label("count"))
        .filter(Questionnaire.submitted_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [{"date": str(r.day), "count": r.count} for r in rows]


def get_period_summary(since):
    return {
        "new_questionnaires": Questionnaire.query.filter(Questionnaire.created_at >= since).count(),
        "submitted_questionnaires": Questionnaire.query.filter(
            Questionnaire.submitted_at >= since,
        ).count(),
        "new_sprints": Sprint.query_active().filter(Sprint.created_at >= since).count(),
        "completed_sprints": Sprint.query_active().filter(Sprint.status == "completed").count(),
    }


def get_dashboard(period=None):
    """Aggregate all dashboard metrics into a single response."""
    label, since = resolve_period(period)
    dashboard = {
        "period": {"label": label, "start": since.isoformat(), "end": _utcnow().isoformat()},
        "summary": get_period_summary(since),
        "status_distributions": {
            "questionnaires": get_questionnaires_by_status(),
            "sprints": get_sprints_by_status(),
            "tasks": get_tasks_by_status(),
        },
        "task_priorities": get_tasks_by_priority(),
        "overdue_tasks": get_overdue_tasks(),
        "submission_trend": get_submission_trend(since),
    }
    logger.debug("Analytics dashboard built for period %s", label)
    return dashboard
