"""
Startup Backoffice Platform
Sprint domain models.

Models:
    - Sprint: priced, time-boxed engagement created from an approved
      questionnaire; carries package options and the selected package snapshot
    - SprintMilestone: checkpoint whose completion drives sprint progress
    - SprintStatusHistory: append-only record of every sprint status change
"""

from datetime import datetime, timezone

from app.models import db
from app.models.archive import ArchiveMixin

# ── Shared constants ─────────────────────────────────────────────────────

SPRINT_STATUSES = {
    "draft", "available", "package_selected", "documents_submitted",
    "meeting_scheduled", "in_progress", "on_hold", "completed",
    "cancelled", "inactive",
}

SPRINT_TYPES = {"mvp", "validation", "branding", "marketing", "fundraising", "custom"}

CURRENCIES = {"USD", "EUR", "GBP"}

MEETING_TYPES = {"kickoff", "review", "demo", "feedback", "completion"}

MILESTONE_STATUSES = {"pending", "in_progress", "completed", "overdue"}

# Startup-driven steps: action → allowed source statuses / resulting status
SPRINT_TRANSITIONS = {
    "select_package": {"from": {"available"}, "to": "package_selected"},
    "submit_documents": {"from": {"package_selected"}, "to": "documents_submitted"},
    "schedule_meeting": {"from": {"documents_submitted"}, "to": "meeting_scheduled"},
    "finish": {"from": {"in_progress"}, "to": "completed"},
}


def _utcnow():
    return datetime.now(timezone.utc)


class Sprint(ArchiveMixin, db.Model):
    """
    Engagement built from one approved questionnaire (1:1).

    `selected_package` is a deep copy of the chosen option, so later edits to
    `package_options` never change what the startup agreed to.
    """

    __tablename__ = "sprints"

    id = db.Column(db.Integer, primary_key=True)
    questionnaire_id = db.Column(
        db.Integer, db.ForeignKey("questionnaires.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    startup_id = db.Column(db.Integer, nullable=True, index=True, comment="Owning startup")
    created_by = db.Column(db.Integer, nullable=True, comment="Admin id")

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(db.String(30), default="custom", comment="mvp | validation | branding | marketing | fundraising | custom")
    estimated_duration = db.Column(db.Integer, nullable=True, comment="Days, 1-365")
    team = db.Column(db.JSON, default=list, comment="Assigned admin ids")

    # ── Packages & payment
    package_options = db.Column(db.JSON, default=list)
    selected_package_id = db.Column(db.String(36), nullable=True)
    selected_package = db.Column(db.JSON, nullable=True, comment="Snapshot of the chosen option")
    package_selected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    selected_package_payment_status = db.Column(db.String(10), nullable=False, default="unpaid")
    payment_verified_by = db.Column(db.Integer, nullable=True)
    payment_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Workflow
    status = db.Column(db.String(30), nullable=False, default="draft")
    documents_submitted = db.Column(db.Boolean, nullable=False, default=False)
    documents = db.Column(db.JSON, default=list)
    documents_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    meeting_url = db.Column(db.String(500), nullable=True)
    meeting_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meeting_type = db.Column(db.String(20), nullable=True)
    meeting_scheduled_by = db.Column(db.Integer, nullable=True)
    meeting_scheduled_by_type = db.Column(db.String(10), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Derived progress (written only by recompute functions)
    progress_percentage = db.Column(db.Integer, nullable=False, default=0)
    current_phase = db.Column(db.String(200), nullable=True)
    completed_milestones = db.Column(db.Integer, nullable=False, default=0)
    total_milestones = db.Column(db.Integer, nullable=False, default=0)
    total_tasks = db.Column(db.Integer, nullable=False, default=0)
    done_tasks = db.Column(db.Integer, nullable=False, default=0)
    progress_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships
    questionnaire = db.relationship(
        "Questionnaire", backref=db.backref("sprint", uselist=False),
    )
    milestones = db.relationship(
        "SprintMilestone", backref="sprint", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SprintMilestone.position",
    )
    status_history = db.relationship(
        "SprintStatusHistory", backref="sprint", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SprintStatusHistory.id",
    )

    @property
    def is_paid(self):
        return self.selected_package_payment_status == "paid"

    def find_package(self, package_id):
        for option in self.package_options or []:
            if option.get("id") == package_id:
                return option
        return None

    def to_dict(self, include_history=False):
        result = {
            "id": self.id,
            "questionnaire_id": self.questionnaire_id,
            "startup_id": self.startup_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "estimated_duration": self.estimated_duration,
            "team": self.team or [],
            "package_options": self.package_options or [],
            "selected_package": self.selected_package,
            "selected_package_payment_status": self.selected_package_payment_status,
            "payment_verified_by": self.payment_verified_by,
            "payment_verified_at": self.payment_verified_at.isoformat() if self.payment_verified_at else None,
            "status": self.status,
            "documents_submitted": self.documents_submitted,
            "documents": self.documents or [],
            "meeting": {
                "is_scheduled": self.meeting_at is not None,
                "meeting_url": self.meeting_url,
                "scheduled_at": self.meeting_at.isoformat() if self.meeting_at else None,
                "meeting_type": self.meeting_type,
                "scheduled_by": self.meeting_scheduled_by,
                "scheduled_by_type": self.meeting_scheduled_by_type,
            },
            "progress": {
                "percentage": self.progress_percentage,
                "current_phase": self.current_phase,
                "completed_milestones": self.completed_milestones,
                "total_milestones": self.total_milestones,
                "total_tasks": self.total_tasks,
                "done_tasks": self.done_tasks,
                "last_updated": self.progress_updated_at.isoformat() if self.progress_updated_at else None,
            },
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_archived": self.is_archived,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            result["status_history"] = [h.to_dict() for h in self.status_history]
            result["milestones"] = [m.to_dict() for m in self.milestones]
        return result

    def __repr__(self):
        return f"<Sprint {self.id}: {self.name} [{self.status}]>"


class SprintMilestone(db.Model):
    """Checkpoint inside a sprint; completed milestones feed progress."""

    __tablename__ = "sprint_milestones"

    id = db.Column(db.Integer, primary_key=True)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | in_progress | completed | overdue")
    position = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "sprint_id": self.sprint_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "position": self.position,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<SprintMilestone {self.id}: {self.name} [{self.status}]>"


class SprintStatusHistory(db.Model):
    """
    Immutable status-change entry. Rows are only ever inserted.
    """

    __tablename__ = "sprint_status_history"

    id = db.Column(db.Integer, primary_key=True)
    sprint_id = db.Column(
        db.Integer, db.ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_status = db.Column(db.String(30), nullable=True)
    status = db.Column(db.String(30), nullable=False)
    changed_by = db.Column(db.Integer, nullable=True)
    actor_type = db.Column(db.String(10), nullable=False, comment="admin | startup")
    note = db.Column(db.Text, nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "from_status": self.from_status,
            "status": self.status,
            "changed_by": self.changed_by,
            "actor_type": self.actor_type,
            "note": self.note,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }

    def __repr__(self):
        return f"<SprintStatusHistory {self.sprint_id}: {self.from_status}→{self.status}>"
