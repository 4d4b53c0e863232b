"""
Startup Backoffice Platform
Questionnaire domain model.

Models:
    - Questionnaire: startup intake record (basic info, requirements,
      service selection) reviewed by an admin before a sprint is proposed.

An intake can be submitted anonymously. It then carries a `temporary_id`
token until the startup registers and the record is linked to its owner.
"""

from datetime import datetime, timezone

from app.models import db

# ── Shared constants ─────────────────────────────────────────────────────

QUESTIONNAIRE_STATUSES = {
    "draft", "submitted", "under_review", "approved", "rejected",
    "revision_requested", "meeting_scheduled", "proposal_created",
    "sprint_created",
}

# Statuses an admin review may start from / land on
REVIEW_FROM_STATUSES = {"submitted", "under_review", "revision_requested"}
REVIEW_TARGET_STATUSES = {"under_review", "approved", "rejected", "revision_requested"}

# The startup may only edit content while the record is in one of these
EDITABLE_STATUSES = {"draft", "revision_requested"}

# Downstream advances once the questionnaire has been approved
QUESTIONNAIRE_TRANSITIONS = {
    "schedule_intake_meeting": {"from": {"approved"}, "to": "meeting_scheduled"},
    "create_proposal": {"from": {"approved", "meeting_scheduled"}, "to": "proposal_created"},
    "start_sprint": {"from": {"proposal_created"}, "to": "sprint_created"},
}

TIME_COMMITMENTS = {"full-time", "part-time"}
URGENCY_LEVELS = {"low", "medium", "high", "urgent"}
TIMELINES = {"1-2 weeks", "3-4 weeks", "1-2 months", "3-6 months", "6+ months"}

REQUIRED_SECTIONS = ("basic_info", "requirements", "service_selection")


class Questionnaire(db.Model):
    """
    Intake questionnaire submitted by a startup.

    Lifecycle: draft → submitted → under_review → approved | rejected |
    revision_requested; approved continues into the sprint proposal flow.
    """

    __tablename__ = "questionnaires"

    id = db.Column(db.Integer, primary_key=True)
    temporary_id = db.Column(
        db.String(36), unique=True, nullable=True, index=True,
        comment="Anonymous submission token; cleared once linked to an owner",
    )
    linked_temporary_id = db.Column(
        db.String(36), nullable=True, index=True,
        comment="Token this record was claimed with",
    )
    owner_id = db.Column(db.Integer, nullable=True, index=True, comment="Startup id")
    linked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    basic_info = db.Column(db.JSON, default=dict)
    requirements = db.Column(db.JSON, default=dict)
    service_selection = db.Column(db.JSON, default=dict)

    status = db.Column(
        db.String(30), nullable=False, default="draft",
        comment="draft | submitted | under_review | approved | rejected | revision_requested | "
                "meeting_scheduled | proposal_created | sprint_created",
    )
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Review metadata
    reviewed_by = db.Column(db.Integer, nullable=True, comment="Admin id")
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.Text, default="")
    rejection_reason = db.Column(db.Text, nullable=True)
    revision_notes = db.Column(db.Text, nullable=True)
    priority_score = db.Column(db.Integer, nullable=True, comment="0-100, set on approval")

    tags = db.Column(db.JSON, default=list)
    internal_notes = db.Column(db.JSON, default=list, comment="Admin-only notes")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def startup_name(self):
        return (self.basic_info or {}).get("startup_name")

    def to_dict(self, include_internal=False):
        result = {
            "id": self.id,
            "temporary_id": self.temporary_id,
            "owner_id": self.owner_id,
            "basic_info": self.basic_info or {},
            "requirements": self.requirements or {},
            "service_selection": self.service_selection or {},
            "status": self.status,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "review": {
                "reviewed_by": self.reviewed_by,
                "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
                "admin_notes": self.admin_notes,
                "rejection_reason": self.rejection_reason,
                "revision_notes": self.revision_notes,
            },
            "priority_score": self.priority_score,
            "tags": self.tags or [],
            "sprint_id": self.sprint.id if self.sprint else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_internal:
            result["internal_notes"] = self.internal_notes or []
        return result

    def __repr__(self):
        return f"<Questionnaire {self.id}: {self.status}>"
