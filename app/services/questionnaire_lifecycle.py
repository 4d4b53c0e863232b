"""
Startup Backoffice Platform
Questionnaire Lifecycle Service.

Manages the intake questionnaire with:
  - Content validation (basic info, requirements, service selection)
  - Startup edits limited to EDITABLE_STATUSES, each edit resubmits
  - Admin review transitions (REVIEW_FROM_STATUSES → REVIEW_TARGET_STATUSES)
  - Priority score computed on approval (pure table lookup)
  - Linking an anonymous submission to its startup owner

Usage:
    from app.services import questionnaire_lifecycle as ql

    q = ql.submit_questionnaire(content, actor=None)
    q = ql.review_questionnaire(q.id, admin, status="approved", notes="Looks good")
"""

import logging
import uuid
from datetime import datetime, timezone

import sqlalchemy as sa

from app.auth import Actor
from app.core.exceptions import (
    AccessDenied,
    AlreadyLinkedError,
    InvalidStateTransition,
    MissingFieldError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.questionnaire import (
    EDITABLE_STATUSES,
    QUESTIONNAIRE_STATUSES,
    QUESTIONNAIRE_TRANSITIONS,
    REQUIRED_SECTIONS,
    REVIEW_FROM_STATUSES,
    REVIEW_TARGET_STATUSES,
    TIME_COMMITMENTS,
    TIMELINES,
    URGENCY_LEVELS,
    Questionnaire,
)
from app.services.notification import ADMIN_TEAM, get_notifier

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Priority score
# ═════════════════════════════════════════════════════════════════════════════

TASK_TYPE_WEIGHTS = {
    "mvp-development": 10,
    "fundraising": 10,
    "funding-preparation": 10,
    "validation": 8,
    "idea-validation": 8,
    "marketing": 7,
    "market-research": 7,
    "branding": 6,
    "branding-design": 6,
    "other": 5,
}

BUDGET_WEIGHTS = {
    "< $5,000": 3,
    "$5,000 - $10,000": 5,
    "$10,000 - $25,000": 7,
    "$25,000 - $50,000": 9,
    "$50,000+": 10,
}

TIMELINE_WEIGHTS = {
    "1-2 weeks": 10,
    "3-4 weeks": 8,
    "1-2 months": 6,
    "3-6 months": 4,
    "6+ months": 2,
}

UNKNOWN_WEIGHT = 5
FULL_TIME_BONUS = 5
MAX_PRIORITY_SCORE = 100


def compute_priority_score(basic_info: dict, requirements: dict) -> int:
    """Weighted lookup over task type, budget and timeline, clamped to [0, 100].

    Unknown or missing values weigh 5; a full-time commitment adds 5.
    """
    basic_info = basic_info or {}
    requirements = requirements or {}
    score = (
        TASK_TYPE_WEIGHTS.get(basic_info.get("task_type"), UNKNOWN_WEIGHT)
        + BUDGET_WEIGHTS.get(requirements.get("budget_range"), UNKNOWN_WEIGHT)
        + TIMELINE_WEIGHTS.get(requirements.get("timeline"), UNKNOWN_WEIGHT)
    )
    if basic_info.get("time_commitment") == "full-time":
        score += FULL_TIME_BONUS
    return max(0, min(score, MAX_PRIORITY_SCORE))


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _validate_content(content: dict) -> dict:
    """Check the three content sections; return them normalised."""
    content = content or {}
    missing = {
        section: "required"
        for section in REQUIRED_SECTIONS
        if not isinstance(content.get(section), dict) or not content.get(section)
    }
    if missing:
        raise ValidationError("Questionnaire is incomplete", details=missing)

    basic = content["basic_info"]
    reqs = content["requirements"]
    service = content["service_selection"]
    errors = {}

    for field in ("startup_name", "task_type", "task_description"):
        if not str(basic.get(field) or "").strip():
            errors[f"basic_info.{field}"] = "required"
    if basic.get("time_commitment") and basic["time_commitment"] not in TIME_COMMITMENTS:
        errors["basic_info.time_commitment"] = f"must be one of {sorted(TIME_COMMITMENTS)}"

    if not reqs.get("timeline"):
        errors["requirements.timeline"] = "required"
    elif reqs["timeline"] not in TIMELINES:
        errors["requirements.timeline"] = f"must be one of {sorted(TIMELINES)}"
    if not reqs.get("budget_range"):
        errors["requirements.budget_range"] = "required"

    if service.get("is_custom"):
        if not str(service.get("custom_request") or "").strip():
            errors["service_selection.custom_request"] = "required for a custom request"
    elif not service.get("selected_service"):
        errors["service_selection.selected_service"] = "required"
    if service.get("urgency") and service["urgency"] not in URGENCY_LEVELS:
        errors["service_selection.urgency"] = f"must be one of {sorted(URGENCY_LEVELS)}"

    if errors:
        raise ValidationError("Questionnaire content is invalid", details=errors)
    return {section: dict(content[section]) for section in REQUIRED_SECTIONS}


def _auto_tags(basic_info: dict, service: dict) -> list[str]:
    tags = []
    if basic_info.get("task_type"):
        tags.append(basic_info["task_type"])
    if basic_info.get("startup_stage"):
        tags.append(f"stage:{basic_info['startup_stage']}")
    if service.get("urgency"):
        tags.append(f"urgency:{service['urgency']}")
    if service.get("is_custom"):
        tags.append("custom-request")
    return tags


def _apply_content(q: Questionnaire, content: dict) -> None:
    q.basic_info = content["basic_info"]
    q.requirements = content["requirements"]
    q.service_selection = content["service_selection"]
    q.tags = _auto_tags(q.basic_info, q.service_selection)


def _recipient(q: Questionnaire):
    if q.owner_id is not None:
        return {"id": q.owner_id, "type": "startup"}
    return {"temporary_id": q.temporary_id}


def get_questionnaire(questionnaire_id: int) -> Questionnaire:
    q = db.session.get(Questionnaire, questionnaire_id)
    if q is None:
        raise NotFoundError(resource="Questionnaire", resource_id=questionnaire_id)
    return q


def check_access(q: Questionnaire, actor: Actor | None, temporary_id: str | None = None) -> None:
    """Admins see everything; startups their own; anonymous callers need the token."""
    if actor is not None and actor.is_admin:
        return
    if actor is not None and q.owner_id is not None and q.owner_id == actor.id:
        return
    if temporary_id and q.temporary_id and q.temporary_id == temporary_id:
        return
    # Indistinguishable from a missing record for outsiders
    raise NotFoundError(resource="Questionnaire", resource_id=q.id)


def get_for_actor(questionnaire_id: int, actor: Actor | None,
                  temporary_id: str | None = None) -> Questionnaire:
    q = get_questionnaire(questionnaire_id)
    check_access(q, actor, temporary_id)
    return q


def list_questionnaires(actor: Actor, status: str | None = None):
    """Return a query: all records for admins, own records for startups."""
    q = Questionnaire.query
    if not actor.is_admin:
        q = q.filter(Questionnaire.owner_id == actor.id)
    if status:
        if status not in QUESTIONNAIRE_STATUSES:
            raise ValidationError(f"Unknown status: {status}", details={"status": "invalid"})
        q = q.filter(Questionnaire.status == status)
    return q.order_by(
        Questionnaire.priority_score.desc().nulls_last(),
        Questionnaire.created_at.desc(),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Startup operations
# ═════════════════════════════════════════════════════════════════════════════

def submit_questionnaire(content: dict, actor: Actor | None = None, *, draft: bool = False) -> Questionnaire:
    """
    Create a questionnaire, submitted unless `draft` is set.

    A startup submission is owned immediately; an anonymous one receives a
    `temporary_id` token for linking after registration.
    """
    if actor is not None and actor.is_admin:
        raise AccessDenied("Only startups submit questionnaires")

    q = Questionnaire(status="draft")
    if draft:
        content = content or {}
        q.basic_info = dict(content.get("basic_info") or {})
        q.requirements = dict(content.get("requirements") or {})
        q.service_selection = dict(content.get("service_selection") or {})
        q.tags = _auto_tags(q.basic_info, q.service_selection)
    else:
        _apply_content(q, _validate_content(content))
        q.status = "submitted"
        q.submitted_at = _utcnow()

    if actor is not None:
        q.owner_id = actor.id
    else:
        q.temporary_id = str(uuid.uuid4())

    db.session.add(q)
    db.session.commit()
    logger.info("Questionnaire %s created status=%s owner=%s", q.id, q.status, q.owner_id)

    if q.status == "submitted":
        get_notifier().notify(ADMIN_TEAM, "questionnaire_submitted", {
            "questionnaire_id": q.id,
            "startup_name": q.startup_name,
        })
    return q


def update_questionnaire(questionnaire_id: int, content: dict, actor: Actor | None = None,
                         *, temporary_id: str | None = None) -> Questionnaire:
    """
    Replace the content while editable and resubmit.

    Editing is only legal in EDITABLE_STATUSES; the record returns to
    `submitted` with a fresh `submitted_at`.
    """
    q = get_for_actor(questionnaire_id, actor, temporary_id)
    if actor is not None and actor.is_admin:
        raise AccessDenied("Admins review questionnaires; they do not edit them")
    if q.status not in EDITABLE_STATUSES:
        raise InvalidStateTransition(
            "Questionnaire", current=q.status, target="submitted",
            reason="content can only be edited in draft or revision_requested",
        )

    _apply_content(q, _validate_content(content))
    previous = q.status
    q.status = "submitted"
    q.submitted_at = _utcnow()
    db.session.commit()
    logger.info("Questionnaire %s resubmitted (%s → submitted)", q.id, previous)

    get_notifier().notify(ADMIN_TEAM, "questionnaire_submitted", {
        "questionnaire_id": q.id,
        "startup_name": q.startup_name,
        "resubmission": True,
    })
    return q


def link_to_owner(temporary_id: str, owner_id: int) -> Questionnaire:
    """
    Claim an anonymous questionnaire for a startup.

    The token is cleared on success, so a second attempt with the same token
    fails with AlreadyLinkedError.
    """
    if not temporary_id:
        raise MissingFieldError("temporary_id")

    now = _utcnow()
    result = db.session.execute(
        sa.update(Questionnaire)
        .where(
            Questionnaire.temporary_id == temporary_id,
            Questionnaire.owner_id.is_(None),
        )
        .values(
            owner_id=owner_id,
            temporary_id=None,
            linked_temporary_id=temporary_id,
            linked_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        if Questionnaire.query.filter_by(linked_temporary_id=temporary_id).first():
            raise AlreadyLinkedError(temporary_id)
        raise NotFoundError(resource="Questionnaire", resource_id=temporary_id)

    q = Questionnaire.query.filter_by(linked_temporary_id=temporary_id).one()
    db.session.refresh(q)
    if q.sprint is not None and q.sprint.startup_id is None:
        q.sprint.startup_id = owner_id
    db.session.commit()
    logger.info("Questionnaire %s linked to startup %s", q.id, owner_id)
    return q


# ═════════════════════════════════════════════════════════════════════════════
# Admin operations
# ═════════════════════════════════════════════════════════════════════════════

_REVIEW_TEMPLATES = {
    "approved": "questionnaire_approved",
    "rejected": "questionnaire_rejected",
    "revision_requested": "questionnaire_revision_requested",
}


def review_questionnaire(
    questionnaire_id: int,
    actor: Actor,
    *,
    status: str,
    notes: str | None = None,
    rejection_reason: str | None = None,
    revision_notes: str | None = None,
) -> Questionnaire:
    """
    Apply an admin review decision.

    Raises:
        ValidationError: unknown target status
        InvalidStateTransition: current status is not reviewable
        MissingFieldError: rejection without a reason
    """
    if not actor.is_admin:
        raise AccessDenied("Only admins review questionnaires")
    if status not in REVIEW_TARGET_STATUSES:
        raise ValidationError(
            f"Invalid review status: {status}",
            details={"status": f"must be one of {sorted(REVIEW_TARGET_STATUSES)}"},
        )

    q = get_questionnaire(questionnaire_id)
    if q.status not in REVIEW_FROM_STATUSES:
        raise InvalidStateTransition("Questionnaire", current=q.status, target=status)

    if status == "rejected":
        rejection_reason = (rejection_reason or "").strip()
        if not rejection_reason:
            raise MissingFieldError("rejection_reason", "A rejection reason is required")
        q.rejection_reason = rejection_reason
    elif status == "revision_requested":
        q.revision_notes = (revision_notes or notes or "").strip() or None
    elif status == "approved":
        q.priority_score = compute_priority_score(q.basic_info, q.requirements)

    previous = q.status
    q.status = status
    q.reviewed_by = actor.id
    q.reviewed_at = _utcnow()
    if notes:
        q.admin_notes = notes
    db.session.commit()
    logger.info(
        "Questionnaire %s reviewed %s → %s by admin %s (priority=%s)",
        q.id, previous, status, actor.id, q.priority_score,
    )

    template = _REVIEW_TEMPLATES.get(status)
    if template:
        get_notifier().notify(_recipient(q), template, {
            "questionnaire_id": q.id,
            "startup_name": q.startup_name,
            "rejection_reason": q.rejection_reason if status == "rejected" else None,
            "revision_notes": q.revision_notes if status == "revision_requested" else None,
        })
    return q


def advance_questionnaire(q: Questionnaire, action: str) -> Questionnaire:
    """Apply a downstream QUESTIONNAIRE_TRANSITIONS step. Caller commits."""
    rule = QUESTIONNAIRE_TRANSITIONS[action]
    if q.status not in rule["from"]:
        raise InvalidStateTransition("Questionnaire", current=q.status, target=rule["to"])
    q.status = rule["to"]
    return q


def schedule_intake_meeting(questionnaire_id: int, actor: Actor, note: str | None = None) -> Questionnaire:
    """Record that a discovery call was booked for an approved questionnaire."""
    if not actor.is_admin:
        raise AccessDenied("Only admins schedule intake meetings")
    q = get_questionnaire(questionnaire_id)
    advance_questionnaire(q, "schedule_intake_meeting")
    if note:
        _append_internal_note(q, actor, note)
    db.session.commit()
    logger.info("Questionnaire %s intake meeting scheduled by admin %s", q.id, actor.id)
    return q


def _append_internal_note(q: Questionnaire, actor: Actor, note: str) -> None:
    # Reassign so the JSON column is flagged dirty
    q.internal_notes = [*(q.internal_notes or []), {
        "note": note,
        "author_id": actor.id,
        "created_at": _utcnow().isoformat(),
    }]


def add_internal_note(questionnaire_id: int, actor: Actor, note: str) -> Questionnaire:
    if not actor.is_admin:
        raise AccessDenied("Only admins add internal notes")
    if not (note or "").strip():
        raise MissingFieldError("note")
    q = get_questionnaire(questionnaire_id)
    _append_internal_note(q, actor, note.strip())
    db.session.commit()
    return q
