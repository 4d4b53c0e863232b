"""
Startup Backoffice Platform
Sprint Lifecycle Service.

Workflow:
  draft → available → package_selected → documents_submitted →
  meeting_scheduled → in_progress → completed | on_hold → in_progress | cancelled

  - Startup steps (select_package, submit_documents, schedule_meeting, finish)
    follow SPRINT_TRANSITIONS and their ordering preconditions.
  - Admin `set_sprint_status` is a deliberate override: any known status,
    always recorded in the status history.
  - `verify_payment` is the single gate read by board access control.

Every status change appends a SprintStatusHistory row in the same
transaction. Notifications go out after commit.
"""

import copy
import logging
import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from app.auth import Actor
from app.core.exceptions import (
    AccessDenied,
    AlreadyExistsError,
    AlreadySelectedError,
    DocumentsRequired,
    InvalidStateTransition,
    MissingFieldError,
    NotFoundError,
    PackageRequired,
    PreconditionFailed,
    ValidationError,
)
from app.models import db
from app.models.sprint import (
    CURRENCIES,
    MEETING_TYPES,
    MILESTONE_STATUSES,
    SPRINT_STATUSES,
    SPRINT_TRANSITIONS,
    SPRINT_TYPES,
    Sprint,
    SprintMilestone,
    SprintStatusHistory,
)
from app.services import progress
from app.services.notification import ADMIN_TEAM, get_notifier
from app.services.questionnaire_lifecycle import advance_questionnaire, get_questionnaire
from app.utils.helpers import parse_date, parse_datetime, parse_int

logger = logging.getLogger(__name__)

# Statuses in which the startup may still attach documents
_DOCUMENT_STATUSES = {"package_selected", "documents_submitted", "meeting_scheduled", "in_progress"}

# Statuses in which a meeting may be (re)scheduled
_MEETING_STATUSES = {"documents_submitted", "meeting_scheduled", "in_progress", "on_hold"}

_PACKAGE_OPTIONAL_NUMBERS = ("engagement_hours", "hourly_rate", "quantity", "discount", "team_size")


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Lookups & guards
# ═════════════════════════════════════════════════════════════════════════════

def get_sprint(sprint_id: int) -> Sprint:
    sprint = db.session.get(Sprint, sprint_id)
    if sprint is None:
        raise NotFoundError(resource="Sprint", resource_id=sprint_id)
    return sprint


def get_for_actor(sprint_id: int, actor: Actor) -> Sprint:
    """Admins see every sprint; a startup only its own."""
    sprint = get_sprint(sprint_id)
    if not actor.is_admin and sprint.startup_id != actor.id:
        raise NotFoundError(resource="Sprint", resource_id=sprint_id)
    return sprint


def _require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise AccessDenied(f"Only admins may {action}")


def _require_owner(sprint: Sprint, actor: Actor) -> None:
    if actor.is_admin or sprint.startup_id != actor.id:
        raise AccessDenied("Only the owning startup may perform this step")


def list_sprints(actor: Actor, status: str | None = None, include_archived: bool = False):
    q = Sprint.query
    if not actor.is_admin:
        q = q.filter(Sprint.startup_id == actor.id)
    if not include_archived:
        q = q.filter(Sprint.archived_at.is_(None))
    if status:
        if status not in SPRINT_STATUSES:
            raise ValidationError(f"Unknown status: {status}", details={"status": "invalid"})
        q = q.filter(Sprint.status == status)
    return q.order_by(Sprint.created_at.desc())


def record_status(sprint: Sprint, new_status: str, actor: Actor, note: str | None = None) -> SprintStatusHistory:
    """Set the status and append the history row. Caller commits."""
    entry = SprintStatusHistory(
        sprint_id=sprint.id,
        from_status=sprint.status,
        status=new_status,
        changed_by=actor.id,
        actor_type=actor.type,
        note=note,
    )
    sprint.status = new_status
    db.session.add(entry)
    return entry


def _startup_recipient(sprint: Sprint):
    if sprint.startup_id is None:
        return None
    return {"id": sprint.startup_id, "type": "startup"}


def _notify_startup(sprint: Sprint, template: str, data: dict) -> None:
    to = _startup_recipient(sprint)
    if to is not None:
        get_notifier().notify(to, template, {"sprint_id": sprint.id, "sprint_name": sprint.name, **data})


# ═════════════════════════════════════════════════════════════════════════════
# Package options
# ═════════════════════════════════════════════════════════════════════════════

def _normalise_package(raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("Package option must be an object",
                              details={f"package_options[{index}]": "invalid"})
    errors = {}
    for field in ("name", "description"):
        if not str(raw.get(field) or "").strip():
            errors[f"package_options[{index}].{field}"] = "required"
    price = raw.get("price")
    if price is None or price == "":
        errors[f"package_options[{index}].price"] = "required"
    elif isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        errors[f"package_options[{index}].price"] = "must be a non-negative number"
    currency = raw.get("currency")
    if not currency:
        errors[f"package_options[{index}].currency"] = "required"
    elif currency not in CURRENCIES:
        errors[f"package_options[{index}].currency"] = f"must be one of {sorted(CURRENCIES)}"
    for field in _PACKAGE_OPTIONAL_NUMBERS:
        value = raw.get(field)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0):
            errors[f"package_options[{index}].{field}"] = "must be a non-negative number"
    if errors:
        raise ValidationError("Package option is invalid", details=errors)

    option = copy.deepcopy(raw)
    option["id"] = str(raw.get("id") or uuid.uuid4().hex)
    option["name"] = raw["name"].strip()
    option["description"] = raw["description"].strip()
    option.setdefault("features", [])
    option.setdefault("deliverables", [])
    option.setdefault("is_recommended", False)
    return option


def validate_package_options(options) -> list[dict]:
    if options is None:
        return []
    if not isinstance(options, list):
        raise ValidationError("package_options must be a list", details={"package_options": "invalid"})
    normalised = [_normalise_package(raw, i) for i, raw in enumerate(options)]
    ids = [o["id"] for o in normalised]
    if len(ids) != len(set(ids)):
        raise ValidationError("Package option ids must be unique", details={"package_options": "duplicate id"})
    return normalised


# ═════════════════════════════════════════════════════════════════════════════
# Admin: create / override / payment / team / archive
# ═════════════════════════════════════════════════════════════════════════════

def create_sprint_from_questionnaire(
    questionnaire_id: int,
    actor: Actor,
    *,
    package_options: list | None = None,
    name: str | None = None,
    description: str = "",
    sprint_type: str = "custom",
    estimated_duration=None,
    milestones: list | None = None,
) -> Sprint:
    """
    Build the sprint proposal for an approved questionnaire.

    Raises:
        AlreadyExistsError: the questionnaire already has a sprint
        PreconditionFailed: the questionnaire is not approved
        ValidationError: a package option lacks name/description/price/currency
    """
    _require_admin(actor, "create sprints")
    q = get_questionnaire(questionnaire_id)
    if q.sprint is not None:
        raise AlreadyExistsError("Sprint", "questionnaire_id", questionnaire_id)
    if q.status not in ("approved", "meeting_scheduled"):
        raise PreconditionFailed(
            f"Questionnaire must be approved before a sprint is created (status={q.status})",
            details={"questionnaire_status": q.status},
        )
    if sprint_type not in SPRINT_TYPES:
        raise ValidationError(f"Invalid sprint type: {sprint_type}",
                              details={"type": f"must be one of {sorted(SPRINT_TYPES)}"})

    options = validate_package_options(package_options)
    duration = parse_int(estimated_duration, "estimated_duration", minimum=1, maximum=365)

    sprint = Sprint(
        questionnaire_id=q.id,
        startup_id=q.owner_id,
        created_by=actor.id,
        name=(name or "").strip() or f"{q.startup_name or 'Startup'} sprint",
        description=description or "",
        type=sprint_type,
        estimated_duration=duration,
        package_options=options,
        status="draft",
    )
    db.session.add(sprint)
    db.session.flush()

    for position, milestone in enumerate(milestones or []):
        db.session.add(_build_milestone(sprint, milestone, position))
    db.session.flush()
    progress.recompute_milestone_progress(sprint)

    record_status(sprint, "available", actor, note="Sprint proposal created")
    advance_questionnaire(q, "create_proposal")
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Concurrent sprint creation for questionnaire %s: %s", questionnaire_id, exc.orig)
        raise AlreadyExistsError("Sprint", "questionnaire_id", questionnaire_id) from exc

    logger.info("Sprint %s created from questionnaire %s with %d package(s)",
                sprint.id, q.id, len(options))
    _notify_startup(sprint, "sprint_proposal_created", {"package_count": len(options)})
    return sprint


def set_sprint_status(sprint_id: int, actor: Actor, new_status: str, note: str | None = None) -> Sprint:
    """
    Admin override to any known status.

    First entry into `in_progress` stamps `started_at`; first entry into
    `completed` stamps `completed_at`. Completion forces progress to 100.
    """
    _require_admin(actor, "change sprint status")
    if new_status not in SPRINT_STATUSES:
        raise ValidationError(f"Invalid sprint status: {new_status}",
                              details={"status": f"must be one of {sorted(SPRINT_STATUSES)}"})
    sprint = get_sprint(sprint_id)
    previous = sprint.status
    now = _utcnow()

    record_status(sprint, new_status, actor, note=note or f"{previous} → {new_status}")
    if new_status == "in_progress" and sprint.started_at is None:
        sprint.started_at = now
    if new_status == "completed":
        if sprint.completed_at is None:
            sprint.completed_at = now
        sprint.progress_percentage = 100
        sprint.progress_updated_at = now
    db.session.commit()

    logger.info("Sprint %s status %s → %s by admin %s", sprint.id, previous, new_status, actor.id)
    _notify_startup(sprint, "sprint_status_changed", {
        "from_status": previous, "status": new_status, "note": note,
    })
    return sprint


def verify_payment(sprint_id: int, actor: Actor) -> Sprint:
    """Mark the selected package as paid. Repeated calls keep the first stamp."""
    _require_admin(actor, "verify payments")
    sprint = get_sprint(sprint_id)
    if sprint.selected_package_id is None:
        raise PackageRequired()
    if sprint.is_paid:
        logger.info("Sprint %s payment already verified by %s", sprint.id, sprint.payment_verified_by)
        return sprint

    sprint.selected_package_payment_status = "paid"
    sprint.payment_verified_by = actor.id
    sprint.payment_verified_at = _utcnow()
    db.session.commit()

    logger.info("Sprint %s payment verified by admin %s", sprint.id, actor.id)
    _notify_startup(sprint, "sprint_payment_verified", {
        "package": (sprint.selected_package or {}).get("name"),
    })
    return sprint


def assign_team(sprint_id: int, actor: Actor, admin_ids) -> Sprint:
    _require_admin(actor, "assign sprint teams")
    if not isinstance(admin_ids, list):
        raise ValidationError("admin_ids must be a list", details={"admin_ids": "invalid"})
    sprint = get_sprint(sprint_id)
    team = []
    for value in admin_ids:
        admin_id = parse_int(value, "admin_ids", minimum=1)
        if admin_id not in team:
            team.append(admin_id)
    sprint.team = team
    db.session.commit()
    logger.info("Sprint %s team set to %s", sprint.id, team)
    return sprint


def archive_sprint(sprint_id: int, actor: Actor) -> Sprint:
    _require_admin(actor, "archive sprints")
    sprint = get_sprint(sprint_id)
    if not sprint.is_archived:
        sprint.archive()
        db.session.commit()
        logger.info("Sprint %s archived by admin %s", sprint.id, actor.id)
    return sprint


# ═════════════════════════════════════════════════════════════════════════════
# Startup steps
# ═════════════════════════════════════════════════════════════════════════════

def select_package(sprint_id: int, package_id: str, actor: Actor) -> Sprint:
    """
    Snapshot one package option as the sprint's selected package.

    The write is a conditional UPDATE on `selected_package_id IS NULL`, so of
    two concurrent selections exactly one succeeds and the other observes
    AlreadySelectedError.
    """
    sprint = get_for_actor(sprint_id, actor)
    _require_owner(sprint, actor)
    if sprint.selected_package_id is not None:
        raise AlreadySelectedError(sprint.id)
    option = sprint.find_package(package_id)
    if option is None:
        raise NotFoundError(resource="Package", resource_id=package_id)
    rule = SPRINT_TRANSITIONS["select_package"]
    if sprint.status not in rule["from"]:
        raise InvalidStateTransition("Sprint", current=sprint.status, target=rule["to"])

    now = _utcnow()
    result = db.session.execute(
        sa.update(Sprint)
        .where(
            Sprint.id == sprint.id,
            Sprint.selected_package_id.is_(None),
            Sprint.status.in_(rule["from"]),
        )
        .values(
            selected_package_id=option["id"],
            selected_package=copy.deepcopy(option),
            package_selected_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        db.session.refresh(sprint)
        if sprint.selected_package_id is not None:
            raise AlreadySelectedError(sprint.id)
        raise InvalidStateTransition("Sprint", current=sprint.status, target=rule["to"])

    db.session.refresh(sprint)
    record_status(sprint, rule["to"], actor, note=f"Package selected: {option['name']}")
    advance_questionnaire(sprint.questionnaire, "start_sprint")
    db.session.commit()

    logger.info("Sprint %s package %s selected by startup %s", sprint.id, option["id"], actor.id)
    get_notifier().notify(ADMIN_TEAM, "sprint_package_selected", {
        "sprint_id": sprint.id,
        "package_id": option["id"],
        "package_name": option["name"],
        "price": option.get("price"),
        "currency": option.get("currency"),
    })
    return sprint


def _validate_documents(documents) -> list[dict]:
    if documents is None:
        return []
    if not isinstance(documents, list):
        raise ValidationError("documents must be a list", details={"documents": "invalid"})
    cleaned = []
    for i, doc in enumerate(documents):
        if not isinstance(doc, dict) or not doc.get("name") or not doc.get("url"):
            raise ValidationError("Each document needs a name and url",
                                  details={f"documents[{i}]": "name and url required"})
        cleaned.append({"name": doc["name"], "url": doc["url"], "type": doc.get("type")})
    return cleaned


def submit_documents(sprint_id: int, actor: Actor, documents=None) -> Sprint:
    """Attach document references; the first submission advances the status."""
    sprint = get_for_actor(sprint_id, actor)
    _require_owner(sprint, actor)
    if sprint.selected_package_id is None:
        raise PackageRequired()
    if sprint.status not in _DOCUMENT_STATUSES:
        raise InvalidStateTransition("Sprint", current=sprint.status, target="documents_submitted")

    now = _utcnow()
    uploaded = [{**doc, "uploaded_at": now.isoformat()} for doc in _validate_documents(documents)]
    sprint.documents = [*(sprint.documents or []), *uploaded]
    first_submission = not sprint.documents_submitted
    sprint.documents_submitted = True
    if first_submission:
        sprint.documents_submitted_at = now
    if sprint.status in SPRINT_TRANSITIONS["submit_documents"]["from"]:
        record_status(sprint, "documents_submitted", actor, note=f"{len(uploaded)} document(s) submitted")
    db.session.commit()

    logger.info("Sprint %s documents submitted (%d new)", sprint.id, len(uploaded))
    get_notifier().notify(ADMIN_TEAM, "sprint_documents_submitted", {
        "sprint_id": sprint.id, "document_count": len(sprint.documents),
    })
    return sprint


def schedule_meeting(sprint_id: int, actor: Actor, *, meeting_url: str, scheduled_at,
                     meeting_type: str = "kickoff") -> Sprint:
    """
    Record meeting metadata. Requires submitted documents.

    The first meeting moves `documents_submitted → meeting_scheduled`; later
    calls reschedule without changing the status.
    """
    sprint = get_for_actor(sprint_id, actor)
    if not actor.is_admin:
        _require_owner(sprint, actor)
    if not sprint.documents_submitted:
        raise DocumentsRequired()
    if sprint.status not in _MEETING_STATUSES:
        raise InvalidStateTransition("Sprint", current=sprint.status, target="meeting_scheduled")
    if not (meeting_url or "").strip():
        raise MissingFieldError("meeting_url")
    when = parse_datetime(scheduled_at, "scheduled_at")
    if when is None:
        raise MissingFieldError("scheduled_at")
    if meeting_type not in MEETING_TYPES:
        raise ValidationError(f"Invalid meeting type: {meeting_type}",
                              details={"meeting_type": f"must be one of {sorted(MEETING_TYPES)}"})

    sprint.meeting_url = meeting_url.strip()
    sprint.meeting_at = when
    sprint.meeting_type = meeting_type
    sprint.meeting_scheduled_by = actor.id
    sprint.meeting_scheduled_by_type = actor.type
    if sprint.status in SPRINT_TRANSITIONS["schedule_meeting"]["from"]:
        record_status(sprint, "meeting_scheduled", actor, note=f"{meeting_type} meeting scheduled")
    db.session.commit()

    logger.info("Sprint %s %s meeting at %s by %s %s",
                sprint.id, meeting_type, when.isoformat(), actor.type, actor.id)
    data = {
        "sprint_id": sprint.id,
        "meeting_url": sprint.meeting_url,
        "scheduled_at": when.isoformat(),
        "meeting_type": meeting_type,
    }
    if actor.is_admin:
        _notify_startup(sprint, "sprint_meeting_scheduled", data)
    else:
        get_notifier().notify(ADMIN_TEAM, "sprint_meeting_scheduled", data)
    return sprint


def finish_sprint(sprint_id: int, actor: Actor, note: str | None = None) -> Sprint:
    """Startup closes an in-progress sprint once every task is done."""
    sprint = get_for_actor(sprint_id, actor)
    _require_owner(sprint, actor)
    rule = SPRINT_TRANSITIONS["finish"]
    if sprint.status not in rule["from"]:
        raise InvalidStateTransition("Sprint", current=sprint.status, target=rule["to"])
    if sprint.board is not None:
        total, done = progress.task_counts(sprint.board.id)
        if total != done or progress.board_percentage(total, done) != 100:
            raise PreconditionFailed(
                "All tasks must be done before the sprint can be finished",
                details={"total_tasks": total, "done_tasks": done},
            )

    now = _utcnow()
    previous = sprint.status
    record_status(sprint, rule["to"], actor, note=note or "Finished by startup")
    if sprint.completed_at is None:
        sprint.completed_at = now
    sprint.progress_percentage = 100
    sprint.progress_updated_at = now
    db.session.commit()

    logger.info("Sprint %s finished by startup %s", sprint.id, actor.id)
    get_notifier().notify(ADMIN_TEAM, "sprint_status_changed", {
        "sprint_id": sprint.id, "from_status": previous, "status": rule["to"],
    })
    return sprint


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════

def _build_milestone(sprint: Sprint, raw, position: int) -> SprintMilestone:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict) or not str(raw.get("name") or "").strip():
        raise ValidationError("Milestone name is required", details={"milestones": "name required"})
    status = raw.get("status", "pending")
    if status not in MILESTONE_STATUSES:
        raise ValidationError(f"Invalid milestone status: {status}",
                              details={"status": f"must be one of {sorted(MILESTONE_STATUSES)}"})
    return SprintMilestone(
        sprint_id=sprint.id,
        name=raw["name"].strip(),
        description=raw.get("description") or "",
        status=status,
        position=position,
        due_date=parse_date(raw.get("due_date"), "due_date"),
        completed_at=_utcnow() if status == "completed" else None,
    )


def add_milestone(sprint_id: int, actor: Actor, data: dict) -> SprintMilestone:
    _require_admin(actor, "manage milestones")
    sprint = get_sprint(sprint_id)
    milestone = _build_milestone(sprint, data, sprint.milestones.count())
    db.session.add(milestone)
    db.session.flush()
    progress.recompute_milestone_progress(sprint)
    db.session.commit()
    logger.info("Sprint %s milestone %s added", sprint.id, milestone.id)
    return milestone


def update_milestone_status(sprint_id: int, milestone_id: int, actor: Actor, status: str) -> SprintMilestone:
    _require_admin(actor, "manage milestones")
    sprint = get_sprint(sprint_id)
    milestone = sprint.milestones.filter_by(id=milestone_id).first()
    if milestone is None:
        raise NotFoundError(resource="Milestone", resource_id=milestone_id)
    if status not in MILESTONE_STATUSES:
        raise ValidationError(f"Invalid milestone status: {status}",
                              details={"status": f"must be one of {sorted(MILESTONE_STATUSES)}"})
    milestone.status = status
    milestone.completed_at = _utcnow() if status == "completed" else None
    db.session.flush()
    progress.recompute_milestone_progress(sprint)
    db.session.commit()
    logger.info("Sprint %s milestone %s → %s (progress %s%%)",
                sprint.id, milestone.id, status, sprint.progress_percentage)
    return milestone
