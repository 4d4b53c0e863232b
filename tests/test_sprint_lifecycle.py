"""
Sprint lifecycle — proposal, package selection, documents, meeting,
admin override, payment and milestones.

Workflow under test:
    draft → available → package_selected → documents_submitted →
    meeting_scheduled → in_progress → completed
"""

import pytest
import sqlalchemy as sa

from app import create_app
from app.config import TestingConfig, config
from app.core.exceptions import (
    AccessDenied,
    AlreadyExistsError,
    AlreadySelectedError,
    DocumentsRequired,
    InvalidStateTransition,
    NotFoundError,
    PackageRequired,
    PreconditionFailed,
    ValidationError,
)
from app.models import db
from app.services import questionnaire_lifecycle as ql
from app.services import sprint_lifecycle as sl

BASE = "/api/v1/sprints"


def _history(sprint):
    return [(h.from_status, h.status) for h in sprint.status_history]


# ═════════════════════════════════════════════════════════════════════════════
# Create from questionnaire
# ═════════════════════════════════════════════════════════════════════════════


def test_create_sprint_from_approved_questionnaire(sprint, approved_questionnaire, startup, notifications):
    assert sprint.status == "available"
    assert sprint.startup_id == startup.id
    assert [p["id"] for p in sprint.package_options] == ["basic", "pro"]
    assert _history(sprint) == [("draft", "available")]
    assert ql.get_questionnaire(approved_questionnaire.id).status == "proposal_created"
    assert notifications.sent[-1]["template"] == "sprint_proposal_created"


def test_second_sprint_for_questionnaire_fails(sprint, approved_questionnaire, admin, package_options):
    with pytest.raises(AlreadyExistsError):
        sl.create_sprint_from_questionnaire(approved_questionnaire.id, admin,
                                            package_options=package_options)


def test_sprint_requires_approved_questionnaire(questionnaire_content, startup, admin, package_options):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    with pytest.raises(PreconditionFailed):
        sl.create_sprint_from_questionnaire(q.id, admin, package_options=package_options)


def test_sprint_after_intake_meeting(approved_questionnaire, admin, package_options):
    ql.schedule_intake_meeting(approved_questionnaire.id, admin)

    sprint = sl.create_sprint_from_questionnaire(approved_questionnaire.id, admin,
                                                 package_options=package_options)
    assert sprint.status == "available"


@pytest.mark.parametrize("missing", ["name", "description", "price", "currency"])
def test_package_option_fields_required(approved_questionnaire, admin, package_options, missing):
    del package_options[0][missing]

    with pytest.raises(ValidationError) as exc:
        sl.create_sprint_from_questionnaire(approved_questionnaire.id, admin,
                                            package_options=package_options)
    assert f"package_options[0].{missing}" in exc.value.details


def test_package_ids_are_assigned(approved_questionnaire, admin, package_options):
    for option in package_options:
        del option["id"]

    sprint = sl.create_sprint_from_questionnaire(approved_questionnaire.id, admin,
                                                 package_options=package_options)
    ids = [p["id"] for p in sprint.package_options]
    assert all(ids) and len(set(ids)) == 2


def test_startup_cannot_create_sprint(approved_questionnaire, startup, package_options):
    with pytest.raises(AccessDenied):
        sl.create_sprint_from_questionnaire(approved_questionnaire.id, startup,
                                            package_options=package_options)


# ═════════════════════════════════════════════════════════════════════════════
# Package selection
# ═════════════════════════════════════════════════════════════════════════════


def test_select_package_twice_fails(sprint, startup, approved_questionnaire, notifications):
    sprint = sl.select_package(sprint.id, "pro", startup)
    assert sprint.status == "package_selected"
    assert sprint.selected_package["name"] == "Pro"
    assert sprint.package_selected_at is not None
    assert ql.get_questionnaire(approved_questionnaire.id).status == "sprint_created"
    assert notifications.sent[-1]["template"] == "sprint_package_selected"

    with pytest.raises(AlreadySelectedError):
        sl.select_package(sprint.id, "pro", startup)
    with pytest.raises(AlreadySelectedError):
        sl.select_package(sprint.id, "basic", startup)
    assert sl.get_sprint(sprint.id).selected_package_id == "pro"


@pytest.fixture()
def file_backed_app(tmp_path, monkeypatch):
    """Testing app on an SQLite file, so a second connection sees committed rows."""
    class FileBackedConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'selection.db'}"

    monkeypatch.setitem(config, "file-backed", FileBackedConfig)
    file_app = create_app("file-backed")
    yield file_app
    with file_app.app_context():
        db.engine.dispose()


def test_concurrent_selection_loser_sees_already_selected(
    file_backed_app, questionnaire_content, package_options, startup, admin,
):
    with file_backed_app.app_context():
        q = ql.submit_questionnaire(questionnaire_content(), startup)
        ql.review_questionnaire(q.id, admin, status="approved")
        sprint_id = sl.create_sprint_from_questionnaire(
            q.id, admin, package_options=package_options,
        ).id

        # The session keeps this snapshot while another request wins the race
        stale = sl.get_sprint(sprint_id)
        assert stale.selected_package_id is None
        assert stale.status == "available"

        with db.engine.connect() as other:
            other.execute(
                sa.text("UPDATE sprints SET selected_package_id = 'basic' WHERE id = :id"),
                {"id": sprint_id},
            )
            other.commit()

        with pytest.raises(AlreadySelectedError):
            sl.select_package(sprint_id, "pro", startup)
        assert sl.get_sprint(sprint_id).selected_package_id == "basic"
        assert sl.get_sprint(sprint_id).status == "available"


def test_selected_package_is_a_snapshot(sprint, startup):
    sprint = sl.select_package(sprint.id, "basic", startup)

    sprint.package_options = [{**sprint.package_options[0], "price": 1}]
    assert sprint.selected_package["price"] == 2500


def test_select_unknown_package_is_not_found(sprint, startup):
    with pytest.raises(NotFoundError):
        sl.select_package(sprint.id, "enterprise", startup)


def test_select_package_with_no_options_is_not_found(approved_questionnaire, admin, startup):
    sprint = sl.create_sprint_from_questionnaire(approved_questionnaire.id, admin, package_options=[])

    with pytest.raises(NotFoundError):
        sl.select_package(sprint.id, "basic", startup)


def test_only_owner_selects_package(sprint, other_startup, admin):
    with pytest.raises(NotFoundError):
        sl.select_package(sprint.id, "pro", other_startup)
    with pytest.raises(AccessDenied):
        sl.select_package(sprint.id, "pro", admin)


# ═════════════════════════════════════════════════════════════════════════════
# Documents & meeting
# ═════════════════════════════════════════════════════════════════════════════


def test_documents_require_package(sprint, startup):
    with pytest.raises(PackageRequired):
        sl.submit_documents(sprint.id, startup, [{"name": "deck.pdf", "url": "https://files/deck.pdf"}])


def test_meeting_before_documents_fails(sprint, startup):
    sl.select_package(sprint.id, "pro", startup)

    with pytest.raises(DocumentsRequired) as exc:
        sl.schedule_meeting(sprint.id, startup, meeting_url="https://meet/x",
                            scheduled_at="2026-11-02T10:00:00Z")
    assert isinstance(exc.value, PreconditionFailed)
    assert str(exc.value) == "Documents not submitted"


def test_documents_then_meeting(sprint, startup, admin, notifications):
    sl.select_package(sprint.id, "pro", startup)
    sprint = sl.submit_documents(sprint.id, startup, [{"name": "deck.pdf", "url": "https://files/deck.pdf"}])
    assert sprint.documents_submitted is True
    assert sprint.status == "documents_submitted"

    sprint = sl.schedule_meeting(sprint.id, admin, meeting_url="https://meet/x",
                                 scheduled_at="2026-11-02T10:00:00Z", meeting_type="kickoff")
    assert sprint.status == "meeting_scheduled"
    assert sprint.meeting_scheduled_by_type == "admin"
    assert notifications.sent[-1]["template"] == "sprint_meeting_scheduled"
    assert notifications.sent[-1]["to"] == {"id": startup.id, "type": "startup"}

    # Rescheduling keeps the status
    sprint = sl.schedule_meeting(sprint.id, startup, meeting_url="https://meet/y",
                                 scheduled_at="2026-11-03T10:00:00Z")
    assert sprint.status == "meeting_scheduled"
    assert sprint.meeting_url == "https://meet/y"
    assert _history(sprint)[-1] == ("documents_submitted", "meeting_scheduled")


def test_documents_need_name_and_url(sprint, startup):
    sl.select_package(sprint.id, "pro", startup)

    with pytest.raises(ValidationError):
        sl.submit_documents(sprint.id, startup, [{"name": "deck.pdf"}])


# ═════════════════════════════════════════════════════════════════════════════
# Admin override & payment
# ═════════════════════════════════════════════════════════════════════════════


def test_set_status_stamps_and_history(sprint, admin):
    sprint = sl.set_sprint_status(sprint.id, admin, "in_progress", note="Kickoff done")
    started = sprint.started_at
    assert started is not None

    sl.set_sprint_status(sprint.id, admin, "on_hold")
    sprint = sl.set_sprint_status(sprint.id, admin, "in_progress")
    assert sprint.started_at == started

    sprint = sl.set_sprint_status(sprint.id, admin, "completed")
    assert sprint.completed_at is not None
    assert sprint.progress_percentage == 100
    assert _history(sprint)[-4:] == [
        ("available", "in_progress"),
        ("in_progress", "on_hold"),
        ("on_hold", "in_progress"),
        ("in_progress", "completed"),
    ]
    assert all(h.changed_by == admin.id and h.actor_type == "admin"
               for h in sprint.status_history.all()[1:])


def test_set_status_is_admin_only(sprint, startup):
    with pytest.raises(AccessDenied):
        sl.set_sprint_status(sprint.id, startup, "in_progress")


def test_set_status_rejects_unknown_status(sprint, admin):
    with pytest.raises(ValidationError):
        sl.set_sprint_status(sprint.id, admin, "exploded")


def test_verify_payment(sprint, startup, admin):
    with pytest.raises(PackageRequired):
        sl.verify_payment(sprint.id, admin)

    sl.select_package(sprint.id, "pro", startup)
    sprint = sl.verify_payment(sprint.id, admin)
    assert sprint.selected_package_payment_status == "paid"
    assert sprint.payment_verified_by == admin.id
    verified_at = sprint.payment_verified_at

    sprint = sl.verify_payment(sprint.id, admin)
    assert sprint.payment_verified_at == verified_at


def test_finish_requires_all_tasks_done(board, paid_sprint, startup, admin):
    from app.services import task_ordering

    sl.set_sprint_status(paid_sprint.id, admin, "in_progress")
    task_ordering.create_task(board.id, startup, {"title": "Deck"})

    with pytest.raises(PreconditionFailed):
        sl.finish_sprint(paid_sprint.id, startup)


def test_finish_from_wrong_status(paid_sprint, startup):
    with pytest.raises(InvalidStateTransition):
        sl.finish_sprint(paid_sprint.id, startup)


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════


def test_three_of_four_milestones_is_75_percent(sprint, admin):
    milestones = [
        sl.add_milestone(sprint.id, admin, {"name": name})
        for name in ("Discovery", "Deck", "Model", "Outreach")
    ]
    for milestone in milestones[:3]:
        sl.update_milestone_status(sprint.id, milestone.id, admin, "completed")

    sprint = sl.get_sprint(sprint.id)
    assert sprint.total_milestones == 4
    assert sprint.completed_milestones == 3
    assert sprint.progress_percentage == 75
    assert sprint.current_phase == "Outreach"


def test_milestones_on_create(approved_questionnaire, admin, package_options):
    sprint = sl.create_sprint_from_questionnaire(
        approved_questionnaire.id, admin, package_options=package_options,
        milestones=["Discovery", {"name": "Delivery", "status": "completed"}],
    )
    assert sprint.total_milestones == 2
    assert sprint.progress_percentage == 50


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


def test_api_create_and_select(client, approved_questionnaire, admin_headers, startup_headers, package_options):
    res = client.post(BASE, json={"questionnaire_id": approved_questionnaire.id,
                                  "package_options": package_options, "name": "Seed"},
                      headers=admin_headers)
    assert res.status_code == 201
    sprint = res.get_json()
    assert sprint["status"] == "available"
    assert sprint["status_history"][0]["status"] == "available"

    res = client.post(f"{BASE}/{sprint['id']}/select-package", json={"package_id": "basic"},
                      headers=startup_headers)
    assert res.status_code == 200
    assert res.get_json()["selected_package"]["id"] == "basic"

    res = client.post(f"{BASE}/{sprint['id']}/select-package", json={"package_id": "basic"},
                      headers=startup_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_ALREADY_SELECTED"


def test_api_meeting_before_documents_is_409(client, sprint, startup, startup_headers):
    sl.select_package(sprint.id, "pro", startup)

    res = client.post(f"{BASE}/{sprint.id}/meeting",
                      json={"meeting_url": "https://meet/x", "scheduled_at": "2026-11-02T10:00:00Z"},
                      headers=startup_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_DOCUMENTS_REQUIRED"


def test_api_create_needs_questionnaire_id(client, admin_headers):
    res = client.post(BASE, json={"package_options": []}, headers=admin_headers)
    assert res.status_code == 422


def test_api_startup_sees_only_own_sprints(client, sprint, startup_headers, other_startup_headers):
    assert client.get(BASE, headers=startup_headers).get_json()["total"] == 1
    assert client.get(BASE, headers=other_startup_headers).get_json()["total"] == 0
    assert client.get(f"{BASE}/{sprint.id}", headers=other_startup_headers).status_code == 404
