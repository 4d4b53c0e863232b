"""
Questionnaire lifecycle — submit, edit, review, link and downstream steps.

Service-level tests call ``app.services.questionnaire_lifecycle`` directly;
API tests go through ``/api/v1/questionnaires``.
"""

import pytest

from app.core.exceptions import (
    AccessDenied,
    AlreadyLinkedError,
    InvalidStateTransition,
    MissingFieldError,
    NotFoundError,
    ValidationError,
)
from app.services import questionnaire_lifecycle as ql

BASE = "/api/v1/questionnaires"


# ═════════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════════


def test_startup_submission_is_owned_and_submitted(questionnaire_content, startup, notifications):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    assert q.status == "submitted"
    assert q.submitted_at is not None
    assert q.owner_id == startup.id
    assert q.temporary_id is None
    assert "fundraising" in q.tags
    assert notifications.sent[-1]["template"] == "questionnaire_submitted"
    assert notifications.sent[-1]["to"] == {"type": "admin_team"}


def test_anonymous_submission_gets_temporary_id(questionnaire_content):
    q = ql.submit_questionnaire(questionnaire_content())

    assert q.owner_id is None
    assert q.temporary_id


@pytest.mark.parametrize("section", ["basic_info", "requirements", "service_selection"])
def test_submit_requires_every_section(questionnaire_content, startup, section):
    content = questionnaire_content()
    del content[section]

    with pytest.raises(ValidationError) as exc:
        ql.submit_questionnaire(content, startup)
    assert section in exc.value.details


def test_submit_rejects_unknown_timeline(questionnaire_content, startup):
    content = questionnaire_content(requirements={"timeline": "yesterday"})

    with pytest.raises(ValidationError) as exc:
        ql.submit_questionnaire(content, startup)
    assert "requirements.timeline" in exc.value.details


def test_custom_request_needs_description(questionnaire_content, startup):
    content = questionnaire_content(service_selection={"is_custom": True, "custom_request": ""})

    with pytest.raises(ValidationError) as exc:
        ql.submit_questionnaire(content, startup)
    assert "service_selection.custom_request" in exc.value.details


def test_draft_skips_validation(startup, notifications):
    q = ql.submit_questionnaire({"basic_info": {"startup_name": "Half done"}}, startup, draft=True)

    assert q.status == "draft"
    assert q.submitted_at is None
    assert notifications.sent == []


def test_admin_cannot_submit(questionnaire_content, admin):
    with pytest.raises(AccessDenied):
        ql.submit_questionnaire(questionnaire_content(), admin)


# ═════════════════════════════════════════════════════════════════════════════
# Edit & resubmit
# ═════════════════════════════════════════════════════════════════════════════


def test_draft_edit_resubmits(questionnaire_content, startup):
    q = ql.submit_questionnaire({}, startup, draft=True)

    q = ql.update_questionnaire(q.id, questionnaire_content(), startup)
    assert q.status == "submitted"
    assert q.submitted_at is not None


def test_revision_requested_edit_resubmits(questionnaire_content, startup, admin):
    q = ql.submit_questionnaire(questionnaire_content(), startup)
    ql.review_questionnaire(q.id, admin, status="revision_requested", revision_notes="Add metrics")
    first_submission = q.submitted_at

    q = ql.update_questionnaire(
        q.id, questionnaire_content(basic_info={"task_description": "Now with metrics"}), startup,
    )
    assert q.status == "submitted"
    assert q.submitted_at >= first_submission
    assert q.basic_info["task_description"] == "Now with metrics"


@pytest.mark.parametrize("review_status", ["approved", "rejected", "under_review"])
def test_edit_outside_editable_states_fails(questionnaire_content, startup, admin, review_status):
    q = ql.submit_questionnaire(questionnaire_content(), startup)
    ql.review_questionnaire(q.id, admin, status=review_status, rejection_reason="Out of scope")

    with pytest.raises(InvalidStateTransition):
        ql.update_questionnaire(q.id, questionnaire_content(), startup)


def test_anonymous_edit_needs_matching_token(questionnaire_content):
    q = ql.submit_questionnaire({}, None, draft=True)

    with pytest.raises(NotFoundError):
        ql.update_questionnaire(q.id, questionnaire_content(), None, temporary_id="wrong")
    q = ql.update_questionnaire(q.id, questionnaire_content(), None, temporary_id=q.temporary_id)
    assert q.status == "submitted"


# ═════════════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════════════


def test_approval_stores_priority_score(questionnaire_content, startup, admin, notifications):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    q = ql.review_questionnaire(q.id, admin, status="approved", notes="Great fit")
    assert q.status == "approved"
    assert q.priority_score == 35
    assert q.reviewed_by == admin.id
    assert q.admin_notes == "Great fit"
    assert notifications.sent[-1]["template"] == "questionnaire_approved"
    assert notifications.sent[-1]["to"] == {"id": startup.id, "type": "startup"}


def test_rejection_requires_reason(questionnaire_content, startup, admin):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    with pytest.raises(MissingFieldError):
        ql.review_questionnaire(q.id, admin, status="rejected", rejection_reason="   ")
    q = ql.get_questionnaire(q.id)
    assert q.status == "submitted"

    q = ql.review_questionnaire(q.id, admin, status="rejected", rejection_reason="Too early")
    assert q.status == "rejected"
    assert q.rejection_reason == "Too early"


def test_reviewing_approved_questionnaire_again_fails(approved_questionnaire, admin):
    with pytest.raises(InvalidStateTransition):
        ql.review_questionnaire(approved_questionnaire.id, admin, status="approved")


def test_draft_is_not_reviewable(startup, admin):
    q = ql.submit_questionnaire({}, startup, draft=True)

    with pytest.raises(InvalidStateTransition):
        ql.review_questionnaire(q.id, admin, status="under_review")


def test_review_rejects_unknown_target(questionnaire_content, startup, admin):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    with pytest.raises(ValidationError):
        ql.review_questionnaire(q.id, admin, status="sprint_created")


def test_startup_cannot_review(questionnaire_content, startup):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    with pytest.raises(AccessDenied):
        ql.review_questionnaire(q.id, startup, status="approved")


def test_under_review_then_approved(questionnaire_content, startup, admin):
    q = ql.submit_questionnaire(questionnaire_content(), startup)
    ql.review_questionnaire(q.id, admin, status="under_review")

    q = ql.review_questionnaire(q.id, admin, status="approved")
    assert q.status == "approved"
    assert 0 <= q.priority_score <= 100


# ═════════════════════════════════════════════════════════════════════════════
# Link to owner
# ═════════════════════════════════════════════════════════════════════════════


def test_link_then_link_again_fails(questionnaire_content):
    q = ql.submit_questionnaire(questionnaire_content())
    token = q.temporary_id

    linked = ql.link_to_owner(token, 555)
    assert linked.owner_id == 555
    assert linked.temporary_id is None
    assert linked.linked_at is not None

    with pytest.raises(AlreadyLinkedError):
        ql.link_to_owner(token, 777)
    assert ql.get_questionnaire(q.id).owner_id == 555


def test_link_unknown_token_is_not_found():
    with pytest.raises(NotFoundError):
        ql.link_to_owner("00000000-0000-0000-0000-000000000000", 555)


def test_link_requires_token():
    with pytest.raises(MissingFieldError):
        ql.link_to_owner("", 555)


# ═════════════════════════════════════════════════════════════════════════════
# Access & listing
# ═════════════════════════════════════════════════════════════════════════════


def test_other_startup_cannot_see_questionnaire(questionnaire_content, startup, other_startup):
    q = ql.submit_questionnaire(questionnaire_content(), startup)

    with pytest.raises(NotFoundError):
        ql.get_for_actor(q.id, other_startup)


def test_admin_list_orders_by_priority(questionnaire_content, startup, other_startup, admin):
    low = ql.submit_questionnaire(
        questionnaire_content(basic_info={"task_type": "branding", "time_commitment": "part-time"},
                              requirements={"budget_range": "< $5,000", "timeline": "6+ months"}),
        other_startup,
    )
    high = ql.submit_questionnaire(questionnaire_content(), startup)
    ql.review_questionnaire(low.id, admin, status="approved")
    ql.review_questionnaire(high.id, admin, status="approved")

    ids = [q.id for q in ql.list_questionnaires(admin).all()]
    assert ids == [high.id, low.id]
    assert [q.id for q in ql.list_questionnaires(other_startup).all()] == [low.id]


def test_internal_notes_and_intake_meeting(approved_questionnaire, admin):
    q = ql.add_internal_note(approved_questionnaire.id, admin, "Founder has prior exit")
    assert q.internal_notes[0]["note"] == "Founder has prior exit"

    q = ql.schedule_intake_meeting(q.id, admin, note="Call booked for Monday")
    assert q.status == "meeting_scheduled"
    assert len(q.internal_notes) == 2


# ═════════════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════════════


def test_api_anonymous_submit_and_fetch_by_token(client, questionnaire_content):
    res = client.post(BASE, json=questionnaire_content())
    assert res.status_code == 201
    body = res.get_json()
    assert body["status"] == "submitted"
    assert "internal_notes" not in body

    res = client.get(f"{BASE}/{body['id']}")
    assert res.status_code == 404
    res = client.get(f"{BASE}/{body['id']}?temporary_id={body['temporary_id']}")
    assert res.status_code == 200


def test_api_incomplete_submission_is_422(client, startup_headers):
    res = client.post(BASE, json={"basic_info": {"startup_name": "x"}}, headers=startup_headers)
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_VALIDATION"


def test_api_review_requires_admin(client, questionnaire_content, startup_headers, admin_headers):
    q = client.post(BASE, json=questionnaire_content(), headers=startup_headers).get_json()

    res = client.post(f"{BASE}/{q['id']}/review", json={"status": "approved"}, headers=startup_headers)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"

    res = client.post(f"{BASE}/{q['id']}/review", json={"status": "approved"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()["priority_score"] == 35

    res = client.post(f"{BASE}/{q['id']}/review", json={"status": "rejected",
                                                        "rejection_reason": "No"},
                      headers=admin_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_INVALID_STATE_TRANSITION"


def test_api_reject_without_reason_is_422(client, questionnaire_content, startup_headers, admin_headers):
    q = client.post(BASE, json=questionnaire_content(), headers=startup_headers).get_json()

    res = client.post(f"{BASE}/{q['id']}/review", json={"status": "rejected"}, headers=admin_headers)
    assert res.status_code == 422
    assert res.get_json()["code"] == "ERR_MISSING_FIELD"


def test_api_link_twice(client, questionnaire_content, startup_headers):
    q = client.post(BASE, json=questionnaire_content()).get_json()

    res = client.post(f"{BASE}/link", json={"temporary_id": q["temporary_id"]}, headers=startup_headers)
    assert res.status_code == 200
    assert res.get_json()["owner_id"] == 100

    res = client.post(f"{BASE}/link", json={"temporary_id": q["temporary_id"]}, headers=startup_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ERR_ALREADY_LINKED"


def test_api_list_requires_auth(client):
    res = client.get(BASE)
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"
