"""
Shared pytest fixtures for the Startup Backoffice Platform test suite.

Every test runs inside an app context against a freshly created in-memory
SQLite schema, with the memory notifier and realtime recorders emptied.

Fixtures:
    app, client                          testing app (one per session) and its client
    admin, startup, other_startup        Actor objects (ids 1, 100, 200)
    *_headers                            Bearer headers minted for those actors
    notifications, realtime_events       collaborator recorders
    questionnaire_content                fresh copy of a valid payload
    approved_questionnaire .. board      lifecycle stages, each built on the last
"""

import copy

import pytest

from app import create_app
from app.auth import Actor, ActorRole
from app.models import db as _db
from app.services import board_service
from app.services import questionnaire_lifecycle as ql
from app.services import sprint_lifecycle as sl
from app.services.jwt_service import generate_access_token

ADMIN_ID = 1
STARTUP_ID = 100
OTHER_STARTUP_ID = 200

QUESTIONNAIRE_CONTENT = {
    "basic_info": {
        "startup_name": "Acme Robotics",
        "task_type": "fundraising",
        "task_description": "Prepare the seed round data room and pitch deck",
        "time_commitment": "full-time",
        "startup_stage": "seed",
    },
    "requirements": {
        "budget_range": "$50,000+",
        "timeline": "1-2 weeks",
    },
    "service_selection": {
        "selected_service": "fundraising-prep",
        "urgency": "high",
    },
}

PACKAGE_OPTIONS = [
    {
        "id": "basic",
        "name": "Basic",
        "description": "Pitch deck review",
        "price": 2500,
        "currency": "USD",
        "features": ["Deck review"],
    },
    {
        "id": "pro",
        "name": "Pro",
        "description": "Deck, model and investor list",
        "price": 7500,
        "currency": "USD",
        "is_recommended": True,
    },
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(scope="session")
def _schema(app):
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _schema):
    """App context per test; schema rebuilt and collaborators cleared afterwards."""
    with app.app_context():
        app.extensions["notifier"].transport.clear()
        app.extensions["realtime"].backend.clear()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    return app.test_client()


# ── Actors & auth headers ────────────────────────────────────────────────


@pytest.fixture()
def admin():
    return Actor(id=ADMIN_ID, role=ActorRole.ADMIN)


@pytest.fixture()
def startup():
    return Actor(id=STARTUP_ID, role=ActorRole.STARTUP)


@pytest.fixture()
def other_startup():
    return Actor(id=OTHER_STARTUP_ID, role=ActorRole.STARTUP)


def _bearer(actor_id, role):
    return {"Authorization": f"Bearer {generate_access_token(actor_id, role)}"}


@pytest.fixture()
def admin_headers():
    return _bearer(ADMIN_ID, ActorRole.ADMIN)


@pytest.fixture()
def startup_headers():
    return _bearer(STARTUP_ID, ActorRole.STARTUP)


@pytest.fixture()
def other_startup_headers():
    return _bearer(OTHER_STARTUP_ID, ActorRole.STARTUP)


# ── Collaborator recorders ───────────────────────────────────────────────


@pytest.fixture()
def notifications(app):
    """MemoryTransport; `.sent` holds every notification request."""
    return app.extensions["notifier"].transport


@pytest.fixture()
def realtime_events(app):
    """MemoryPublisher; `.events` holds every published envelope."""
    return app.extensions["realtime"].backend


# ── Lifecycle fixtures ───────────────────────────────────────────────────


@pytest.fixture()
def questionnaire_content():
    """Return a fresh, valid questionnaire payload on each call."""
    def _make(**sections):
        content = copy.deepcopy(QUESTIONNAIRE_CONTENT)
        for section, values in sections.items():
            content[section].update(values)
        return content
    return _make


@pytest.fixture()
def package_options():
    return copy.deepcopy(PACKAGE_OPTIONS)


@pytest.fixture()
def approved_questionnaire(questionnaire_content, startup, admin):
    q = ql.submit_questionnaire(questionnaire_content(), startup)
    return ql.review_questionnaire(q.id, admin, status="approved", notes="Strong team")


@pytest.fixture()
def sprint(approved_questionnaire, admin, package_options):
    return sl.create_sprint_from_questionnaire(
        approved_questionnaire.id,
        admin,
        package_options=package_options,
        name="Seed Round Sprint",
        sprint_type="fundraising",
        estimated_duration=14,
    )


@pytest.fixture()
def paid_sprint(sprint, startup, admin):
    sl.select_package(sprint.id, "pro", startup)
    return sl.verify_payment(sprint.id, admin)


@pytest.fixture()
def board(paid_sprint, startup):
    return board_service.get_or_create_board_for_sprint(paid_sprint.id, startup)
