"""
Shared pytest fixtures for the Employee Onboarding Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for directory users
    - org: a small org chart (HR, manager, supervisor, employees, outsider)
    - day1_template: "Day 1 Setup" with three items, verification required
    - as_user: X-User-Id header helper for API tests
"""

import pytest

from onboarding import create_app
from onboarding.models import db as _db
from onboarding.models.directory import User


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory fixtures ───────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user("ana", role="employee", department="eng", ...)."""
    counter = {"n": 0}

    def _make(name=None, **fields):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        fields.setdefault("role", "employee")
        user = User(email=f"{name}@example.com", full_name=name.title(), **fields)
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def org(make_user):
    """A small org chart.

    hr           — HR, no department
    manager      — manager of "engineering"
    supervisor   — supervisor in "engineering", team "platform"
    employee     — reports to supervisor; intern in stage "prepare"
    employee2    — reports to supervisor
    employee3    — reports to supervisor
    outsider_sup — supervisor in "sales" with no reports in engineering
    """
    hr = make_user("hr", role="hr")
    manager = make_user("manager", role="manager", department="engineering")
    supervisor = make_user("supervisor", role="supervisor", department="engineering", team_id="platform")
    employee = make_user(
        "employee", department="engineering", team_id="platform",
        supervisor_id=supervisor.id, program_type="intern", stage="prepare",
    )
    employee2 = make_user(
        "employee2", department="engineering", team_id="platform",
        supervisor_id=supervisor.id, program_type="graduate", stage="orient",
    )
    employee3 = make_user(
        "employee3", department="engineering", team_id="platform",
        supervisor_id=supervisor.id, program_type="intern", stage="prepare",
    )
    outsider_sup = make_user("outsider", role="supervisor", department="sales", team_id="field")
    return {
        "hr": hr,
        "manager": manager,
        "supervisor": supervisor,
        "employee": employee,
        "employee2": employee2,
        "employee3": employee3,
        "outsider_sup": outsider_sup,
    }


@pytest.fixture()
def day1_template(org):
    """'Day 1 Setup' — three employee-controlled items, verification required."""
    from onboarding.services import template_service

    return template_service.create_template(org["hr"].id, {
        "title": "Day 1 Setup",
        "description": "Laptop, accounts and badge",
        "program_type": "all",
        "stage": "prepare",
        "requires_verification": True,
        "items": [
            {"title": "Collect laptop", "phase": "prepare"},
            {"title": "Activate accounts", "phase": "prepare"},
            {"title": "Pick up badge", "phase": "orient"},
        ],
    })


@pytest.fixture()
def as_user():
    """Header dict for acting as ``user`` through the API."""
    def _headers(user):
        return {"X-User-Id": str(user.id)}
    return _headers
