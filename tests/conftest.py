"""
Shared pytest fixtures for the PLM gate workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_project: factories for users and classified projects
    - headers: X-User-Id request headers for a user
"""

import pytest
import sqlalchemy as sa

from plm import create_app
from plm.auth import USER_HEADER
from plm.models import db as _db
from plm.models.auth import User
from plm.models.project import Project


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def session(app):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Create and commit a user with the given role."""
    counter = {"n": 0}

    def _make(role, **kw):
        counter["n"] += 1
        user = User(
            email=kw.pop("email", f"{role}{counter['n']}@example.com"),
            full_name=kw.pop("full_name", f"{role.replace('_', ' ').title()} {counter['n']}"),
            role=role,
            **kw,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def make_project():
    """Create a project through the service (classified, gate 1 opened and seeded)."""
    from plm.services.project_service import ProjectService

    def _make(revenue=1_000_000, risk_factor=2, creator=None, **kw):
        data = {"name": kw.pop("name", "Harbour Crane Retrofit"), "revenue": revenue, "risk_factor": risk_factor}
        data.update(kw)
        return ProjectService().create_project(data, creator=creator)

    return _make


@pytest.fixture()
def headers():
    def _headers(user):
        return {USER_HEADER: str(user.id)}
    return _headers


@pytest.fixture()
def force_gate():
    """Move a project to a gate directly in the store, bypassing the workflow."""
    def _force(project, gate_number):
        _db.session.execute(
            sa.update(Project).where(Project.id == project.id).values(current_gate=gate_number)
        )
        _db.session.commit()
        _db.session.refresh(project)
        return project
    return _force
