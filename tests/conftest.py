"""
Shared pytest fixtures for the FieldOps task-engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_project / make_task: ORM factories
    - director, supervisor, executor, member, outsider: users by role
    - project, task: a project supervised by ``supervisor`` with one task
      executed by ``executor`` (``member`` on the team)
    - as_user: builds the X-User-Id header for API calls
"""

import itertools

import pytest

from fieldops import create_app
from fieldops.models import db as _db
from fieldops.models.auth import User
from fieldops.models.checklist import migrate_checklist
from fieldops.models.project import Project, ProjectResponsible
from fieldops.models.task import Task, TaskMember


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


@pytest.fixture()
def as_user():
    """Return the actor header dict for a user."""
    def _headers(user):
        return {"X-User-Id": str(user.id)}
    return _headers


# ── ORM factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    counter = itertools.count(1)

    def _make(role="EXECUTOR", name=None, **kw):
        n = next(counter)
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role.lower()}{n}@fieldops.test",
            role=role,
            **kw,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_project():
    def _make(name="Obra Centro", supervisor=None, responsibles=(), **kw):
        project = Project(
            name=name,
            supervisor_id=supervisor.id if supervisor else None,
            **kw,
        )
        for user in responsibles:
            project.responsibles.append(ProjectResponsible(user_id=user.id))
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def make_task():
    def _make(project, executor, name="Fundação", status="PENDENTE", checklist=None,
              members=(), insumos_value=0.0, **kw):
        task = Task(
            project_id=project.id,
            executor_id=executor.id,
            name=name,
            status=status,
            insumos_value=insumos_value,
            **kw,
        )
        if checklist is not None:
            task.set_checklist(migrate_checklist(checklist, None))
        for user in members:
            task.members.append(TaskMember(user_id=user.id))
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def director(make_user):
    return make_user("DIRETOR")


@pytest.fixture()
def supervisor(make_user):
    return make_user("SUPERVISOR")


@pytest.fixture()
def executor(make_user):
    return make_user("EXECUTOR")


@pytest.fixture()
def member(make_user):
    return make_user("COLABORADOR")


@pytest.fixture()
def outsider(make_user):
    return make_user("COLABORADOR", name="Outsider")


@pytest.fixture()
def project(make_project, supervisor):
    return make_project(supervisor=supervisor)


@pytest.fixture()
def task(make_task, project, executor, member):
    """Single task with checklist [{"texto": "A", "concluido": false}]."""
    return make_task(
        project, executor,
        checklist=[{"texto": "A", "concluido": False}],
        members=[member],
    )
