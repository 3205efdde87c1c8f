"""
Shared pytest fixtures for the procurement workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - org: departments, roles and users covering every department function
    - make_project: factory that creates a project through the service layer
"""

from types import SimpleNamespace

import pytest

from procureflow import create_app
from procureflow.models import db as _db
from procureflow.models.directory import Department, DepartmentFunction, Role, RoleLevel, User


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


# ── ORM Helper Factories ─────────────────────────────────────────────────


def _department(name, code, function):
    d = Department(name=name, code=code, function=function)
    _db.session.add(d)
    _db.session.flush()
    return d


def _role(name, level):
    r = Role(name=name, display_name=name.replace("_", " ").title(), level=level)
    _db.session.add(r)
    _db.session.flush()
    return r


def _user(email, department, role, full_name=None):
    u = User(email=email, full_name=full_name or email.split("@")[0], department=department, role=role)
    _db.session.add(u)
    _db.session.flush()
    return u


@pytest.fixture()
def org():
    """
    Minimal organisation: one department per workflow function plus
    Engineering as the general requesting department.
    """
    depts = {
        "engineering": _department("Engineering", "ENG", DepartmentFunction.GENERAL),
        "finance": _department("Finance & Accounting", "FIN", DepartmentFunction.FINANCE),
        "executive": _department("Executive Office", "EXE", DepartmentFunction.EXECUTIVE),
        "legal": _department("Legal & Compliance", "LEG", DepartmentFunction.LEGAL_COMPLIANCE),
        "pm": _department("Project Management", "PMO", DepartmentFunction.PROJECT_MANAGEMENT),
        "operations": _department("Operations", "OPS", DepartmentFunction.OPERATIONS),
        "procurement": _department("Procurement", "PRC", DepartmentFunction.PROCUREMENT),
    }
    roles = {
        "super_admin": _role("super_admin", RoleLevel.SUPER_ADMIN),
        "hod": _role("hod", RoleLevel.HOD),
        "manager": _role("manager", RoleLevel.MANAGER),
        "staff": _role("staff", RoleLevel.STAFF),
    }
    hods = {key: _user(f"hod.{key}@example.com", dept, roles["hod"]) for key, dept in depts.items()}
    ns = SimpleNamespace(
        depts=SimpleNamespace(**depts),
        roles=SimpleNamespace(**roles),
        hods=SimpleNamespace(**hods),
        staff=_user("staff@example.com", depts["engineering"], roles["staff"]),
        eng_manager=_user("manager@example.com", depts["engineering"], roles["manager"]),
        pm_staff=_user("pm.staff@example.com", depts["pm"], roles["staff"]),
        admin=_user("admin@example.com", depts["executive"], roles["super_admin"]),
    )
    _db.session.commit()
    return ns


@pytest.fixture()
def make_project(org):
    """Factory: create a project through ``create_project`` with sensible defaults."""
    from procureflow.services.project_service import create_project

    def _make(**kw):
        params = {
            "name": "Workstation refresh",
            "department_id": org.depts.engineering.id,
            "created_by_id": org.staff.id,
            "budget": 800_000,
            "scope": "personal",
            "category": "office_equipment",
        }
        params.update(kw)
        return create_project(**params)

    return _make


@pytest.fixture()
def approve_all(org):
    """Factory: approve steps in chain order, stopping before level *until*."""
    return lambda project, until=None: _approve_all(project, org, until)


def _approve_all(project, org, until=None):
    from procureflow.services.approval_executor import approve_project

    approvers = {
        "project_management": org.hods.pm.id,
        "legal_compliance": org.hods.legal.id,
        "finance": org.hods.finance.id,
        "executive": org.admin.id,
        "budget_allocation": org.hods.finance.id,
    }
    for step in list(project.approval_steps):
        if step.status != "pending":
            continue
        if step.level == until:
            break
        approver = approvers.get(step.level, org.hods.engineering.id)
        project = approve_project(project.id, approver, step.level, comments="ok")
    return project


@pytest.fixture()
def submit_all_documents():
    """Factory: submit every required document of a project."""
    return _submit_all_documents


def _submit_all_documents(project, user_id):
    from procureflow.services.project_service import submit_document

    for doc in list(project.documents):
        submit_document(project.id, doc.document_type, user_id, reference=f"{doc.document_type}.pdf")
    return project
