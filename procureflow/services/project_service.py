"""
Project Service.

Business logic for:
    - Code generation:     <DEPTCODE><YYYY><NNNN>, sequential per department and year
    - Project creation:    cached threshold, approval chain, required documents
    - Document submission: versioned, feeds approval progress
    - Team membership:     unique per project/user, soft removal
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from procureflow.constants.categories import map_to_unified_category
from procureflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from procureflow.models import db
from procureflow.models.directory import Department, User
from procureflow.models.project import (
    PROJECT_SCOPES,
    TEAM_MEMBER_ROLES,
    Project,
    ProjectDocument,
    ProjectItem,
    TeamMember,
    pending_status_for_level,
)
from procureflow.services.approval_chain import generate_approval_chain
from procureflow.services.directory import get_directory
from procureflow.services.helpers.lookups import commit_project, get_or_404
from procureflow.services.phase_machine import advance_phase
from procureflow.services.progress import recalculate_progress
from procureflow.services.threshold import ensure_project_threshold
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_DOCUMENTS = {
    "personal": ("project_proposal", "budget_breakdown"),
    "departmental": ("project_proposal", "budget_breakdown", "departmental_memo"),
    "external": ("project_proposal", "budget_breakdown", "vendor_quotation", "legal_agreement"),
}

TEAM_PERMISSION_FLAGS = ("can_edit_project", "can_manage_team", "can_view_financials", "can_approve_tasks")


# ── Code Generation ──────────────────────────────────────────────────────────


def generate_project_code(department: Department, year: int | None = None) -> str:
    """Generate next project code for *department*: ENG20260001, ENG20260002, ..."""
    year = year or datetime.now(timezone.utc).year
    prefix = f"{department.code.upper()}{year}"
    count = (
        db.session.query(func.count(Project.id))
        .filter(Project.code.like(f"{prefix}%"))
        .scalar()
    ) or 0
    return f"{prefix}{count + 1:04d}"


# ── Creation ─────────────────────────────────────────────────────────────────


def _build_items(items):
    built = []
    for raw in items or []:
        if not raw.get("name"):
            raise ValidationError("Item name is required", {"items": raw})
        quantity = int(raw.get("quantity", 1))
        unit_price = float(raw.get("unit_price", 0))
        if quantity < 1 or unit_price < 0:
            raise ValidationError("Item quantity must be positive and price non-negative", {"items": raw})
        built.append(ProjectItem(
            name=raw["name"],
            description=raw.get("description", ""),
            quantity=quantity,
            unit_price=unit_price,
            total_price=quantity * unit_price,
            category=raw.get("category"),
        ))
    return built


def create_project(
    *,
    name: str,
    department_id: int,
    created_by_id: int,
    budget,
    scope: str = "personal",
    category: str | None = None,
    priority: str = "medium",
    description: str = "",
    requires_budget_allocation: bool | None = None,
    project_manager_id: int | None = None,
    start_date=None,
    end_date=None,
    items: list[dict] | None = None,
    required_documents: list[str] | None = None,
    workflow_template_id: int | None = None,
) -> Project:
    """
    Create a project, generate its approval chain and open the approval phase.

    Raises:
        ValidationError: bad scope, name, budget or items
        NotFoundError:   unknown department, creator or template
        ConflictError:   project code collision
    """
    if not name or not name.strip():
        raise ValidationError("Project name is required", {"name": "missing"})
    if scope not in PROJECT_SCOPES:
        raise ValidationError(f"Invalid scope: {scope!r}", {"scope": sorted(PROJECT_SCOPES)})
    if start_date and end_date and end_date < start_date:
        raise ValidationError("End date cannot be before start date", {"end_date": str(end_date)})

    department = get_or_404(Department, department_id)
    get_or_404(User, created_by_id)

    project = Project(
        code=generate_project_code(department),
        name=name.strip(),
        description=description,
        scope=scope,
        category=map_to_unified_category(category),
        priority=priority,
        department=department,
        created_by_id=created_by_id,
        project_manager_id=project_manager_id,
        start_date=start_date,
        end_date=end_date,
        budget=budget,
        currency=current_app.config.get("DEFAULT_CURRENCY", "NGN"),
        requires_budget_allocation=requires_budget_allocation,
        status="planning",
        workflow_phase="planning",
    )
    project.items.extend(_build_items(items))
    ensure_project_threshold(project)

    doc_types = required_documents if required_documents is not None else DEFAULT_REQUIRED_DOCUMENTS[scope]
    for doc_type in doc_types:
        project.documents.append(ProjectDocument(document_type=doc_type, is_required=True))

    db.session.add(project)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Project", "code", project.code)

    directory = get_directory()
    if workflow_template_id is not None:
        from procureflow.models.approval import WorkflowTemplate
        from procureflow.services.workflow_template_service import build_chain_from_template
        template = get_or_404(WorkflowTemplate, workflow_template_id)
        build_chain_from_template(template, project, directory)
    else:
        generate_approval_chain(project, directory)

    advance_phase(project, "approval", "project_created", triggered_by=created_by_id,
                  metadata={"scope": scope, "threshold": project.budget_threshold})

    current = project.current_step
    if current is not None:
        project.status = pending_status_for_level(current.level)
    elif project.requires_budget_allocation and not project.has_budget_allocation:
        project.status = "pending_budget_allocation"
    else:
        project.status = "approved"

    recalculate_progress(project)
    emit_event("project.created", project, actor_id=created_by_id, scope=scope,
               threshold=project.budget_threshold)
    if project.status == "approved":
        emit_event("approval.completed", project, status="approved", approver_id=None)

    commit_project(project)
    logger.info(
        "Project %s created (%s, %s, %d steps)",
        project.code, scope, project.budget_threshold, len(project.approval_steps),
        extra={"project_id": project.id, "project_code": project.code},
    )
    dispatch_after_commit()
    return project


# ── Documents ────────────────────────────────────────────────────────────────


def submit_document(project_id: int, document_type: str, user_id: int, reference: str | None = None):
    """Mark a required document submitted (a resubmission adds a new version)."""
    project = get_or_404(Project, project_id)
    document = next((d for d in project.documents if d.document_type == document_type), None)
    if document is None:
        raise NotFoundError("ProjectDocument", document_type, detail=f"project {project.code}")

    now = datetime.now(timezone.utc)
    versions = list(document.document_versions or [])
    versions.append({"version": len(versions) + 1, "reference": reference, "submitted_at": now.isoformat()})
    document.document_versions = versions
    document.is_submitted = True
    document.submitted_at = now
    document.submitted_by_id = user_id
    document.approval_status = "pending"

    recalculate_progress(project)
    commit_project(project)
    return document


# ── Team ─────────────────────────────────────────────────────────────────────


def add_team_member(project_id: int, user_id: int, *, role: str = "other",
                    assigned_by_id: int | None = None, permissions: dict | None = None) -> TeamMember:
    project = get_or_404(Project, project_id)
    get_or_404(User, user_id)
    if role not in TEAM_MEMBER_ROLES:
        raise ValidationError(f"Invalid team role: {role!r}", {"role": sorted(TEAM_MEMBER_ROLES)})

    member = TeamMember.query.filter_by(project_id=project.id, user_id=user_id).first()
    if member is not None and member.is_active:
        raise ConflictError("TeamMember", "user_id", str(user_id))
    if member is None:
        member = TeamMember(project_id=project.id, user_id=user_id)
        db.session.add(member)

    member.role = role
    member.status = "active"
    member.is_active = True
    member.assigned_by_id = assigned_by_id
    member.assigned_at = datetime.now(timezone.utc)
    for flag in TEAM_PERMISSION_FLAGS:
        setattr(member, flag, bool((permissions or {}).get(flag, False)))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("TeamMember", "user_id", str(user_id))
    return member


def remove_team_member(project_id: int, user_id: int) -> TeamMember:
    """Soft removal: the membership row stays with status ``removed``."""
    member = TeamMember.query.filter_by(project_id=project_id, user_id=user_id).first()
    if member is None or member.status == "removed":
        raise NotFoundError("TeamMember", user_id, detail=f"project id={project_id}")
    member.status = "removed"
    member.is_active = False
    db.session.commit()
    return member
