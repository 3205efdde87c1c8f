"""
Workflow Template Service.

Matches configurable templates to projects and turns a template into an
approval chain.

Matching: an active ``project_workflow`` template applies when every step's
conditions accept the project. Among applicable templates the most specific
wins; each condition contributes to a template's score:

    project_category   exact match +10, "all" +1
    budget bounds      both set +5, one set +3
    departments        project department listed +5
    priority           exact match +2

When nothing applies the default templates are seeded and the default one
is returned.
"""

import logging

from sqlalchemy import select

from procureflow.constants.categories import map_to_unified_category
from procureflow.core.exceptions import NotFoundError
from procureflow.models import db
from procureflow.models.approval import WorkflowTemplate
from procureflow.models.directory import RoleLevel
from procureflow.models.project import APPROVAL_LEVELS, ProjectApprovalStep
from procureflow.services.approval_chain import LEVEL_FUNCTIONS

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "Standard Project Workflow"


# ── Matching ─────────────────────────────────────────────────────────────────


def _category_matches(expected, category):
    if expected in (None, "", "all"):
        return True
    return expected == category or map_to_unified_category(expected) == map_to_unified_category(category)


def step_matches(conditions: dict | None, *, category, budget, department_id, priority=None) -> bool:
    """True when a template step's conditions accept the project attributes."""
    c = conditions or {}
    if not _category_matches(c.get("project_category"), category):
        return False
    if c.get("min_budget") is not None and budget < c["min_budget"]:
        return False
    if c.get("max_budget") is not None and budget > c["max_budget"]:
        return False
    if c.get("departments") and department_id not in c["departments"]:
        return False
    if c.get("priority") and priority is not None and c["priority"] != priority:
        return False
    return True


def step_specificity(conditions: dict | None, *, category, priority=None) -> int:
    c = conditions or {}
    score = 0
    expected = c.get("project_category")
    if expected == "all":
        score += 1
    elif expected and _category_matches(expected, category):
        score += 10
    bounds = sum(1 for key in ("min_budget", "max_budget") if c.get(key) is not None)
    if bounds == 2:
        score += 5
    elif bounds == 1:
        score += 3
    if c.get("departments"):
        score += 5
    if c.get("priority") and c["priority"] == priority:
        score += 2
    return score


def template_score(template, *, category, budget, department_id, priority=None) -> int | None:
    """Specificity of *template* for the project, or None when it does not apply."""
    steps = template.ordered_steps
    if not steps:
        return None
    score = 0
    for step in steps:
        kwargs = {"category": category, "priority": priority}
        if not step_matches(step.get("conditions"), budget=budget, department_id=department_id, **kwargs):
            return None
        score += step_specificity(step.get("conditions"), **kwargs)
    return score


def find_template_for_project(category, budget, department_id, priority=None) -> WorkflowTemplate:
    templates = db.session.execute(
        select(WorkflowTemplate)
        .where(WorkflowTemplate.is_active.is_(True), WorkflowTemplate.document_type == "project_workflow")
        .order_by(WorkflowTemplate.id)
    ).scalars()

    best, best_score = None, -1
    for template in templates:
        score = template_score(
            template, category=category, budget=budget or 0, department_id=department_id, priority=priority,
        )
        if score is not None and score > best_score:
            best, best_score = template, score

    if best is not None:
        logger.debug("Template %s matched with score %d", best.name, best_score)
        return best

    seed_default_templates()
    default = WorkflowTemplate.query.filter_by(name=DEFAULT_TEMPLATE_NAME).first()
    if default is None:
        raise NotFoundError("WorkflowTemplate", detail="default template missing")
    return default


# ── Chain building ───────────────────────────────────────────────────────────


def build_chain_from_template(template, project, directory) -> list[ProjectApprovalStep]:
    """
    Attach the template's steps to *project* as its approval chain.

    Departments resolve through the directory (``hod`` is the project's own
    department). Steps owned by the creator's department when the creator is
    its HOD are left out; super-admin creators get an empty chain.
    """
    if project.approval_steps:
        return list(project.approval_steps)

    creator = project.created_by
    if creator is not None and creator.role_level >= RoleLevel.SUPER_ADMIN:
        return []
    hod_department_id = creator.department_id if creator is not None and creator.is_hod else None

    position = 0
    for step in template.ordered_steps:
        level = step.get("level")
        if level not in APPROVAL_LEVELS:
            logger.warning("Template %s has unknown level %r; skipped", template.name, level)
            continue
        if level == "hod":
            department = project.department
        else:
            department = directory.require_function(step.get("department_function") or LEVEL_FUNCTIONS[level])
        if hod_department_id is not None and department.id == hod_department_id:
            continue
        project.approval_steps.append(ProjectApprovalStep(
            position=position,
            level=level,
            department=department,
            status="pending",
            required=bool(step.get("is_required", True)),
        ))
        position += 1

    logger.info(
        "Chain built from template %s: %d step(s)", template.name, position,
        extra={"project_id": project.id},
    )
    return list(project.approval_steps)


# ── Seeding ──────────────────────────────────────────────────────────────────


def seed_default_templates():
    """
    Insert the default workflow templates. Safe to run multiple times:
    existing names are skipped.
    """
    created = 0
    for t in _get_default_templates():
        if not WorkflowTemplate.query.filter_by(name=t["name"]).first():
            db.session.add(WorkflowTemplate(**t))
            created += 1
    if created > 0:
        db.session.flush()
        logger.info("Seeded %d workflow templates", created)
    return created


def _get_default_templates() -> list[dict]:
    everything = {"project_category": "all"}
    return [
        {
            "name": DEFAULT_TEMPLATE_NAME,
            "description": "HOD and Project Management sign-off for any project.",
            "document_type": "project_workflow",
            "is_active": True,
            "is_default": True,
            "steps": [
                {"order": 1, "level": "hod", "department_function": None,
                 "is_required": True, "conditions": everything},
                {"order": 2, "level": "project_management", "department_function": "project_management",
                 "is_required": True, "conditions": everything},
            ],
        },
        {
            "name": "High Value Project Workflow",
            "description": "Full chain for projects above 25,000,000.",
            "document_type": "project_workflow",
            "is_active": True,
            "is_default": False,
            "steps": [
                {"order": 1, "level": "hod", "department_function": None,
                 "is_required": True, "conditions": {"project_category": "all", "min_budget": 25_000_001}},
                {"order": 2, "level": "project_management", "department_function": "project_management",
                 "is_required": True, "conditions": {"project_category": "all", "min_budget": 25_000_001}},
                {"order": 3, "level": "finance", "department_function": "finance",
                 "is_required": True, "conditions": {"project_category": "all", "min_budget": 25_000_001}},
                {"order": 4, "level": "executive", "department_function": "executive",
                 "is_required": True, "conditions": {"project_category": "all", "min_budget": 25_000_001}},
            ],
        },
    ]
