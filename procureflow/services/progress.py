"""
Progress Calculator.

Two formulas, selected by project scope:

Two-phase (personal projects):
    approval        = 20 × submitted/required documents + 80 × approved/total steps
    implementation  = 100 × completed/total tasks, only while status is one of
                      implementation | in_progress | active | completed
    overall         = approval while approval < 100,
                      afterwards min(100, 100 + implementation × 0.5)

Legacy (departmental and external projects):
    overall = 25 × document ratio + 35 × step ratio + trigger milestones
    trigger milestones, departmental: inventory 20, procurement 20
    trigger milestones, external:     inventory 15, procurement 15, compliance 10

Empty denominators count as a ratio of 0.
"""

import logging

from procureflow.models.project import IMPLEMENTATION_STATUSES
from procureflow.services.task_service import find_by_project

logger = logging.getLogger(__name__)

DOCUMENT_WEIGHT = 20
APPROVAL_STEP_WEIGHT = 80

LEGACY_DOCUMENT_WEIGHT = 25
LEGACY_APPROVAL_WEIGHT = 35
LEGACY_TRIGGER_WEIGHTS = {
    "departmental": {"inventory": 20, "procurement": 20},
    "external": {"inventory": 15, "procurement": 15, "compliance": 10},
}


def _ratio(part: int, total: int) -> float:
    return part / total if total else 0.0


def document_ratio(project) -> float:
    required = [d for d in project.documents if d.is_required]
    return _ratio(sum(1 for d in required if d.is_submitted), len(required))


def approval_step_ratio(project) -> float:
    steps = project.approval_steps
    return _ratio(sum(1 for s in steps if s.status == "approved"), len(steps))


def calculate_approval_progress(project) -> int:
    value = DOCUMENT_WEIGHT * document_ratio(project) + APPROVAL_STEP_WEIGHT * approval_step_ratio(project)
    return round(value)


def calculate_implementation_progress(project, tasks=None) -> int:
    if project.status not in IMPLEMENTATION_STATUSES:
        return 0
    if tasks is None:
        tasks = find_by_project(project.id) if project.id is not None else []
    completed = sum(1 for t in tasks if t.status == "completed")
    return round(100 * _ratio(completed, len(tasks)))


def calculate_overall_progress(approval: int, implementation: int) -> int:
    if approval < 100:
        return approval
    return round(min(100, 100 + implementation * 0.5))


def calculate_legacy_progress(project) -> int:
    value = LEGACY_DOCUMENT_WEIGHT * document_ratio(project)
    value += LEGACY_APPROVAL_WEIGHT * approval_step_ratio(project)
    weights = LEGACY_TRIGGER_WEIGHTS.get(project.scope, LEGACY_TRIGGER_WEIGHTS["departmental"])
    if project.inventory_completed:
        value += weights.get("inventory", 0)
    if project.procurement_completed:
        value += weights.get("procurement", 0)
    if project.compliance_completed:
        value += weights.get("compliance", 0)
    return round(min(100, value))


def update_two_phase_progress(project) -> dict:
    """Recompute and store the two-phase progress fields of *project*."""
    approval = calculate_approval_progress(project)
    implementation = calculate_implementation_progress(project)
    overall = calculate_overall_progress(approval, implementation)

    project.approval_progress = approval
    project.implementation_progress = implementation
    project.progress = overall
    return {"overall": overall, "approval": approval, "implementation": implementation}


def update_legacy_progress(project) -> dict:
    """Recompute and store progress using the legacy weighted formula."""
    approval = calculate_approval_progress(project)
    implementation = calculate_implementation_progress(project)
    overall = calculate_legacy_progress(project)

    project.approval_progress = approval
    project.implementation_progress = implementation
    project.progress = overall
    return {"overall": overall, "approval": approval, "implementation": implementation}


def recalculate_progress(project) -> dict:
    """Scope-dispatched progress refresh used after every workflow mutation."""
    if project.scope == "personal":
        result = update_two_phase_progress(project)
    else:
        result = update_legacy_progress(project)
    logger.debug("Progress recalculated: %s", result, extra={"project_id": project.id})
    return result
