"""
Approval Chain Executor.

Approve or reject the single current step of a project's approval chain.

Rules:
    - The acted-on step must be pending at the requested level
      (NotFoundError otherwise) and must be the current step, i.e. the first
      pending one (InvalidStateError otherwise).
    - Nothing can be approved while the project awaits revision.
    - After an approval, if no required step other than budget allocation is
      still pending, status becomes ``pending_budget_allocation`` (allocation
      required and not landed) or ``approved``; otherwise it names the next
      level, e.g. ``pending_finance_approval``.
    - A rejection sets ``revision_required`` and leaves later steps untouched.
"""

import logging
from datetime import datetime, timezone

from procureflow.core.exceptions import InvalidStateError, NotFoundError
from procureflow.models.project import Project, pending_status_for_level
from procureflow.services.helpers.history import append_history
from procureflow.services.helpers.lookups import commit_project, get_or_404
from procureflow.services.phase_machine import advance_phase
from procureflow.services.progress import recalculate_progress
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)


def _actionable_step(project, level):
    step = project.find_step(level, status="pending")
    if step is None:
        raise NotFoundError("ApprovalStep", detail=f"no pending {level!r} step on project {project.code}")
    if project.status == "revision_required":
        raise InvalidStateError(
            f"Project {project.code} is awaiting revision; resubmit before approving",
            current_status=project.status,
        )
    current = project.current_step
    if current is not step:
        raise InvalidStateError(
            f"Step {level!r} is not the current approval step (current: {current.level!r})",
            current_status=project.status,
        )
    return step


def remaining_required_steps(project):
    """Pending required steps, budget allocation excluded."""
    return [
        s for s in project.approval_steps
        if s.status == "pending" and s.required and s.level != "budget_allocation"
    ]


def approve_project(project_id, approver_id, level, comments=None):
    project = get_or_404(Project, project_id)
    step = _actionable_step(project, level)

    step.status = "approved"
    step.approver_id = approver_id
    step.comments = comments
    step.approved_at = datetime.now(timezone.utc)

    remaining = remaining_required_steps(project)
    if remaining:
        project.status = pending_status_for_level(project.current_step.level)
        next_step = project.current_step
    else:
        if project.requires_budget_allocation and not project.has_budget_allocation:
            project.status = "pending_budget_allocation"
            next_step = project.find_step("budget_allocation", status="pending")
        else:
            project.status = "approved"
            next_step = None
        advance_phase(
            project, "approval", "approval_completed", triggered_by=approver_id,
            metadata={"final_level": level, "status": project.status},
        )

    recalculate_progress(project)
    emit_event(
        "approval.step_approved", project,
        level=level, approver_id=approver_id, comments=comments,
        status=project.status,
        next_level=next_step.level if next_step else None,
        next_department_id=next_step.department_id if next_step else None,
    )
    if project.status == "approved":
        emit_event("approval.completed", project, status="approved", approver_id=approver_id)

    commit_project(project)
    logger.info(
        "Step %s approved by user %s → %s", level, approver_id, project.status,
        extra={"project_id": project.id, "level": level, "actor_id": approver_id},
    )
    dispatch_after_commit()
    return project


def reject_project(project_id, rejecter_id, level, comments=None):
    project = get_or_404(Project, project_id)
    step = _actionable_step(project, level)

    step.status = "rejected"
    step.approver_id = rejecter_id
    step.comments = comments
    step.approved_at = datetime.now(timezone.utc)
    project.status = "revision_required"

    append_history(
        project, "approval_rejected", triggered_by=rejecter_id,
        metadata={"level": level, "comments": comments},
    )
    recalculate_progress(project)
    emit_event("approval.step_rejected", project, level=level, rejecter_id=rejecter_id, comments=comments)

    commit_project(project)
    logger.info(
        "Step %s rejected by user %s", level, rejecter_id,
        extra={"project_id": project.id, "level": level, "actor_id": rejecter_id},
    )
    dispatch_after_commit()
    return project
