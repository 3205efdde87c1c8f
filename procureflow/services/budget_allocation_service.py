"""
Budget Allocation Service.

Finance lands the allocation of a project waiting in
``pending_budget_allocation``, or of an external project the dispatcher left
waiting in implementation with status ``approved``:

    previous_budget = items total when it is below the budget, else the budget
    new_budget      = previous_budget + allocated amount (0 → the project budget)

The pending Budget-Allocation step is approved, the project becomes
``approved`` and, when it already sits in implementation, the branch that
halted on the allocation is resumed.
"""

import logging
from datetime import datetime, timezone

from procureflow.core.exceptions import InvalidStateError, ValidationError
from procureflow.models import db
from procureflow.models.budget_allocation import BudgetAllocation
from procureflow.models.project import Project
from procureflow.services.helpers.history import append_history
from procureflow.services.helpers.lookups import commit_project, get_or_404
from procureflow.services.progress import recalculate_progress
from procureflow.services.workflow_events import dispatch_after_commit, emit_event
from procureflow.services.workflow_triggers import resume_after_allocation

logger = logging.getLogger(__name__)


def _awaiting_allocation(project):
    if project.status == "pending_budget_allocation":
        return True
    return (
        project.status == "approved"
        and project.workflow_phase == "implementation"
        and not project.has_budget_allocation
    )


def allocate_project_budget(project_id, allocated_by_id, allocated_amount=0, notes=None):
    project = get_or_404(Project, project_id)

    if allocated_amount is None:
        allocated_amount = 0
    if allocated_amount < 0:
        raise ValidationError("Allocated amount cannot be negative", {"allocated_amount": allocated_amount})
    if not project.requires_budget_allocation:
        raise ValidationError(
            f"Project {project.code} does not require budget allocation",
            {"requires_budget_allocation": project.requires_budget_allocation},
        )
    if not _awaiting_allocation(project):
        raise InvalidStateError(
            f"Budget can only be allocated to projects awaiting allocation; "
            f"{project.code} is {project.status!r}",
            current_status=project.status,
        )

    amount = allocated_amount or project.budget or 0.0
    items_total = project.items_total
    previous_budget = items_total if items_total < (project.budget or 0.0) else (project.budget or 0.0)
    new_budget = previous_budget + amount
    now = datetime.now(timezone.utc)

    allocation = BudgetAllocation(
        project_id=project.id,
        allocated_by_id=allocated_by_id,
        allocated_amount=amount,
        previous_budget=previous_budget,
        new_budget=new_budget,
        status="allocated",
        notes=notes,
        allocated_at=now,
    )
    db.session.add(allocation)

    step = project.find_step("budget_allocation", status="pending")
    if step is not None:
        step.status = "approved"
        step.approver_id = allocated_by_id
        step.comments = notes
        step.approved_at = now

    project.budget = new_budget
    project.budget_allocated_at = now
    project.status = "approved"
    append_history(
        project, "budget_allocated", triggered_by=allocated_by_id,
        metadata={"allocated_amount": amount, "previous_budget": previous_budget, "new_budget": new_budget},
    )

    resumed = resume_after_allocation(project, allocated_by_id)
    recalculate_progress(project)
    db.session.flush()
    emit_event(
        "project.budget_allocated", project,
        allocation_id=allocation.id, allocated_amount=amount,
        previous_budget=previous_budget, new_budget=new_budget,
        actor_id=allocated_by_id, resumed_branch=resumed,
    )

    commit_project(project)
    logger.info(
        "Budget allocated: %.2f (new budget %.2f, resumed=%s)", amount, new_budget, resumed,
        extra={"project_id": project.id, "actor_id": allocated_by_id},
    )
    dispatch_after_commit()
    return allocation
