"""
Resubmission Handler.

A project in ``revision_required`` re-enters the chain at the step that
rejected it: that step and every step after it go back to pending, earlier
approvals stand.
"""

import logging

from procureflow.core.exceptions import InvalidStateError
from procureflow.models.project import Project, pending_status_for_level
from procureflow.services.helpers.history import append_history
from procureflow.services.helpers.lookups import commit_project, get_or_404
from procureflow.services.progress import recalculate_progress
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)


def resubmit_project(project_id, user_id):
    project = get_or_404(Project, project_id)
    if project.status != "revision_required":
        raise InvalidStateError(
            f"Only projects in 'revision_required' can be resubmitted; {project.code} is {project.status!r}",
            current_status=project.status,
        )

    steps = list(project.approval_steps)
    rejected_index = next((i for i, s in enumerate(steps) if s.status == "rejected"), None)
    if rejected_index is None:
        raise InvalidStateError(
            f"Project {project.code} has no rejected step to resubmit",
            current_status=project.status,
        )

    preserved = [
        {"level": s.level, "approver_id": s.approver_id}
        for s in steps[:rejected_index] if s.status == "approved"
    ]
    for step in steps[rejected_index:]:
        step.reset()

    current = project.current_step
    project.status = pending_status_for_level(current.level)

    append_history(
        project, "project_resubmitted", triggered_by=user_id,
        metadata={
            "resumed_at_level": current.level,
            "preserved_approvals": preserved,
            "reset_steps": [s.level for s in steps[rejected_index:]],
        },
    )
    recalculate_progress(project)
    emit_event("project.resubmitted", project, user_id=user_id, next_level=current.level,
               next_department_id=current.department_id)

    commit_project(project)
    logger.info(
        "Resubmitted at level %s (%d approvals preserved)", current.level, len(preserved),
        extra={"project_id": project.id, "actor_id": user_id},
    )
    dispatch_after_commit()
    return project
