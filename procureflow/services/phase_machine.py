"""
Phase State Machine.

    planning → approval → implementation → execution → completion

Phases move forward one at a time and are never skipped; re-recording the
current phase is allowed (used for milestones such as ``approval_completed``).
Every transition appends a history entry and bumps ``workflow_step``.

Side effects of entering a phase:
    implementation  requires status ``approved``; runs the trigger dispatcher once
    execution       status → in_progress
    completion      status → completed, actual_end_date stamped
"""

import logging
from datetime import datetime, timezone

from procureflow.core.exceptions import InvalidTransitionError, PreconditionError, ValidationError
from procureflow.models.project import WORKFLOW_PHASES, phase_ordinal
from procureflow.services.helpers.history import append_history, user_id_of
from procureflow.services.helpers.lookups import commit_project
from procureflow.services.progress import recalculate_progress
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)


def _require_approved_for_implementation(project, new_phase):
    entering = (
        new_phase == "implementation"
        and phase_ordinal(project.workflow_phase) < phase_ordinal("implementation")
    )
    if entering and project.status != "approved":
        raise PreconditionError(
            f"Project {project.code} cannot enter implementation while status is {project.status!r}",
            precondition="status == 'approved'",
        )
    return entering


def advance_phase(project, new_phase, action, triggered_by=None, metadata=None):
    """
    Move *project* to *new_phase* without committing.

    Raises:
        ValidationError:         unknown phase
        InvalidTransitionError:  *new_phase* is earlier than the current phase
                                 or more than one phase ahead of it
        PreconditionError:       entering implementation before approval
    """
    if new_phase not in WORKFLOW_PHASES:
        raise ValidationError(f"Unknown workflow phase: {new_phase!r}", {"phase": new_phase})

    current = project.workflow_phase
    step = phase_ordinal(new_phase) - phase_ordinal(current)
    if step < 0 or step > 1:
        raise InvalidTransitionError(current, new_phase)

    entering_implementation = _require_approved_for_implementation(project, new_phase)

    project.workflow_phase = new_phase
    append_history(project, action, triggered_by=triggered_by, metadata=metadata, phase=new_phase)

    if new_phase != current:
        if new_phase == "implementation" and project.actual_start_date is None:
            project.actual_start_date = datetime.now(timezone.utc)
        elif new_phase == "execution":
            project.status = "in_progress"
        elif new_phase == "completion":
            project.status = "completed"
            project.actual_end_date = datetime.now(timezone.utc)

        emit_event(
            "project.phase_changed", project,
            from_phase=current, to_phase=new_phase, action=action,
            actor_id=user_id_of(triggered_by),
        )
        logger.info(
            "Workflow phase %s → %s (%s)", current, new_phase, action,
            extra={"project_id": project.id, "phase": new_phase},
        )

    if entering_implementation:
        from procureflow.services.workflow_triggers import dispatch_implementation
        dispatch_implementation(project, triggered_by)

    recalculate_progress(project)
    return project


def progress_workflow(project, new_phase, action, triggered_by=None, metadata=None):
    """Advance the phase, commit, then deliver the resulting events."""
    advance_phase(project, new_phase, action, triggered_by=triggered_by, metadata=metadata)
    commit_project(project)
    dispatch_after_commit()
    return project


def trigger_post_approval_workflow(project, user=None):
    """
    Public entry point once a project is fully approved: moves it into
    implementation and runs the trigger dispatcher.

    Raises PreconditionError, with no mutation, unless status is ``approved``.
    """
    if project.status != "approved":
        raise PreconditionError(
            f"Post-approval workflow requires status 'approved', project {project.code} is {project.status!r}",
            precondition="status == 'approved'",
        )
    return progress_workflow(
        project, "implementation", "post_approval_workflow_triggered",
        triggered_by=user, metadata={"scope": project.scope},
    )
