"""Workflow history helpers."""

from procureflow.models.project import ProjectWorkflowHistory


def user_id_of(user):
    """Accept a User, a user id or None."""
    if user is None or isinstance(user, int):
        return user
    return user.id


def append_history(project, action, *, triggered_by=None, metadata=None, phase=None):
    """Append one history entry and advance the monotonic ``workflow_step`` counter."""
    entry = ProjectWorkflowHistory(
        phase=phase or project.workflow_phase,
        action=action,
        triggered_by_id=user_id_of(triggered_by),
        event_metadata=metadata or {},
    )
    project.workflow_history.append(entry)
    project.workflow_step = (project.workflow_step or 0) + 1
    return entry
