"""
Task service.

Read side used by the progress calculator (``find_by_project``) and the
milestone synthesis used by the dispatcher for personal projects.
"""

import logging
from datetime import date, timedelta

from sqlalchemy import select

from procureflow.models import db
from procureflow.models.task import Task
from procureflow.services.helpers.lookups import get_or_404

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_DAYS = 30

# (milestone, title, share of the start–end window)
MILESTONE_PLAN = (
    ("setup", "Project setup", 0.2),
    ("execution", "Project execution", 0.6),
    ("review", "Project review & closure", 0.2),
)


def find_by_project(project_id: int) -> list[Task]:
    return list(db.session.execute(
        select(Task).where(Task.project_id == project_id).order_by(Task.id)
    ).scalars())


def _project_window(project) -> tuple[date, date]:
    start = project.start_date or date.today()
    end = project.end_date or start + timedelta(days=DEFAULT_PROJECT_DAYS)
    if end <= start:
        end = start + timedelta(days=1)
    return start, end


def create_milestone_tasks(project, created_by_id: int | None = None) -> list[Task]:
    """
    Add the setup / execution / review milestone tasks to *project*.

    The window between start and end date is split 20/60/20. Projects that
    already have milestone tasks are left alone. Flushes only.
    """
    existing = [t for t in find_by_project(project.id) if t.milestone]
    if existing:
        return existing

    start, end = _project_window(project)
    total_days = (end - start).days
    tasks = []
    cursor = start
    elapsed = 0.0
    for index, (milestone, title, share) in enumerate(MILESTONE_PLAN):
        elapsed += share
        due = end if index == len(MILESTONE_PLAN) - 1 else start + timedelta(days=round(total_days * elapsed))
        task = Task(
            project_id=project.id,
            title=f"{title}: {project.name}",
            description=f"{milestone.capitalize()} milestone for project {project.code}",
            milestone=milestone,
            status="pending",
            priority=project.priority or "medium",
            assigned_to_id=project.project_manager_id or project.created_by_id,
            created_by_id=created_by_id,
            start_date=cursor,
            due_date=due,
        )
        db.session.add(task)
        tasks.append(task)
        cursor = due
    db.session.flush()
    logger.info("Created %d milestone tasks", len(tasks), extra={"project_id": project.id})
    return tasks


def complete_task(task_id: int) -> Task:
    """Mark a task completed and refresh its project's progress."""
    from procureflow.models.project import Project
    from procureflow.services.helpers.lookups import commit_project
    from procureflow.services.progress import recalculate_progress

    task = get_or_404(Task, task_id)
    task.mark_completed()
    project = get_or_404(Project, task.project_id)
    db.session.flush()
    recalculate_progress(project)
    commit_project(project)
    return task
