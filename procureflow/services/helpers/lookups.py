"""
Lookup and persistence helpers shared by the workflow services.

Usage:
    project = get_or_404(Project, project_id)
    commit_project(project)   # StaleDataError → ConflictError
"""

import logging

from sqlalchemy.orm.exc import StaleDataError

from procureflow.core.exceptions import ConflictError, NotFoundError
from procureflow.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, *, resource: str | None = None):
    """Return ``model`` row *pk* or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=resource or model.__name__, resource_id=pk)
    return obj


def commit_project(project) -> None:
    """
    Commit the current transaction for a project mutation.

    The project row carries an optimistic ``version``; a concurrent writer
    that committed first makes this flush fail, which surfaces as
    ConflictError after the session is rolled back.
    """
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.warning(
            "Concurrent update rejected for project %s", project.id,
            extra={"project_id": project.id},
        )
        raise ConflictError("Project", "version", str(project.id))
