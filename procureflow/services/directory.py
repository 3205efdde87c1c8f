"""
Department directory.

Resolves departments by their workflow ``function`` and users by role level.
Chain generation and notification targeting go through this port; nothing
in the workflow engine looks a department up by its display name.
"""

import logging

from sqlalchemy import select

from procureflow.core.exceptions import NotFoundError
from procureflow.models import db
from procureflow.models.directory import Department, DepartmentFunction, Role, RoleLevel, User

logger = logging.getLogger(__name__)


class SqlDirectory:
    """Directory backed by the departments / users / roles tables."""

    def by_function(self, function: str) -> Department | None:
        """First active department carrying *function*."""
        return db.session.execute(
            select(Department)
            .where(Department.function == function, Department.is_active.is_(True))
            .order_by(Department.id)
        ).scalars().first()

    def require_function(self, function: str) -> Department:
        dept = self.by_function(function)
        if dept is None:
            raise NotFoundError("Department", detail=f"no active department with function={function!r}")
        return dept

    def find_approver(self, department: Department | None, min_level: int = RoleLevel.HOD) -> User | None:
        """Most senior active user of *department* whose role level is at least *min_level*."""
        if department is None:
            return None
        return db.session.execute(
            select(User)
            .join(Role, User.role_id == Role.id)
            .where(
                User.department_id == department.id,
                User.is_active.is_(True),
                Role.level >= min_level,
            )
            .order_by(Role.level.desc(), User.id)
        ).scalars().first()

    def hod_of(self, department: Department | None) -> User | None:
        """Head of *department*: the most senior user ranked HOD (below super admin)."""
        if department is None:
            return None
        return db.session.execute(
            select(User)
            .join(Role, User.role_id == Role.id)
            .where(
                User.department_id == department.id,
                User.is_active.is_(True),
                Role.level >= RoleLevel.HOD,
                Role.level < RoleLevel.SUPER_ADMIN,
            )
            .order_by(Role.level.desc(), User.id)
        ).scalars().first()

    def executive_approver(self) -> User | None:
        return self.find_approver(self.by_function(DepartmentFunction.EXECUTIVE), RoleLevel.SUPER_ADMIN) \
            or self.find_approver(self.by_function(DepartmentFunction.EXECUTIVE))

    def notification_targets(self, function: str) -> list[User]:
        """
        Users to notify on behalf of a department function.

        The HOD when one exists, otherwise every active member at manager
        level or above.
        """
        dept = self.by_function(function)
        if dept is None:
            logger.warning("No department with function %s to notify", function)
            return []
        hod = self.hod_of(dept)
        if hod is not None:
            return [hod]
        return list(db.session.execute(
            select(User)
            .join(Role, User.role_id == Role.id)
            .where(
                User.department_id == dept.id,
                User.is_active.is_(True),
                Role.level >= RoleLevel.MANAGER,
            )
            .order_by(User.id)
        ).scalars())


def get_directory() -> SqlDirectory:
    return SqlDirectory()
