"""
Directory models: departments, roles, users.

The workflow engine never looks departments up by display name. Each
department carries a ``function`` that says what part it plays in approval
chains (finance review, executive sign-off, legal compliance, ...), and the
directory service resolves departments through that key.

Role levels follow the organisational hierarchy:
    SUPER_ADMIN 1000 > HOD 700 > MANAGER 600 > STAFF 300 > VIEWER 100
"""

from datetime import datetime, timezone

from procureflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────


class DepartmentFunction:
    """Workflow role of a department. Stored in ``departments.function``."""

    GENERAL = "general"
    FINANCE = "finance"
    EXECUTIVE = "executive"
    LEGAL_COMPLIANCE = "legal_compliance"
    PROJECT_MANAGEMENT = "project_management"
    OPERATIONS = "operations"
    PROCUREMENT = "procurement"

    ALL = frozenset({
        GENERAL, FINANCE, EXECUTIVE, LEGAL_COMPLIANCE,
        PROJECT_MANAGEMENT, OPERATIONS, PROCUREMENT,
    })


class RoleLevel:
    """Numeric role levels. Higher means broader authority."""

    SUPER_ADMIN = 1000
    HOD = 700
    MANAGER = 600
    STAFF = 300
    VIEWER = 100


# ═══════════════════════════════════════════════════════════════
# 1. DEPARTMENTS
# ═══════════════════════════════════════════════════════════════
class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    code = db.Column(
        db.String(10), nullable=False, unique=True,
        comment="Short uppercase prefix used in project codes (e.g. ENG, FIN)",
    )
    function = db.Column(
        db.String(30), nullable=False, default=DepartmentFunction.GENERAL, index=True,
        comment="general | finance | executive | legal_compliance | project_management | operations | procurement",
    )
    level = db.Column(db.Integer, default=0, comment="Hierarchy level (higher = more senior)")
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="department", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "function": self.function,
            "level": self.level,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Department {self.code}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    display_name = db.Column(db.String(100))
    level = db.Column(db.Integer, nullable=False, default=RoleLevel.STAFF)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "level": self.level,
        }


# ═══════════════════════════════════════════════════════════════
# 3. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    department = db.relationship("Department", back_populates="users")
    role = db.relationship("Role")

    @property
    def role_level(self) -> int:
        return self.role.level if self.role else 0

    @property
    def is_hod(self) -> bool:
        return RoleLevel.HOD <= self.role_level < RoleLevel.SUPER_ADMIN

    @property
    def is_super_admin(self) -> bool:
        return self.role_level >= RoleLevel.SUPER_ADMIN

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "department_id": self.department_id,
            "role": self.role.name if self.role else None,
            "role_level": self.role_level,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
