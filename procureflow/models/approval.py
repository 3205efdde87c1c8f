"""
Generic approval and workflow template models.

Models:
    - Approval:          approval request for a non-project entity (purchase
                         order, budget request, ...) walked level by level
    - ApprovalLevel:     one level of an Approval; only ``current_level`` acts
    - WorkflowTemplate:  configurable step list matched against project
                         category / budget / department

Lifecycle (Approval):
    pending → approved | rejected
"""

from datetime import datetime, timezone

from procureflow.models import db

APPROVAL_STATUSES = {"pending", "approved", "rejected", "cancelled"}
LEVEL_STATUSES = {"pending", "approved", "rejected", "skipped"}

# Step condition keys understood by the template matcher
TEMPLATE_CONDITION_KEYS = ("project_category", "min_budget", "max_budget", "departments", "priority")


class Approval(db.Model):
    __tablename__ = "approvals"

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False, comment="procurement | budget_request | …")
    entity_id = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    requested_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    current_level = db.Column(db.Integer, nullable=False, default=1)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    levels = db.relationship(
        "ApprovalLevel", backref="approval",
        cascade="all, delete-orphan", order_by="ApprovalLevel.level",
    )

    def level_row(self, level):
        for row in self.levels:
            if row.level == level:
                return row
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "title": self.title,
            "amount": self.amount,
            "department_id": self.department_id,
            "requested_by_id": self.requested_by_id,
            "status": self.status,
            "current_level": self.current_level,
            "levels": [lvl.to_dict() for lvl in self.levels],
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ApprovalLevel(db.Model):
    __tablename__ = "approval_levels"

    id = db.Column(db.Integer, primary_key=True)
    approval_id = db.Column(
        db.Integer, db.ForeignKey("approvals.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    level = db.Column(db.Integer, nullable=False)
    role = db.Column(db.String(30), nullable=False, comment="department_manager | finance | executive")
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    comments = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    required = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.UniqueConstraint("approval_id", "level", name="uq_approval_level"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "level": self.level,
            "role": self.role,
            "department_id": self.department_id,
            "approver_id": self.approver_id,
            "status": self.status,
            "comments": self.comments,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "required": self.required,
        }


class WorkflowTemplate(db.Model):
    """
    Configurable approval chain.

    ``steps`` is a JSON list::

        [{"order": 1, "level": "hod", "department_function": "general",
          "is_required": true,
          "conditions": {"project_category": "all", "min_budget": 0,
                         "max_budget": 1000000, "departments": [3],
                         "priority": "high"}}]
    """

    __tablename__ = "workflow_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    document_type = db.Column(db.String(40), nullable=False, default="project_workflow")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    steps = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def ordered_steps(self):
        return sorted(self.steps or [], key=lambda s: s.get("order", 0))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "document_type": self.document_type,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "steps": self.ordered_steps,
        }

    def __repr__(self):
        return f"<WorkflowTemplate {self.name}>"
