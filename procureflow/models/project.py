"""
Procurement Workflow Platform
Project domain models.

Models:
    - Project:                 central workflow entity (approval chain, phases, triggers, progress)
    - ProjectApprovalStep:     one ordered step of a project's approval chain
    - ProjectWorkflowHistory:  append-only audit trail of phase transitions
    - ProjectDocument:         required document tracked for approval progress
    - ProjectItem:             itemized requirement copied into purchase orders
    - TeamMember:              project membership side table (unique per project/user)

Architecture:
    Department ──1:N──▶ Project ──1:N──▶ ProjectApprovalStep   (ordered by position)
                               ──1:N──▶ ProjectWorkflowHistory (append-only)
                               ──1:N──▶ ProjectDocument
                               ──1:N──▶ ProjectItem
                               ──1:N──▶ TeamMember

Lifecycle states:
    workflow_phase:   planning → approval → implementation → execution → completion
    inventory:        not_started → created → completed
    procurement:      not_started → initiated → completed
    compliance:       not_started → triggered → completed
"""

from datetime import datetime, timezone

from procureflow.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_SCOPES = {"personal", "departmental", "external"}

BUDGET_THRESHOLDS = (
    "hod_auto_approve",
    "department_approval",
    "finance_approval",
    "executive_approval",
)

# Total order; backward movement is forbidden
WORKFLOW_PHASES = ("planning", "approval", "implementation", "execution", "completion")

APPROVAL_LEVELS = (
    "hod",
    "project_management",
    "legal_compliance",
    "finance",
    "executive",
    "budget_allocation",
)

STEP_STATUSES = {"pending", "approved", "rejected", "skipped"}

PROJECT_STATUSES = {
    "planning",
    "pending_approval",
    "pending_hod_approval",
    "pending_project_management_approval",
    "pending_legal_compliance_approval",
    "pending_finance_approval",
    "pending_executive_approval",
    "pending_budget_allocation",
    "approved",
    "revision_required",
    "rejected",
    "implementation",
    "in_progress",
    "active",
    "on_hold",
    "completed",
    "cancelled",
}

# Statuses under which implementation progress is measured
IMPLEMENTATION_STATUSES = {"implementation", "in_progress", "active", "completed"}

DOCUMENT_APPROVAL_STATUSES = {"pending", "approved", "rejected"}

TEAM_MEMBER_ROLES = {"developer", "designer", "analyst", "tester", "consultant", "other"}
TEAM_MEMBER_STATUSES = {"active", "inactive", "removed"}

# ── Workflow trigger state machines ──────────────────────────────────────────

INVENTORY_TRANSITIONS = {
    "not_started": ["created"],
    "created": ["completed"],
    "completed": [],
}

PROCUREMENT_TRANSITIONS = {
    "not_started": ["initiated"],
    "initiated": ["completed"],
    "completed": [],
}

COMPLIANCE_TRANSITIONS = {
    "not_started": ["triggered"],
    "triggered": ["completed"],
    "completed": [],
}

TRIGGER_MACHINES = {
    "inventory": INVENTORY_TRANSITIONS,
    "procurement": PROCUREMENT_TRANSITIONS,
    "compliance": COMPLIANCE_TRANSITIONS,
}


def validate_trigger_transition(machine, old_state, new_state):
    """Return True if the workflow-trigger state transition is valid."""
    return new_state in TRIGGER_MACHINES[machine].get(old_state, [])


def phase_ordinal(phase):
    """Position of *phase* in WORKFLOW_PHASES (ValueError when unknown)."""
    return WORKFLOW_PHASES.index(phase)


def pending_status_for_level(level):
    """Project status that announces *level* as the next approver."""
    if level == "budget_allocation":
        return "pending_budget_allocation"
    return f"pending_{level}_approval"


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    """
    Procurement project moving through approval and implementation.

    Business rules:
    - ``approval_steps`` is generated once and never regenerated, even when
      scope or budget change afterwards.
    - Exactly one step is current: the first pending one in position order.
    - ``workflow_history`` is append-only; ``workflow_step`` only grows.
    - Trigger states only move forward and are never cleared.
    - ``version`` is an optimistic lock; concurrent writers of the same row
      fail with StaleDataError on flush.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    scope = db.Column(
        db.String(20), nullable=False, default="personal",
        comment="personal | departmental | external",
    )
    category = db.Column(db.String(60), nullable=False, default="other")
    priority = db.Column(db.String(20), nullable=False, default="medium")

    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    created_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    project_manager_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # ── Timeline ──
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    actual_start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Financials ──
    budget = db.Column(db.Float, nullable=False, default=0.0)
    actual_cost = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    budget_threshold = db.Column(
        db.String(30), nullable=True,
        comment="hod_auto_approve | department_approval | finance_approval | executive_approval",
    )
    requires_budget_allocation = db.Column(
        db.Boolean, nullable=True, default=None,
        comment="None = not specified (external chains treat it as required for Finance review)",
    )
    budget_allocated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Lifecycle ──
    status = db.Column(db.String(40), nullable=False, default="planning", index=True)
    workflow_phase = db.Column(db.String(20), nullable=False, default="planning")
    workflow_step = db.Column(db.Integer, nullable=False, default=0)

    # ── Workflow triggers (explicit state machines + actor/timestamp) ──
    inventory_state = db.Column(db.String(20), nullable=False, default="not_started")
    inventory_created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    inventory_created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    inventory_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    inventory_completed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    procurement_state = db.Column(db.String(20), nullable=False, default="not_started")
    procurement_initiated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    procurement_initiated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    procurement_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    procurement_completed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    compliance_state = db.Column(db.String(20), nullable=False, default="not_started")
    compliance_triggered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    compliance_triggered_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    compliance_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    compliance_completed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # ── Progress (0–100) ──
    approval_progress = db.Column(db.Integer, nullable=False, default=0)
    implementation_progress = db.Column(db.Integer, nullable=False, default=0)
    progress = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    # ── Relationships ──
    department = db.relationship("Department")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    project_manager = db.relationship("User", foreign_keys=[project_manager_id])
    approval_steps = db.relationship(
        "ProjectApprovalStep", backref="project",
        cascade="all, delete-orphan", order_by="ProjectApprovalStep.position",
    )
    workflow_history = db.relationship(
        "ProjectWorkflowHistory", backref="project",
        cascade="all, delete-orphan", order_by="ProjectWorkflowHistory.id",
    )
    documents = db.relationship(
        "ProjectDocument", backref="project",
        cascade="all, delete-orphan", order_by="ProjectDocument.id",
    )
    items = db.relationship(
        "ProjectItem", backref="project",
        cascade="all, delete-orphan", order_by="ProjectItem.id",
    )
    team_members = db.relationship(
        "TeamMember", backref="project",
        cascade="all, delete-orphan", order_by="TeamMember.id",
    )

    # ── Approval chain helpers ───────────────────────────────────────────

    @property
    def current_step(self):
        """First pending step in chain order, or None when nothing is pending."""
        for step in self.approval_steps:
            if step.status == "pending":
                return step
        return None

    def find_step(self, level, status=None):
        """First step at *level* (optionally with *status*)."""
        for step in self.approval_steps:
            if step.level == level and (status is None or step.status == status):
                return step
        return None

    @property
    def has_budget_allocation(self):
        """True once Finance has landed the allocation (step or allocation record)."""
        if self.budget_allocated_at is not None:
            return True
        step = self.find_step("budget_allocation")
        return step is not None and step.status == "approved"

    @property
    def requires_regulatory_compliance(self):
        """Projects whose chain carries a legal sign-off need the compliance workflow."""
        return self.find_step("legal_compliance") is not None

    @property
    def items_total(self):
        return sum(item.total_price or 0 for item in self.items)

    # ── Trigger flags (read by the legacy progress formula) ──────────────

    @property
    def inventory_created(self):
        return self.inventory_state in ("created", "completed")

    @property
    def inventory_completed(self):
        return self.inventory_state == "completed"

    @property
    def procurement_initiated(self):
        return self.procurement_state in ("initiated", "completed")

    @property
    def procurement_completed(self):
        return self.procurement_state == "completed"

    @property
    def compliance_completed(self):
        return self.compliance_state == "completed"

    @property
    def active_team_members(self):
        return [m for m in self.team_members if m.is_active]

    def to_dict(self, include_children=True) -> dict:
        """Serialize project fields for API responses."""
        d = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "category": self.category,
            "priority": self.priority,
            "department_id": self.department_id,
            "created_by_id": self.created_by_id,
            "project_manager_id": self.project_manager_id,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "budget": self.budget,
            "actual_cost": self.actual_cost,
            "currency": self.currency,
            "budget_threshold": self.budget_threshold,
            "requires_budget_allocation": self.requires_budget_allocation,
            "budget_allocated_at": _iso(self.budget_allocated_at),
            "status": self.status,
            "workflow_phase": self.workflow_phase,
            "workflow_step": self.workflow_step,
            "workflow_triggers": {
                "inventory": {
                    "state": self.inventory_state,
                    "created_at": _iso(self.inventory_created_at),
                    "created_by_id": self.inventory_created_by_id,
                    "completed_at": _iso(self.inventory_completed_at),
                    "completed_by_id": self.inventory_completed_by_id,
                },
                "procurement": {
                    "state": self.procurement_state,
                    "initiated_at": _iso(self.procurement_initiated_at),
                    "initiated_by_id": self.procurement_initiated_by_id,
                    "completed_at": _iso(self.procurement_completed_at),
                    "completed_by_id": self.procurement_completed_by_id,
                },
                "compliance": {
                    "state": self.compliance_state,
                    "triggered_at": _iso(self.compliance_triggered_at),
                    "triggered_by_id": self.compliance_triggered_by_id,
                    "completed_at": _iso(self.compliance_completed_at),
                    "completed_by_id": self.compliance_completed_by_id,
                },
            },
            "approval_progress": self.approval_progress,
            "implementation_progress": self.implementation_progress,
            "progress": self.progress,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            d["approval_chain"] = [s.to_dict() for s in self.approval_steps]
            d["workflow_history"] = [h.to_dict() for h in self.workflow_history]
            d["required_documents"] = [doc.to_dict() for doc in self.documents]
            d["items"] = [i.to_dict() for i in self.items]
            d["team_members"] = [m.to_dict() for m in self.team_members]
        return d

    def __repr__(self):
        return f"<Project {self.code}: {self.status}/{self.workflow_phase}>"


class ProjectApprovalStep(db.Model):
    """One step of a project's approval chain."""

    __tablename__ = "project_approval_steps"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    position = db.Column(db.Integer, nullable=False, comment="0-based order within the chain")
    level = db.Column(
        db.String(30), nullable=False,
        comment="hod | project_management | legal_compliance | finance | executive | budget_allocation",
    )
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="User who approved or rejected this step",
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    comments = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    required = db.Column(db.Boolean, nullable=False, default=True)

    department = db.relationship("Department")

    __table_args__ = (
        db.UniqueConstraint("project_id", "position", name="uq_approval_step_position"),
    )

    def reset(self):
        """Return the step to pending and clear the decision fields."""
        self.status = "pending"
        self.approver_id = None
        self.comments = None
        self.approved_at = None

    def to_dict(self):
        return {
            "id": self.id,
            "position": self.position,
            "level": self.level,
            "department_id": self.department_id,
            "department": self.department.name if self.department else None,
            "approver_id": self.approver_id,
            "status": self.status,
            "comments": self.comments,
            "approved_at": _iso(self.approved_at),
            "required": self.required,
        }

    def __repr__(self):
        return f"<ProjectApprovalStep {self.position}:{self.level} {self.status}>"


class ProjectWorkflowHistory(db.Model):
    """Append-only record of one workflow action. Never updated or deleted."""

    __tablename__ = "project_workflow_history"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase = db.Column(db.String(20), nullable=False)
    action = db.Column(db.String(80), nullable=False)
    triggered_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = db.Column("metadata", db.JSON, default=dict)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "phase": self.phase,
            "action": self.action,
            "triggered_by": self.triggered_by_id,
            "metadata": self.event_metadata or {},
            "timestamp": _iso(self.timestamp),
        }


class ProjectDocument(db.Model):
    """Required document whose submission feeds approval progress."""

    __tablename__ = "project_documents"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_type = db.Column(db.String(60), nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    is_submitted = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approval_status = db.Column(db.String(20), nullable=False, default="pending")
    document_versions = db.Column(db.JSON, default=list, comment="[{version, reference, submitted_at}]")

    __table_args__ = (
        db.UniqueConstraint("project_id", "document_type", name="uq_project_document_type"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "document_type": self.document_type,
            "is_required": self.is_required,
            "is_submitted": self.is_submitted,
            "submitted_at": _iso(self.submitted_at),
            "submitted_by_id": self.submitted_by_id,
            "approval_status": self.approval_status,
            "document_versions": self.document_versions or [],
        }


class ProjectItem(db.Model):
    """Itemized requirement; copied verbatim into the project's purchase order."""

    __tablename__ = "project_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    total_price = db.Column(db.Float, nullable=False, default=0.0)
    category = db.Column(db.String(60), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "category": self.category,
        }


class TeamMember(db.Model):
    """Project membership. Removal is soft: status flips, the row stays."""

    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(30), nullable=False, default="other")
    status = db.Column(db.String(20), nullable=False, default="active")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    # Permission flags
    can_edit_project = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_team = db.Column(db.Boolean, nullable=False, default=False)
    can_view_financials = db.Column(db.Boolean, nullable=False, default=False)
    can_approve_tasks = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_team_member_project_user"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "status": self.status,
            "is_active": self.is_active,
            "assigned_at": _iso(self.assigned_at),
            "permissions": {
                "can_edit_project": self.can_edit_project,
                "can_manage_team": self.can_manage_team,
                "can_view_financials": self.can_view_financials,
                "can_approve_tasks": self.can_approve_tasks,
            },
        }
