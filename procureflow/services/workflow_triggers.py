"""
Workflow Trigger Dispatcher.

Runs once when a fully approved project enters implementation, branching on
scope:

    external      allocation not needed (or landed) → purchase order synthesis,
                  Operations told inventory is pending, status implementation;
                  otherwise wait for the allocation
    departmental  status implementation, routed to finance reimbursement
                  (no inventory or procurement)
    personal      allocation needed but not landed → pending_budget_allocation,
                  Finance told the total; allocation landed → purchase order +
                  inventory; no allocation needed → milestone tasks,
                  status implementation

Sub-triggers are independently callable once the project is approved. Each
one moves its own state machine forward and is a no-op when already done:

    inventory     not_started → created → completed
    procurement   not_started → initiated → completed
    compliance    not_started → triggered → completed   (needs inventory and
                                                         procurement completed)
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from procureflow.constants.categories import inventory_type_for, map_to_unified_category
from procureflow.core.exceptions import InvalidStateError, PreconditionError
from procureflow.models import db
from procureflow.models.inventory import Inventory
from procureflow.models.procurement import Procurement, ProcurementItem
from procureflow.models.project import IMPLEMENTATION_STATUSES, validate_trigger_transition
from procureflow.services.helpers.history import append_history, user_id_of
from procureflow.services.helpers.lookups import commit_project
from procureflow.services.progress import recalculate_progress
from procureflow.services.task_service import create_milestone_tasks
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)

TRIGGERABLE_STATUSES = {"approved"} | IMPLEMENTATION_STATUSES


# ── Helpers ──────────────────────────────────────────────────────────────────


def _now():
    return datetime.now(timezone.utc)


def _require_triggerable(project, trigger):
    if project.status not in TRIGGERABLE_STATUSES:
        raise PreconditionError(
            f"{trigger} requires an approved project; {project.code} is {project.status!r}",
            precondition="project approved",
        )


def _move(project, machine, new_state):
    old_state = getattr(project, f"{machine}_state")
    if not validate_trigger_transition(machine, old_state, new_state):
        raise InvalidStateError(
            f"{machine.capitalize()} cannot move from {old_state!r} to {new_state!r}",
            current_status=old_state,
        )
    setattr(project, f"{machine}_state", new_state)
    logger.info(
        "%s %s → %s", machine, old_state, new_state,
        extra={"project_id": project.id, "status": new_state},
    )


def _finish(project):
    recalculate_progress(project)
    commit_project(project)
    dispatch_after_commit()


def generate_inventory_code() -> str:
    """Next inventory code: INV0001, INV0002, ..."""
    count = db.session.query(func.count(Inventory.id)).scalar() or 0
    return f"INV{count + 1:04d}"


def generate_po_number() -> str:
    """Next purchase order number: PO0001, PO0002, ..."""
    count = db.session.query(func.count(Procurement.id)).scalar() or 0
    return f"PO{count + 1:04d}"


def project_total(project) -> float:
    """Amount Finance has to cover: the itemized total when items exist, else the budget."""
    return project.items_total if project.items else (project.budget or 0.0)


def _project_procurement(project):
    return db.session.execute(
        select(Procurement).where(Procurement.project_id == project.id).order_by(Procurement.id)
    ).scalars().first()


def _project_inventory(project):
    return list(db.session.execute(
        select(Inventory).where(Inventory.project_id == project.id).order_by(Inventory.id)
    ).scalars())


# ── Sub-trigger bodies (no commit) ───────────────────────────────────────────


def _create_project_inventory(project, user):
    if project.inventory_state != "not_started":
        return _project_inventory(project)

    category = map_to_unified_category(project.category)
    budget = project.budget or 0.0
    record = Inventory(
        code=generate_inventory_code(),
        name=f"{project.name} assets",
        description=f"Inventory for project {project.code}",
        type=inventory_type_for(category),
        category=category,
        status="pending_setup",
        quantity=1,
        unit_cost=budget,
        total_value=budget,
        project_id=project.id,
        department_id=project.department_id,
        created_by_id=user_id_of(user),
    )
    db.session.add(record)
    db.session.flush()

    _move(project, "inventory", "created")
    project.inventory_created_at = _now()
    project.inventory_created_by_id = user_id_of(user)
    append_history(project, "inventory_created", triggered_by=user, metadata={"inventory_code": record.code})
    emit_event(
        "project.inventory_created", project,
        inventory_ids=[record.id], inventory_code=record.code, actor_id=user_id_of(user),
    )
    return [record]


def _create_project_procurement(project, user):
    if project.procurement_state != "not_started":
        return _project_procurement(project)

    category = map_to_unified_category(project.category)
    po = Procurement(
        po_number=generate_po_number(),
        title=f"Procurement for {project.name}",
        description=project.description or "",
        category=category,
        status="pending",
        currency=project.currency,
        project_id=project.id,
        department_id=project.department_id,
        requested_by_id=user_id_of(user),
    )
    if project.items:
        for item in project.items:
            po.items.append(ProcurementItem(
                name=item.name,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                category=item.category or category,
            ))
    else:
        budget = project.budget or 0.0
        po.items.append(ProcurementItem(
            name=project.name,
            description=f"Aggregate line item for project {project.code}",
            quantity=1,
            unit_price=budget,
            total_price=budget,
            category=category,
        ))
    po.recalculate_totals()
    db.session.add(po)
    db.session.flush()

    _move(project, "procurement", "initiated")
    project.procurement_initiated_at = _now()
    project.procurement_initiated_by_id = user_id_of(user)
    append_history(project, "procurement_initiated", triggered_by=user, metadata={"po_number": po.po_number})
    emit_event(
        "project.procurement_initiated", project,
        procurement_id=po.id, po_number=po.po_number,
        total_amount=po.total_amount, actor_id=user_id_of(user),
    )
    return po


def _trigger_compliance(project, user):
    if project.compliance_state != "not_started":
        return False
    _move(project, "compliance", "triggered")
    project.compliance_triggered_at = _now()
    project.compliance_triggered_by_id = user_id_of(user)
    append_history(project, "regulatory_compliance_triggered", triggered_by=user)
    emit_event("project.compliance_triggered", project, actor_id=user_id_of(user))
    return True


def _start_procurement_branch(project, user, *, with_inventory):
    _create_project_procurement(project, user)
    if with_inventory:
        _create_project_inventory(project, user)
    if project.requires_regulatory_compliance:
        _trigger_compliance(project, user)


# ── Dispatcher ───────────────────────────────────────────────────────────────


def dispatch_implementation(project, user=None) -> str:
    """
    Scope branch run when the project enters implementation. No commit.

    Returns the name of the branch taken.

    The ``awaiting_allocation`` branches cannot be reached through the
    executor, which holds a project in ``pending_budget_allocation`` until the
    allocation lands. They cover rows imported as ``approved`` with an
    allocation still outstanding.
    """
    needs_allocation = bool(project.requires_budget_allocation)
    allocated = project.has_budget_allocation

    if project.scope == "external":
        if needs_allocation and not allocated:
            logger.info("External project waiting for budget allocation", extra={"project_id": project.id})
            return "awaiting_allocation"
        _start_procurement_branch(project, user, with_inventory=False)
        project.status = "implementation"
        emit_event("project.inventory_pending", project, actor_id=user_id_of(user))
        branch = "procurement"

    elif project.scope == "departmental":
        project.status = "implementation"
        amount = project_total(project)
        append_history(
            project, "routed_to_finance_reimbursement", triggered_by=user,
            metadata={"route": "finance_reimbursement", "amount": amount},
        )
        emit_event("project.reimbursement_routed", project, amount=amount, actor_id=user_id_of(user))
        branch = "finance_reimbursement"

    elif needs_allocation and not allocated:
        project.status = "pending_budget_allocation"
        total = project_total(project)
        emit_event("project.budget_allocation_required", project, total=total, actor_id=user_id_of(user))
        branch = "awaiting_allocation"

    elif needs_allocation:
        _start_procurement_branch(project, user, with_inventory=True)
        branch = "procurement_and_inventory"

    else:
        create_milestone_tasks(project, created_by_id=user_id_of(user))
        project.status = "implementation"
        branch = "milestone_tasks"

    logger.info(
        "Dispatcher branch %s", branch,
        extra={"project_id": project.id, "status": project.status},
    )
    return branch


def resume_after_allocation(project, user=None) -> str | None:
    """
    Continue a branch that halted on budget allocation. No commit.

    Only projects already in implementation resume, i.e. those that went
    through an ``awaiting_allocation`` dispatch; everything else enters
    implementation later through ``trigger_post_approval_workflow``.
    """
    if project.workflow_phase != "implementation":
        return None
    if project.scope == "external":
        _start_procurement_branch(project, user, with_inventory=False)
        project.status = "implementation"
        emit_event("project.inventory_pending", project, actor_id=user_id_of(user))
        return "procurement"
    if project.scope == "personal":
        _start_procurement_branch(project, user, with_inventory=True)
        return "procurement_and_inventory"
    return None


# ── Public sub-triggers ──────────────────────────────────────────────────────


def trigger_inventory_creation(project, user=None):
    """Create the project's aggregate inventory record (once)."""
    _require_triggerable(project, "Inventory creation")
    records = _create_project_inventory(project, user)
    _finish(project)
    return records


def trigger_procurement_creation(project, user=None):
    """Create the project's purchase order (once)."""
    _require_triggerable(project, "Procurement creation")
    po = _create_project_procurement(project, user)
    _finish(project)
    return po


def create_inventory_from_procurement(procurement, user=None) -> list[Inventory]:
    """
    Expand a delivered purchase order into one inventory record per line item.

    Running it again for the same purchase order returns the existing records.
    """
    existing = list(db.session.execute(
        select(Inventory).where(Inventory.procurement_id == procurement.id).order_by(Inventory.id)
    ).scalars())
    if existing:
        return existing

    project = procurement.project
    records = []
    for item in procurement.items:
        category = map_to_unified_category(item.category or procurement.category)
        record = Inventory(
            code=generate_inventory_code(),
            name=item.name,
            description=item.description or "",
            type=inventory_type_for(category),
            category=category,
            status="pending_setup",
            quantity=item.quantity,
            unit_cost=item.unit_price,
            total_value=item.total_price,
            project_id=procurement.project_id,
            procurement_id=procurement.id,
            procurement_item_id=item.id,
            department_id=procurement.department_id,
            created_by_id=user_id_of(user),
        )
        db.session.add(record)
        db.session.flush()
        records.append(record)

    if project and project.inventory_state == "not_started":
        _move(project, "inventory", "created")
        project.inventory_created_at = _now()
        project.inventory_created_by_id = user_id_of(user)
        append_history(
            project, "inventory_created_from_procurement", triggered_by=user,
            metadata={"po_number": procurement.po_number, "items": len(records)},
        )

    emit_event(
        "procurement.delivered", project,
        procurement_id=procurement.id, po_number=procurement.po_number,
        inventory_ids=[r.id for r in records], actor_id=user_id_of(user),
    )
    if project:
        _finish(project)
    else:
        db.session.commit()
        dispatch_after_commit()
    return records


def trigger_regulatory_compliance(project, user=None):
    """Open the compliance workflow for projects whose chain has a legal step."""
    _require_triggerable(project, "Regulatory compliance")
    if not project.requires_regulatory_compliance:
        raise PreconditionError(
            f"Project {project.code} has no legal compliance step",
            precondition="legal_compliance step in chain",
        )
    _trigger_compliance(project, user)
    _finish(project)
    return project


def check_compliance_readiness(project) -> bool:
    """Compliance review can close once inventory and procurement are both completed."""
    return project.inventory_completed and project.procurement_completed


def complete_regulatory_compliance(project, user=None, data=None):
    if project.compliance_state == "completed":
        return project
    if project.compliance_state == "not_started":
        raise InvalidStateError(
            f"Regulatory compliance was never triggered for {project.code}",
            current_status=project.compliance_state,
        )
    if not check_compliance_readiness(project):
        raise PreconditionError(
            "Regulatory compliance needs inventory and procurement completed first",
            precondition="inventory and procurement completed",
        )
    _move(project, "compliance", "completed")
    project.compliance_completed_at = _now()
    project.compliance_completed_by_id = user_id_of(user)
    append_history(project, "regulatory_compliance_completed", triggered_by=user, metadata=data or {})
    emit_event("project.trigger_completed", project, trigger="compliance", actor_id=user_id_of(user))
    _finish(project)
    return project


def _after_trigger_completion(project, user):
    both_done = project.inventory_completed and project.procurement_completed
    if both_done and project.scope == "personal" and project.requires_budget_allocation:
        create_milestone_tasks(project, created_by_id=user_id_of(user))
        if project.status not in IMPLEMENTATION_STATUSES:
            project.status = "implementation"
    if both_done and project.requires_regulatory_compliance and project.compliance_state == "triggered":
        emit_event("project.compliance_ready", project, actor_id=user_id_of(user))


def complete_inventory(project, user=None, data=None):
    """Operations confirms the inventory is set up."""
    if project.inventory_state == "completed":
        return project
    if project.inventory_state == "not_started":
        raise InvalidStateError(
            f"Inventory has not been created for {project.code}",
            current_status=project.inventory_state,
        )
    _move(project, "inventory", "completed")
    project.inventory_completed_at = _now()
    project.inventory_completed_by_id = user_id_of(user)
    append_history(project, "inventory_completed", triggered_by=user, metadata=data or {})
    emit_event("project.trigger_completed", project, trigger="inventory", actor_id=user_id_of(user))
    _after_trigger_completion(project, user)
    _finish(project)
    return project


def complete_procurement(project, user=None, data=None):
    """Procurement confirms the purchase order is fulfilled."""
    if project.procurement_state == "completed":
        return project
    if project.procurement_state == "not_started":
        raise InvalidStateError(
            f"Procurement has not been initiated for {project.code}",
            current_status=project.procurement_state,
        )
    _move(project, "procurement", "completed")
    project.procurement_completed_at = _now()
    project.procurement_completed_by_id = user_id_of(user)
    append_history(project, "procurement_completed", triggered_by=user, metadata=data or {})
    emit_event("project.trigger_completed", project, trigger="procurement", actor_id=user_id_of(user))
    _after_trigger_completion(project, user)
    _finish(project)
    return project
