"""
Outbox event handlers.

Imported by the app factory so every ``@register_handler`` below is in the
registry before the first dispatch. Handlers turn domain events into
in-app notifications and audit rows; they flush only and may raise, the
dispatcher decides what a failure means.
"""

import logging

from procureflow.models import db
from procureflow.models.audit import write_audit
from procureflow.models.directory import Department, DepartmentFunction
from procureflow.services.directory import get_directory
from procureflow.services.notification import NotificationService
from procureflow.services.workflow_events import register_handler

logger = logging.getLogger(__name__)

LEVEL_LABELS = {
    "hod": "Head of Department",
    "project_management": "Project Management",
    "legal_compliance": "Legal & Compliance",
    "finance": "Finance",
    "executive": "Executive",
    "budget_allocation": "Budget Allocation",
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _audit(event, action, entity_type="project", entity_id=None):
    payload = dict(event.payload or {})
    write_audit(
        entity_type=entity_type,
        entity_id=entity_id if entity_id is not None else event.project_id,
        action=action,
        project_id=event.project_id,
        actor_user_id=payload.get("actor_id") or payload.get("approver_id")
        or payload.get("rejecter_id") or payload.get("user_id"),
        diff=payload,
    )


def _project_data(project, **extra):
    data = {"project_id": project.id, "project_code": project.code}
    data.update(extra)
    return data


def _notify_creator(project, **kwargs):
    if project.created_by_id is None:
        return None
    return NotificationService.create(recipient_id=project.created_by_id, **kwargs)


def _notify_step_approver(project, level, department_id):
    """Notify whoever acts on the next step."""
    directory = get_directory()
    department = db.session.get(Department, department_id) if department_id else None
    approver = directory.hod_of(department) or directory.find_approver(department)
    if approver is None:
        logger.warning(
            "No approver found for level %s", level,
            extra={"project_id": project.id, "level": level},
        )
        return None
    return NotificationService.create(
        recipient_id=approver.id,
        type="approval_required",
        title=f"Approval required: {project.code}",
        message=f"{project.name} is waiting for {LEVEL_LABELS.get(level, level)} approval.",
        priority="high",
        data=_project_data(project, level=level),
    )


# ── Project lifecycle ────────────────────────────────────────────────────────


@register_handler("project.created")
def on_project_created(event):
    project = event.project
    _audit(event, "project.create")
    first = project.current_step
    if first is not None:
        _notify_step_approver(project, first.level, first.department_id)


@register_handler("project.phase_changed")
def on_phase_changed(event):
    _audit(event, "project.phase_change")


@register_handler("project.resubmitted")
def on_project_resubmitted(event):
    payload = event.payload or {}
    _audit(event, "project.resubmit")
    _notify_step_approver(event.project, payload.get("next_level"), payload.get("next_department_id"))


# ── Approval chain ───────────────────────────────────────────────────────────


@register_handler("approval.step_approved")
def on_step_approved(event):
    project = event.project
    payload = event.payload or {}
    level = payload.get("level")
    _audit(event, "project.approve")

    if payload.get("next_level") and payload["next_level"] != "budget_allocation":
        _notify_step_approver(project, payload["next_level"], payload.get("next_department_id"))

    if level == "legal_compliance":
        NotificationService.notify_function(
            DepartmentFunction.FINANCE,
            type="budget_review",
            title=f"Budget review: {project.code}",
            message=f"Legal approved {project.name}; budget review can start.",
            priority="high",
            data=_project_data(project, budget=project.budget),
        )
    elif level == "executive" and project.requires_budget_allocation:
        NotificationService.notify_function(
            DepartmentFunction.FINANCE,
            type="budget_allocation_required",
            title=f"Budget allocation required: {project.code}",
            message=f"Executive approved {project.name}; allocate its budget to proceed.",
            priority="urgent",
            data=_project_data(project, budget=project.budget),
        )


@register_handler("approval.completed")
def on_approval_completed(event):
    project = event.project
    _notify_creator(
        project,
        type="project_approved",
        title=f"Project approved: {project.code}",
        message=f"{project.name} passed every approval level.",
        priority="medium",
        data=_project_data(project),
    )


@register_handler("approval.step_rejected")
def on_step_rejected(event):
    project = event.project
    payload = event.payload or {}
    _audit(event, "project.reject")
    level = payload.get("level")
    _notify_creator(
        project,
        type="project_rejected",
        title=f"Revision required: {project.code}",
        message=(
            f"{LEVEL_LABELS.get(level, level)} rejected {project.name}"
            + (f": {payload['comments']}" if payload.get("comments") else ".")
        ),
        priority="high",
        data=_project_data(project, level=level),
    )


# ── Budget ───────────────────────────────────────────────────────────────────


@register_handler("project.budget_allocation_required")
def on_budget_allocation_required(event):
    project = event.project
    total = (event.payload or {}).get("total")
    NotificationService.notify_function(
        DepartmentFunction.FINANCE,
        type="budget_allocation_required",
        title=f"Budget allocation required: {project.code}",
        message=f"{project.name} needs {total:,.2f} {project.currency} allocated before implementation.",
        priority="urgent",
        data=_project_data(project, total=total),
    )


@register_handler("project.budget_allocated")
def on_budget_allocated(event):
    project = event.project
    payload = event.payload or {}
    _audit(event, "project.budget_allocated")
    _notify_creator(
        project,
        type="budget_allocated",
        title=f"Budget allocated: {project.code}",
        message=f"Finance allocated budget for {project.name}; new budget {payload.get('new_budget'):,.2f}.",
        priority="medium",
        data=_project_data(project, allocation_id=payload.get("allocation_id")),
    )


@register_handler("project.reimbursement_routed")
def on_reimbursement_routed(event):
    project = event.project
    amount = (event.payload or {}).get("amount")
    NotificationService.notify_function(
        DepartmentFunction.FINANCE,
        type="reimbursement_required",
        title=f"Reimbursement: {project.code}",
        message=f"Departmental project {project.name} is in implementation; reimburse {amount:,.2f}.",
        priority="medium",
        data=_project_data(project, amount=amount),
    )


# ── Workflow triggers ────────────────────────────────────────────────────────


@register_handler("project.inventory_pending")
def on_inventory_pending(event):
    project = event.project
    NotificationService.notify_function(
        DepartmentFunction.OPERATIONS,
        type="inventory_pending",
        title=f"Inventory pending: {project.code}",
        message=f"Procurement started for {project.name}; inventory will follow delivery.",
        data=_project_data(project),
    )


@register_handler("project.inventory_created")
def on_inventory_created(event):
    project = event.project
    _audit(event, "project.inventory_created")
    NotificationService.notify_function(
        DepartmentFunction.OPERATIONS,
        type="inventory_setup_required",
        title=f"Inventory created: {project.code}",
        message=f"Inventory {(event.payload or {}).get('inventory_code')} awaits setup.",
        data=_project_data(project, inventory_ids=(event.payload or {}).get("inventory_ids")),
    )


@register_handler("project.procurement_initiated")
def on_procurement_initiated(event):
    project = event.project
    payload = event.payload or {}
    _audit(event, "project.procurement_initiated")
    NotificationService.notify_function(
        DepartmentFunction.PROCUREMENT,
        type="procurement_required",
        title=f"Purchase order {payload.get('po_number')}",
        message=f"Purchase order raised for {project.name}.",
        priority="high",
        data=_project_data(project, procurement_id=payload.get("procurement_id")),
    )


@register_handler("procurement.delivered")
def on_procurement_delivered(event):
    payload = event.payload or {}
    _audit(event, "procurement.delivered", entity_type="procurement", entity_id=payload.get("procurement_id"))
    data = {
        "procurement_id": payload.get("procurement_id"),
        "inventory_ids": payload.get("inventory_ids"),
        "project_id": event.project_id,
    }
    NotificationService.notify_function(
        DepartmentFunction.OPERATIONS,
        type="inventory_setup_required",
        title=f"Delivery received: {payload.get('po_number')}",
        message=f"{len(payload.get('inventory_ids') or [])} inventory record(s) need setup.",
        priority="high",
        data=data,
    )
    NotificationService.notify_function(
        DepartmentFunction.PROCUREMENT,
        type="delivery_acknowledged",
        title=f"Delivery acknowledged: {payload.get('po_number')}",
        message="Delivered items were added to inventory.",
        data=data,
    )


@register_handler("project.compliance_triggered")
def on_compliance_triggered(event):
    _audit(event, "project.compliance_triggered")


@register_handler("project.compliance_ready")
def on_compliance_ready(event):
    project = event.project
    NotificationService.notify_function(
        DepartmentFunction.LEGAL_COMPLIANCE,
        type="compliance_review_ready",
        title=f"Compliance review unblocked: {project.code}",
        message=f"Inventory and procurement for {project.name} are complete.",
        priority="high",
        data=_project_data(project),
    )


@register_handler("project.trigger_completed")
def on_trigger_completed(event):
    _audit(event, "project.trigger_completed")


# ── Generic approvals ────────────────────────────────────────────────────────


@register_handler("approval_request.decided")
def on_approval_request_decided(event):
    payload = event.payload or {}
    action = "approval.approve" if payload.get("decision") == "approved" else "approval.reject"
    _audit(event, action, entity_type="approval", entity_id=payload.get("approval_id"))
    if payload.get("next_approver_id"):
        NotificationService.create(
            recipient_id=payload["next_approver_id"],
            type="approval_required",
            title=f"Approval required: {payload.get('title')}",
            message=f"Level {payload.get('current_level')} approval is waiting for you.",
            priority="high",
            data={"approval_id": payload.get("approval_id")},
        )
    elif payload.get("requested_by_id") and payload.get("status") in ("approved", "rejected"):
        NotificationService.create(
            recipient_id=payload["requested_by_id"],
            type="approval_completed",
            title=f"Request {payload['status']}: {payload.get('title')}",
            message=payload.get("comments") or "",
            data={"approval_id": payload.get("approval_id")},
        )
