"""
Generic Approval Service.

Department-hierarchy approvals for entities outside the project chain
(purchase orders, budget requests, ...):

    level 1   department manager of the requesting department
    level 2   Finance        when amount > 500,000
    level 3   Executive      when amount > 10,000,000

Only the ``current_level`` can be acted on. The last approval closes the
request as ``approved``; any rejection closes it as ``rejected``.
"""

import logging
from datetime import datetime, timezone

from procureflow.core.exceptions import InvalidStateError, ValidationError
from procureflow.models import db
from procureflow.models.approval import Approval, ApprovalLevel
from procureflow.models.directory import Department, DepartmentFunction, RoleLevel
from procureflow.services.directory import get_directory
from procureflow.services.helpers.lookups import get_or_404
from procureflow.services.workflow_events import dispatch_after_commit, emit_event

logger = logging.getLogger(__name__)

FINANCE_REVIEW_AMOUNT = 500_000
EXECUTIVE_REVIEW_AMOUNT = 10_000_000


def create_approval(*, entity_type, entity_id, title, amount, department_id, requested_by_id=None):
    if amount is None or amount < 0:
        raise ValidationError("Approval amount must be a non-negative number", {"amount": amount})
    department = get_or_404(Department, department_id)
    directory = get_directory()

    approval = Approval(
        entity_type=entity_type,
        entity_id=entity_id,
        title=title,
        amount=amount,
        department_id=department.id,
        requested_by_id=requested_by_id,
        status="pending",
        current_level=1,
    )

    plan = [("department_manager", department, directory.find_approver(department, RoleLevel.MANAGER))]
    if amount > FINANCE_REVIEW_AMOUNT:
        finance = directory.require_function(DepartmentFunction.FINANCE)
        plan.append(("finance", finance, directory.hod_of(finance) or directory.find_approver(finance)))
    if amount > EXECUTIVE_REVIEW_AMOUNT:
        executive = directory.require_function(DepartmentFunction.EXECUTIVE)
        plan.append(("executive", executive, directory.executive_approver()))

    for number, (role, dept, approver) in enumerate(plan, start=1):
        approval.levels.append(ApprovalLevel(
            level=number,
            role=role,
            department_id=dept.id,
            approver_id=approver.id if approver else None,
            status="pending",
            required=True,
        ))

    db.session.add(approval)
    db.session.commit()
    logger.info("Approval %s created with %d level(s)", approval.id, len(plan))
    return approval


def _current_row(approval, level):
    if approval.status != "pending":
        raise InvalidStateError(f"Approval {approval.id} is already {approval.status}", current_status=approval.status)
    if level is not None and level != approval.current_level:
        raise InvalidStateError(
            f"Level {level} is not the current level ({approval.current_level})",
            current_status=approval.status,
        )
    return approval.level_row(approval.current_level)


def _decide(row, status, approver_id, comments):
    row.status = status
    row.approver_id = approver_id
    row.comments = comments
    row.approved_at = datetime.now(timezone.utc)


def approve_request(approval_id, approver_id, level=None, comments=None):
    approval = get_or_404(Approval, approval_id)
    row = _current_row(approval, level)
    _decide(row, "approved", approver_id, comments)

    next_row = approval.level_row(approval.current_level + 1)
    if next_row is None:
        approval.status = "approved"
        approval.completed_at = datetime.now(timezone.utc)
    else:
        approval.current_level = next_row.level

    emit_event(
        "approval_request.decided", None,
        approval_id=approval.id, title=approval.title, decision="approved",
        status=approval.status, current_level=approval.current_level,
        next_approver_id=next_row.approver_id if next_row else None,
        requested_by_id=approval.requested_by_id, actor_id=approver_id, comments=comments,
    )
    db.session.commit()
    dispatch_after_commit()
    return approval


def reject_request(approval_id, rejecter_id, level=None, comments=None):
    approval = get_or_404(Approval, approval_id)
    row = _current_row(approval, level)
    _decide(row, "rejected", rejecter_id, comments)
    approval.status = "rejected"
    approval.completed_at = datetime.now(timezone.utc)

    emit_event(
        "approval_request.decided", None,
        approval_id=approval.id, title=approval.title, decision="rejected",
        status=approval.status, current_level=approval.current_level,
        requested_by_id=approval.requested_by_id, actor_id=rejecter_id, comments=comments,
    )
    db.session.commit()
    dispatch_after_commit()
    return approval
