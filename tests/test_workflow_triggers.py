"""
Workflow trigger dispatcher tests.

Covers:
  - Scope branches: personal (tasks / allocation / procurement+inventory),
    departmental (finance reimbursement), external (purchase order)
  - Sub-trigger idempotency and guards
  - Purchase order delivery → inventory records
  - Compliance gating on inventory and procurement completion
"""

import pytest

from procureflow.core.exceptions import InvalidStateError, PreconditionError
from procureflow.models.inventory import Inventory
from procureflow.models.notification import Notification
from procureflow.models.procurement import Procurement
from procureflow.services.approval_executor import approve_project
from procureflow.services.budget_allocation_service import allocate_project_budget
from procureflow.services.phase_machine import trigger_post_approval_workflow
from procureflow.services.procurement_service import mark_procurement_delivered
from procureflow.services.task_service import find_by_project
from procureflow.services.workflow_triggers import (
    complete_inventory,
    complete_procurement,
    complete_regulatory_compliance,
    create_inventory_from_procurement,
    dispatch_implementation,
    trigger_inventory_creation,
    trigger_procurement_creation,
    trigger_regulatory_compliance,
)


def _notified(user, type_):
    return Notification.query.filter_by(recipient_id=user.id, type=type_).count() > 0


@pytest.fixture()
def external_project(make_project, approve_all, org):
    """External project above the finance tier, approved and in implementation."""
    project = make_project(
        scope="external", budget=30_000_000, requires_budget_allocation=True,
        items=[
            {"name": "Server rack", "quantity": 2, "unit_price": 5_000_000, "category": "electronics"},
            {"name": "Install service", "quantity": 1, "unit_price": 20_000_000},
        ],
    )
    project = approve_all(project)
    return trigger_post_approval_workflow(project, org.staff.id)


@pytest.fixture()
def personal_allocated(make_project, approve_all, org):
    """Personal project with allocation, created by the Finance HOD (allocation step elided)."""
    project = make_project(
        department_id=org.depts.finance.id, created_by_id=org.hods.finance.id,
        requires_budget_allocation=True,
    )
    project = approve_all(project)
    assert project.status == "pending_budget_allocation"
    allocate_project_budget(project.id, org.hods.finance.id)
    return project


class TestPersonalBranch:

    def test_no_allocation_creates_milestone_tasks(self, make_project, approve_all, org):
        project = approve_all(make_project())
        project = trigger_post_approval_workflow(project, org.staff.id)
        tasks = find_by_project(project.id)
        assert [t.milestone for t in tasks] == ["setup", "execution", "review"]
        assert project.status == "implementation"
        assert project.procurement_state == "not_started"

    def test_allocation_required_but_missing_halts(self, make_project, org):
        project = make_project(requires_budget_allocation=True)
        project.status = "approved"
        branch = dispatch_implementation(project, org.staff.id)
        assert branch == "awaiting_allocation"
        assert project.status == "pending_budget_allocation"

    def test_allocated_creates_procurement_and_inventory(self, personal_allocated, org):
        project = trigger_post_approval_workflow(personal_allocated, org.hods.finance.id)
        assert project.procurement_state == "initiated"
        assert project.inventory_state == "created"
        assert project.compliance_state == "triggered"
        assert project.status == "approved"
        assert find_by_project(project.id) == []

    def test_both_completions_start_implementation(self, personal_allocated, org):
        project = trigger_post_approval_workflow(personal_allocated, org.hods.finance.id)
        complete_procurement(project, org.hods.procurement.id)
        assert project.status == "approved"
        complete_inventory(project, org.hods.operations.id)
        assert project.status == "implementation"
        assert len(find_by_project(project.id)) == 3
        assert _notified(org.hods.legal, "compliance_review_ready")


class TestDepartmentalBranch:

    def test_routed_to_finance_reimbursement(self, make_project, approve_all, org):
        project = approve_all(make_project(scope="departmental"))
        project = trigger_post_approval_workflow(project, org.staff.id)
        assert project.status == "implementation"
        assert any(h.action == "routed_to_finance_reimbursement" for h in project.workflow_history)
        assert Procurement.query.count() == 0
        assert Inventory.query.count() == 0
        assert _notified(org.hods.finance, "reimbursement_required")


class TestExternalBranch:

    def test_purchase_order_from_items(self, external_project, org):
        po = Procurement.query.filter_by(project_id=external_project.id).one()
        assert po.po_number == "PO0001"
        assert po.status == "pending"
        assert [i.name for i in po.items] == ["Server rack", "Install service"]
        assert po.total_amount == 30_000_000
        assert external_project.status == "implementation"
        assert external_project.procurement_state == "initiated"
        assert external_project.inventory_state == "not_started"
        assert external_project.compliance_state == "triggered"

    def test_operations_and_procurement_notified(self, external_project, org):
        assert _notified(org.hods.operations, "inventory_pending")
        assert _notified(org.hods.procurement, "procurement_required")

    def test_aggregate_line_without_items(self, make_project, approve_all, org):
        project = approve_all(make_project(scope="external"))
        project = trigger_post_approval_workflow(project, org.staff.id)
        po = Procurement.query.filter_by(project_id=project.id).one()
        assert len(po.items) == 1
        assert po.items[0].total_price == 800_000
        assert project.compliance_state == "not_started"

    def test_waits_for_allocation(self, make_project, org):
        project = make_project(scope="external", budget=30_000_000, requires_budget_allocation=True)
        project.status = "approved"
        assert dispatch_implementation(project, org.staff.id) == "awaiting_allocation"
        assert project.procurement_state == "not_started"


class TestSubTriggers:

    def test_procurement_creation_is_idempotent(self, external_project, org):
        po = trigger_procurement_creation(external_project, org.staff.id)
        again = trigger_procurement_creation(external_project, org.staff.id)
        assert po.id == again.id
        assert Procurement.query.count() == 1

    def test_inventory_creation_once(self, external_project, org):
        first = trigger_inventory_creation(external_project, org.staff.id)
        second = trigger_inventory_creation(external_project, org.staff.id)
        assert [r.id for r in first] == [r.id for r in second]
        assert first[0].code == "INV0001"
        assert first[0].status == "pending_setup"
        assert external_project.inventory_state == "created"

    def test_requires_approved_project(self, make_project, org):
        project = make_project()
        with pytest.raises(PreconditionError):
            trigger_inventory_creation(project, org.staff.id)
        assert project.inventory_state == "not_started"

    def test_compliance_needs_legal_step(self, make_project, approve_all, org):
        project = approve_all(make_project())
        with pytest.raises(PreconditionError):
            trigger_regulatory_compliance(project, org.staff.id)

    def test_complete_before_start_rejected(self, make_project, approve_all, org):
        project = approve_all(make_project())
        with pytest.raises(InvalidStateError):
            complete_inventory(project, org.staff.id)
        with pytest.raises(InvalidStateError):
            complete_procurement(project, org.staff.id)

    def test_completing_twice_is_noop(self, external_project, org):
        complete_procurement(external_project, org.staff.id)
        step = external_project.workflow_step
        complete_procurement(external_project, org.staff.id)
        assert external_project.workflow_step == step
        assert external_project.procurement_state == "completed"


class TestDelivery:

    def test_delivery_creates_inventory_per_line(self, external_project, org):
        po = Procurement.query.filter_by(project_id=external_project.id).one()
        po, records = mark_procurement_delivered(po.id, org.hods.procurement.id)
        assert po.status == "delivered"
        assert po.delivered_at is not None
        assert [r.name for r in records] == ["Server rack", "Install service"]
        assert records[0].quantity == 2
        assert records[0].type == "electronics"
        assert all(r.procurement_id == po.id for r in records)
        assert external_project.inventory_state == "created"
        assert _notified(org.hods.operations, "inventory_setup_required")
        assert _notified(org.hods.procurement, "delivery_acknowledged")

    def test_second_delivery_rejected(self, external_project, org):
        po = Procurement.query.filter_by(project_id=external_project.id).one()
        mark_procurement_delivered(po.id, org.hods.procurement.id)
        with pytest.raises(InvalidStateError):
            mark_procurement_delivered(po.id, org.hods.procurement.id)

    def test_inventory_expansion_idempotent(self, external_project, org):
        po = Procurement.query.filter_by(project_id=external_project.id).one()
        _, records = mark_procurement_delivered(po.id, org.hods.procurement.id)
        again = create_inventory_from_procurement(po, org.hods.procurement.id)
        assert [r.id for r in again] == [r.id for r in records]
        assert Inventory.query.count() == 2


class TestComplianceGate:

    def test_blocked_until_inventory_and_procurement_complete(self, external_project, org):
        with pytest.raises(PreconditionError):
            complete_regulatory_compliance(external_project, org.hods.legal.id)
        assert external_project.compliance_state == "triggered"

    def test_full_compliance_flow(self, external_project, org):
        po = Procurement.query.filter_by(project_id=external_project.id).one()
        mark_procurement_delivered(po.id, org.hods.procurement.id)
        complete_procurement(external_project, org.hods.procurement.id)
        complete_inventory(external_project, org.hods.operations.id)
        assert _notified(org.hods.legal, "compliance_review_ready")

        project = complete_regulatory_compliance(external_project, org.hods.legal.id, {"reference": "REG-1"})
        assert project.compliance_state == "completed"
        assert project.compliance_completed_by_id == org.hods.legal.id
        assert project.progress == 75
