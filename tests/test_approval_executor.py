"""
Approval chain executor tests.

Covers:
  - Approving the current step and status progression
  - Chain completion with and without budget allocation
  - Out-of-order / unknown-level / awaiting-revision errors
  - Rejection leaves later steps untouched
  - Notifications emitted through the outbox (next approver, Finance)
  - Optimistic version check on concurrent writes
"""

import pytest
from sqlalchemy import text

from procureflow.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from procureflow.models import db
from procureflow.models.notification import Notification
from procureflow.services.approval_executor import approve_project, reject_project
from procureflow.services.helpers.lookups import commit_project


def _notifications(recipient_id, type_=None):
    q = Notification.query.filter_by(recipient_id=recipient_id)
    if type_:
        q = q.filter_by(type=type_)
    return q.all()


class TestApprove:

    def test_first_approval_moves_status_to_next_level(self, make_project, org):
        project = make_project()
        project = approve_project(project.id, org.hods.engineering.id, "hod", "fine")
        step = project.approval_steps[0]
        assert step.status == "approved"
        assert step.approver_id == org.hods.engineering.id
        assert step.comments == "fine"
        assert step.approved_at is not None
        assert project.status == "pending_project_management_approval"

    def test_last_required_step_sets_approved(self, make_project, org):
        project = make_project()
        approve_project(project.id, org.hods.engineering.id, "hod")
        project = approve_project(project.id, org.hods.pm.id, "project_management")
        assert project.status == "approved"
        assert project.workflow_phase == "approval"
        assert project.workflow_history[-1].action == "approval_completed"

    def test_next_approver_notified(self, make_project, org):
        project = make_project()
        approve_project(project.id, org.hods.engineering.id, "hod")
        assert _notifications(org.hods.pm.id, "approval_required")

    def test_creator_notified_on_full_approval(self, make_project, org, approve_all):
        project = make_project()
        approve_all(project)
        assert _notifications(org.staff.id, "project_approved")

    def test_unknown_level_raises_not_found(self, make_project, org):
        project = make_project()
        with pytest.raises(NotFoundError):
            approve_project(project.id, org.hods.finance.id, "finance")

    def test_unknown_project_raises_not_found(self, org):
        with pytest.raises(NotFoundError, match="Project id=999"):
            approve_project(999, org.hods.finance.id, "hod")

    def test_out_of_order_approval_rejected(self, make_project, org):
        project = make_project()
        with pytest.raises(InvalidStateError, match="not the current"):
            approve_project(project.id, org.hods.pm.id, "project_management")
        assert project.approval_steps[1].status == "pending"

    def test_already_approved_step_cannot_be_approved_again(self, make_project, org):
        project = make_project()
        approve_project(project.id, org.hods.engineering.id, "hod")
        with pytest.raises(NotFoundError):
            approve_project(project.id, org.hods.engineering.id, "hod")


class TestBudgetAllocationGate:

    def test_external_scenario_waits_for_allocation(self, make_project, org, approve_all):
        project = make_project(scope="external", budget=30_000_000, requires_budget_allocation=True)
        project = approve_all(project, until="budget_allocation")
        assert [s.status for s in project.approval_steps] == [
            "approved", "approved", "approved", "approved", "pending",
        ]
        assert project.status == "pending_budget_allocation"
        assert _notifications(org.hods.finance.id, "budget_allocation_required")

    def test_allocation_step_approval_completes_chain(self, make_project, org, approve_all):
        project = make_project(scope="external", budget=30_000_000, requires_budget_allocation=True)
        project = approve_all(project, until="budget_allocation")
        project = approve_project(project.id, org.hods.finance.id, "budget_allocation")
        assert project.status == "approved"

    def test_legal_approval_notifies_finance_for_budget_review(self, make_project, org):
        project = make_project(scope="external", budget=30_000_000, requires_budget_allocation=True)
        approve_project(project.id, org.hods.pm.id, "project_management")
        approve_project(project.id, org.hods.legal.id, "legal_compliance")
        assert _notifications(org.hods.finance.id, "budget_review")

    def test_executive_approval_without_allocation_does_not_ask_finance(self, make_project, org, approve_all):
        project = make_project(budget=30_000_000)
        project = approve_all(project)
        assert project.status == "approved"
        assert not _notifications(org.hods.finance.id, "budget_allocation_required")


class TestReject:

    def test_reject_sets_revision_required_and_leaves_later_steps(self, make_project, org):
        project = make_project(budget=30_000_000)
        approve_project(project.id, org.hods.engineering.id, "hod")
        project = reject_project(project.id, org.hods.pm.id, "project_management", "missing quotes")
        statuses = [s.status for s in project.approval_steps]
        assert statuses == ["approved", "rejected", "pending", "pending"]
        assert project.status == "revision_required"
        assert _notifications(org.staff.id, "project_rejected")

    def test_no_approval_while_awaiting_revision(self, make_project, org):
        project = make_project(budget=30_000_000)
        reject_project(project.id, org.hods.engineering.id, "hod")
        with pytest.raises(InvalidStateError, match="revision"):
            approve_project(project.id, org.hods.pm.id, "project_management")

    def test_reject_out_of_order(self, make_project, org):
        project = make_project()
        with pytest.raises(InvalidStateError):
            reject_project(project.id, org.hods.pm.id, "project_management")


class TestOptimisticLocking:

    def test_stale_write_raises_conflict(self, make_project):
        project = make_project()
        db.session.execute(
            text("UPDATE projects SET version = version + 1 WHERE id = :id"), {"id": project.id},
        )
        project.name = "Renamed"
        with pytest.raises(ConflictError, match="version"):
            commit_project(project)
