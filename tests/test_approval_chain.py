"""
Approval chain generation tests.

Covers:
  - Personal / departmental / external topologies per threshold and
    budget-allocation flag
  - Self-approval elision (creator is HOD of a step's department)
  - Super-admin creators get an empty chain
  - Chain invariants: strictly ordered, all pending, never regenerated
  - Rule objects are pure and testable without the database
"""

from types import SimpleNamespace

import pytest

from procureflow.core.exceptions import NotFoundError, ValidationError
from procureflow.models import db
from procureflow.models.directory import Department
from procureflow.services.approval_chain import (
    CHAIN_RULES,
    ChainContext,
    DepartmentalRule,
    ExternalRule,
    PersonalRule,
    generate_approval_chain,
)
from procureflow.services.directory import get_directory


def _levels(project):
    return [s.level for s in project.approval_steps]


# ═════════════════════════════════════════════════════════════════════════════
# Pure rule tests (no database)
# ═════════════════════════════════════════════════════════════════════════════


def _ctx(threshold, ba=None, creator_level=300, hod_of=()):
    depts = {
        name: SimpleNamespace(id=i, name=name)
        for i, name in enumerate(
            ["general", "project_management", "legal_compliance", "finance", "executive"], start=1,
        )
    }
    return ChainContext(
        threshold=threshold,
        requires_budget_allocation=ba,
        project_department=depts["general"],
        departments={k: v for k, v in depts.items() if k != "general"},
        creator_level=creator_level,
        creator_hod_department_ids=frozenset(hod_of),
    )


class TestChainRules:

    def test_rules_registered_per_scope(self):
        assert set(CHAIN_RULES) == {"personal", "departmental", "external"}

    @pytest.mark.parametrize("threshold,ba,expected", [
        ("hod_auto_approve", None, ["hod", "project_management"]),
        ("department_approval", False, ["hod", "project_management"]),
        ("finance_approval", None, ["hod", "project_management", "finance"]),
        ("executive_approval", None, ["hod", "project_management", "finance", "executive"]),
        ("hod_auto_approve", True,
         ["hod", "project_management", "legal_compliance", "finance", "budget_allocation"]),
        ("executive_approval", True,
         ["hod", "project_management", "legal_compliance", "finance", "executive", "budget_allocation"]),
    ])
    def test_personal(self, threshold, ba, expected):
        assert [s.level for s in PersonalRule().build_steps(_ctx(threshold, ba))] == expected

    @pytest.mark.parametrize("threshold,ba,expected", [
        ("hod_auto_approve", None, ["hod"]),
        ("department_approval", None, ["hod"]),
        ("finance_approval", None, ["project_management", "hod", "finance", "executive"]),
        ("hod_auto_approve", True, ["project_management", "hod", "finance", "executive"]),
    ])
    def test_departmental(self, threshold, ba, expected):
        assert [s.level for s in DepartmentalRule().build_steps(_ctx(threshold, ba))] == expected

    @pytest.mark.parametrize("threshold,ba,expected", [
        ("department_approval", None, ["project_management"]),
        ("finance_approval", None, ["project_management", "legal_compliance", "finance", "executive"]),
        ("finance_approval", False, ["project_management", "legal_compliance", "executive"]),
        ("executive_approval", True,
         ["project_management", "legal_compliance", "finance", "executive", "budget_allocation"]),
    ])
    def test_external(self, threshold, ba, expected):
        assert [s.level for s in ExternalRule().build_steps(_ctx(threshold, ba))] == expected

    def test_super_admin_creator_gets_empty_chain(self):
        assert PersonalRule().build_steps(_ctx("executive_approval", True, creator_level=1000)) == []

    def test_step_elided_when_creator_heads_its_department(self):
        # creator heads "finance" (id 4): finance and budget_allocation steps vanish
        steps = PersonalRule().build_steps(_ctx("hod_auto_approve", True, creator_level=700, hod_of=[4]))
        assert [s.level for s in steps] == ["hod", "project_management", "legal_compliance"]


# ═════════════════════════════════════════════════════════════════════════════
# Persisted chains
# ═════════════════════════════════════════════════════════════════════════════


class TestGenerateApprovalChain:

    def test_plain_staff_personal_chain(self, make_project, org):
        project = make_project(budget=800_000)
        assert project.budget_threshold == "hod_auto_approve"
        assert _levels(project) == ["hod", "project_management"]
        assert project.approval_steps[0].department_id == org.depts.engineering.id
        assert project.approval_steps[1].department_id == org.depts.pm.id
        assert project.status == "pending_hod_approval"

    def test_external_full_chain_with_allocation(self, make_project):
        project = make_project(scope="external", budget=30_000_000, requires_budget_allocation=True)
        assert _levels(project) == [
            "project_management", "legal_compliance", "finance", "executive", "budget_allocation",
        ]

    def test_steps_strictly_ordered_and_pending(self, make_project):
        project = make_project(budget=30_000_000, requires_budget_allocation=True)
        positions = [s.position for s in project.approval_steps]
        assert positions == sorted(positions) == list(range(len(positions)))
        assert all(s.status == "pending" and s.required for s in project.approval_steps)

    def test_creator_hod_elides_own_step(self, make_project, org):
        project = make_project(created_by_id=org.hods.engineering.id)
        assert _levels(project) == ["project_management"]
        assert project.status == "pending_project_management_approval"

    def test_pm_member_who_is_not_hod_keeps_pm_step(self, make_project, org):
        project = make_project(created_by_id=org.pm_staff.id, department_id=org.depts.pm.id)
        assert _levels(project) == ["hod", "project_management"]

    def test_pm_hod_in_own_department_gets_empty_chain(self, make_project, org):
        project = make_project(created_by_id=org.hods.pm.id, department_id=org.depts.pm.id)
        assert project.approval_steps == []
        assert project.status == "approved"

    def test_super_admin_gets_empty_chain(self, make_project, org):
        project = make_project(created_by_id=org.admin.id, budget=50_000_000)
        assert project.approval_steps == []
        assert project.status == "approved"

    def test_chain_not_regenerated_after_budget_change(self, make_project):
        project = make_project(budget=800_000)
        before = _levels(project)
        project.budget = 60_000_000
        project.scope = "external"
        generate_approval_chain(project, get_directory())
        assert _levels(project) == before

    def test_missing_department_function_raises(self, make_project, org):
        legal = db.session.get(Department, org.depts.legal.id)
        legal.is_active = False
        db.session.commit()
        with pytest.raises(NotFoundError, match="legal_compliance"):
            make_project(scope="external", budget=30_000_000)

    def test_unknown_scope_rejected(self, make_project):
        with pytest.raises(ValidationError, match="scope"):
            make_project(scope="global")
