"""
Project service tests.

Covers:
  - Project code generation per department and year
  - Creation: validation, items, cached threshold, required documents
  - Empty chains (super admin creator) go straight to approved
  - Document submission versions
  - Team membership uniqueness and soft removal
"""

from datetime import date, datetime, timezone

import pytest

from procureflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from procureflow.models.notification import Notification
from procureflow.models.project import TeamMember
from procureflow.services.project_service import (
    DEFAULT_REQUIRED_DOCUMENTS,
    add_team_member,
    generate_project_code,
    remove_team_member,
    submit_document,
)


class TestProjectCode:

    def test_sequential_per_department(self, make_project, org):
        year = datetime.now(timezone.utc).year
        first = make_project()
        second = make_project()
        other = make_project(department_id=org.depts.operations.id)
        assert first.code == f"ENG{year}0001"
        assert second.code == f"ENG{year}0002"
        assert other.code == f"OPS{year}0001"

    def test_explicit_year(self, org):
        assert generate_project_code(org.depts.finance, 2031) == "FIN20310001"


class TestCreateProject:

    def test_threshold_cached(self, make_project):
        project = make_project(budget=3_000_000)
        assert project.budget_threshold == "department_approval"

    def test_first_level_in_status(self, make_project):
        project = make_project(scope="external")
        assert project.status == "pending_project_management_approval"

    def test_items_and_totals(self, make_project):
        project = make_project(items=[
            {"name": "Monitor", "quantity": 3, "unit_price": 150_000},
            {"name": "Dock", "unit_price": 50_000},
        ])
        assert [i.total_price for i in project.items] == [450_000, 50_000]
        assert project.items_total == 500_000

    def test_currency_from_config(self, app, make_project, monkeypatch):
        monkeypatch.setitem(app.config, "DEFAULT_CURRENCY", "USD")
        project = make_project()
        assert project.currency == "USD"

    def test_legacy_category_mapped(self, make_project):
        project = make_project(category="furniture")
        assert project.category == "office_furniture"

    @pytest.mark.parametrize("scope", ["personal", "departmental", "external"])
    def test_default_documents_per_scope(self, make_project, scope):
        project = make_project(scope=scope)
        assert tuple(d.document_type for d in project.documents) == DEFAULT_REQUIRED_DOCUMENTS[scope]

    def test_custom_documents(self, make_project):
        project = make_project(required_documents=["project_proposal"])
        assert [d.document_type for d in project.documents] == ["project_proposal"]

    def test_super_admin_project_approved_immediately(self, make_project, org):
        project = make_project(created_by_id=org.admin.id, department_id=org.depts.executive.id)
        assert project.approval_steps == []
        assert project.status == "approved"
        assert Notification.query.filter_by(recipient_id=org.admin.id, type="project_approved").count() == 1

    def test_first_approver_notified(self, make_project, org):
        make_project()
        assert Notification.query.filter_by(recipient_id=org.hods.engineering.id, type="approval_required").count() == 1

    def test_blank_name(self, make_project):
        with pytest.raises(ValidationError):
            make_project(name="  ")

    def test_unknown_scope(self, make_project):
        with pytest.raises(ValidationError, match="scope"):
            make_project(scope="global")

    def test_end_before_start(self, make_project):
        with pytest.raises(ValidationError):
            make_project(start_date=date(2026, 5, 1), end_date=date(2026, 4, 1))

    def test_item_without_name(self, make_project):
        with pytest.raises(ValidationError):
            make_project(items=[{"quantity": 1, "unit_price": 10}])

    def test_unknown_department(self, make_project):
        with pytest.raises(NotFoundError):
            make_project(department_id=999)

    def test_negative_budget(self, make_project):
        with pytest.raises(ValidationError):
            make_project(budget=-1)


class TestSubmitDocument:

    def test_submission_versions(self, make_project, org):
        project = make_project()
        submit_document(project.id, "project_proposal", org.staff.id, reference="v1.pdf")
        doc = submit_document(project.id, "project_proposal", org.staff.id, reference="v2.pdf")
        assert doc.is_submitted
        assert doc.submitted_by_id == org.staff.id
        assert [v["reference"] for v in doc.document_versions] == ["v1.pdf", "v2.pdf"]
        assert project.approval_progress == 10

    def test_unknown_document_type(self, make_project, org):
        project = make_project()
        with pytest.raises(NotFoundError):
            submit_document(project.id, "vendor_quotation", org.staff.id)


class TestTeamMembers:

    def test_add_member(self, make_project, org):
        project = make_project()
        member = add_team_member(
            project.id, org.eng_manager.id, role="analyst",
            assigned_by_id=org.staff.id, permissions={"can_view_financials": True},
        )
        assert member.is_active
        assert member.can_view_financials
        assert not member.can_manage_team
        assert project.active_team_members == [member]

    def test_duplicate_member(self, make_project, org):
        project = make_project()
        add_team_member(project.id, org.eng_manager.id)
        with pytest.raises(ConflictError):
            add_team_member(project.id, org.eng_manager.id)

    def test_soft_removal_and_readd(self, make_project, org):
        project = make_project()
        add_team_member(project.id, org.eng_manager.id)
        removed = remove_team_member(project.id, org.eng_manager.id)
        assert removed.status == "removed"
        assert not removed.is_active
        assert TeamMember.query.count() == 1

        readded = add_team_member(project.id, org.eng_manager.id, role="tester")
        assert readded.id == removed.id
        assert readded.status == "active"
        assert readded.role == "tester"

    def test_invalid_role(self, make_project, org):
        project = make_project()
        with pytest.raises(ValidationError):
            add_team_member(project.id, org.eng_manager.id, role="owner")

    def test_remove_unknown_member(self, make_project, org):
        project = make_project()
        with pytest.raises(NotFoundError):
            remove_team_member(project.id, org.eng_manager.id)
