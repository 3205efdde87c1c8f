"""
Budget threshold classification tests.

Covers:
  - Tier boundaries for general departments
  - Finance department escalation to executive above the auto-approve tier
  - Input validation (missing / negative / non-numeric budget)
  - Threshold caching on the project
"""

import pytest

from procureflow.core.exceptions import ValidationError
from procureflow.models.directory import DepartmentFunction
from procureflow.services.threshold import classify_budget_threshold, ensure_project_threshold

FIN = DepartmentFunction.FINANCE
GEN = DepartmentFunction.GENERAL


class TestClassifyBudgetThreshold:

    @pytest.mark.parametrize("budget", [0, 1, 500_000, 1_000_000])
    @pytest.mark.parametrize("function", [GEN, FIN, DepartmentFunction.EXECUTIVE, None])
    def test_small_budgets_auto_approve_for_every_department(self, budget, function):
        assert classify_budget_threshold(budget, function) == "hod_auto_approve"

    @pytest.mark.parametrize("budget,expected", [
        (1_000_001, "department_approval"),
        (5_000_000, "department_approval"),
        (5_000_001, "finance_approval"),
        (25_000_000, "finance_approval"),
        (25_000_001, "executive_approval"),
        (900_000_000, "executive_approval"),
    ])
    def test_general_department_tiers(self, budget, expected):
        assert classify_budget_threshold(budget, GEN) == expected

    @pytest.mark.parametrize("budget", [1_000_001, 5_000_000, 5_000_001, 12_000_000, 25_000_000, 30_000_000])
    def test_finance_department_never_gets_finance_or_department_tier(self, budget):
        assert classify_budget_threshold(budget, FIN) == "executive_approval"

    def test_float_budget(self):
        assert classify_budget_threshold(1_000_000.5, GEN) == "department_approval"

    def test_missing_budget_rejected(self):
        with pytest.raises(ValidationError, match="required"):
            classify_budget_threshold(None, GEN)

    def test_negative_budget_rejected(self):
        with pytest.raises(ValidationError, match="negative"):
            classify_budget_threshold(-1, GEN)

    @pytest.mark.parametrize("budget", ["1000", True, [1]])
    def test_non_numeric_budget_rejected(self, budget):
        with pytest.raises(ValidationError):
            classify_budget_threshold(budget, GEN)


class TestThresholdCaching:

    def test_threshold_is_cached_at_creation(self, make_project):
        project = make_project(budget=3_000_000)
        assert project.budget_threshold == "department_approval"

    def test_cached_threshold_is_not_recomputed(self, make_project):
        project = make_project(budget=3_000_000)
        project.budget = 40_000_000
        assert ensure_project_threshold(project) == "department_approval"

    def test_finance_project_escalates(self, make_project, org):
        project = make_project(
            budget=12_000_000, department_id=org.depts.finance.id,
        )
        assert project.budget_threshold == "executive_approval"
