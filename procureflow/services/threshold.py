"""
Budget threshold classification.

    budget ≤ 1,000,000             → hod_auto_approve
    budget ≤ 5,000,000             → department_approval   (executive_approval for Finance)
    budget ≤ 25,000,000            → finance_approval      (executive_approval for Finance)
    above                          → executive_approval
"""

from procureflow.core.exceptions import ValidationError
from procureflow.models.directory import DepartmentFunction

HOD_AUTO_APPROVE_LIMIT = 1_000_000
DEPARTMENT_APPROVAL_LIMIT = 5_000_000
FINANCE_APPROVAL_LIMIT = 25_000_000


def classify_budget_threshold(budget, department_function: str | None = None) -> str:
    """Return the threshold tier for *budget* spent by a department with *department_function*."""
    if budget is None:
        raise ValidationError("Budget is required", {"budget": "missing"})
    if isinstance(budget, bool) or not isinstance(budget, (int, float)):
        raise ValidationError("Budget must be a number", {"budget": repr(budget)})
    if budget < 0:
        raise ValidationError("Budget cannot be negative", {"budget": budget})

    is_finance = department_function == DepartmentFunction.FINANCE
    if budget <= HOD_AUTO_APPROVE_LIMIT:
        return "hod_auto_approve"
    if budget <= DEPARTMENT_APPROVAL_LIMIT:
        return "executive_approval" if is_finance else "department_approval"
    if budget <= FINANCE_APPROVAL_LIMIT:
        return "executive_approval" if is_finance else "finance_approval"
    return "executive_approval"


def ensure_project_threshold(project) -> str:
    """Cache the threshold on *project*; an existing value is never recomputed."""
    if not project.budget_threshold:
        function = project.department.function if project.department else None
        project.budget_threshold = classify_budget_threshold(project.budget, function)
    return project.budget_threshold
