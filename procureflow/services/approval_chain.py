"""
Approval Chain Generator.

Decides, once per project, the ordered list of approval levels it must pass.
Topology is fixed per scope; budget threshold and the budget-allocation flag
switch optional steps on:

    personal      HOD → PM → [BA] Legal → [BA | finance/executive tier] Finance
                  → [executive tier] Executive → [BA] Budget allocation
    departmental  [full] PM → HOD → [full] Finance → [full] Executive
    external      PM → [full] Legal → [full, BA not False] Finance
                  → [full] Executive → [BA, full] Budget allocation

    full = threshold in {finance_approval, executive_approval} or BA

Self-approval elision: a step is left out entirely when the creator is the
HOD of that step's department. Creators at super-admin level get an empty
chain. Elided steps leave no record on the project.

Each scope is a rule object with a pure ``build_steps(ctx)``; all directory
lookups are resolved into the ``ChainContext`` before the rule runs.

Usage:
    steps = generate_approval_chain(project, get_directory())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from procureflow.core.exceptions import NotFoundError, ValidationError
from procureflow.models.directory import Department, DepartmentFunction, RoleLevel
from procureflow.models.project import ProjectApprovalStep
from procureflow.services.threshold import ensure_project_threshold

logger = logging.getLogger(__name__)

FULL_CHAIN_THRESHOLDS = frozenset({"finance_approval", "executive_approval"})

# Department function that owns each non-HOD level
LEVEL_FUNCTIONS = {
    "project_management": DepartmentFunction.PROJECT_MANAGEMENT,
    "legal_compliance": DepartmentFunction.LEGAL_COMPLIANCE,
    "finance": DepartmentFunction.FINANCE,
    "executive": DepartmentFunction.EXECUTIVE,
    "budget_allocation": DepartmentFunction.FINANCE,
}


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StepSpec:
    """One step of a generated chain, before it is persisted."""
    level: str
    department: Department | None


@dataclass(frozen=True)
class ChainContext:
    """Everything a chain rule needs, resolved up front."""
    threshold: str
    requires_budget_allocation: bool | None
    project_department: Department
    departments: dict = field(default_factory=dict)
    creator_level: int = 0
    creator_hod_department_ids: frozenset = frozenset()

    @property
    def budget_allocation(self) -> bool:
        return bool(self.requires_budget_allocation)

    @property
    def full_chain(self) -> bool:
        return self.threshold in FULL_CHAIN_THRESHOLDS or self.budget_allocation

    def department_for(self, level: str) -> Department | None:
        if level == "hod":
            return self.project_department
        return self.departments.get(LEVEL_FUNCTIONS[level])

    def step(self, level: str) -> StepSpec | None:
        """StepSpec for *level*, or None when the creator heads that department."""
        dept = self.department_for(level)
        if dept is not None and dept.id in self.creator_hod_department_ids:
            return None
        return StepSpec(level=level, department=dept)


# ═════════════════════════════════════════════════════════════════════════════
# Chain Rules
# ═════════════════════════════════════════════════════════════════════════════

class ChainRule:
    """Base rule: ``levels`` decides topology, ``build_steps`` applies elision."""

    scope: str = ""

    def levels(self, ctx: ChainContext) -> list[str]:
        raise NotImplementedError

    def build_steps(self, ctx: ChainContext) -> list[StepSpec]:
        if ctx.creator_level >= RoleLevel.SUPER_ADMIN:
            return []
        steps = []
        for level in self.levels(ctx):
            spec = ctx.step(level)
            if spec is not None:
                steps.append(spec)
        return steps


class PersonalRule(ChainRule):
    scope = "personal"

    def levels(self, ctx):
        levels = ["hod", "project_management"]
        if ctx.budget_allocation:
            levels.append("legal_compliance")
        if ctx.budget_allocation or ctx.threshold in FULL_CHAIN_THRESHOLDS:
            levels.append("finance")
        if ctx.threshold == "executive_approval":
            levels.append("executive")
        if ctx.budget_allocation:
            levels.append("budget_allocation")
        return levels


class DepartmentalRule(ChainRule):
    scope = "departmental"

    def levels(self, ctx):
        if not ctx.full_chain:
            return ["hod"]
        return ["project_management", "hod", "finance", "executive"]


class ExternalRule(ChainRule):
    scope = "external"

    def levels(self, ctx):
        levels = ["project_management"]
        if not ctx.full_chain:
            return levels
        levels.append("legal_compliance")
        if ctx.requires_budget_allocation is not False:
            levels.append("finance")
        levels.append("executive")
        if ctx.budget_allocation:
            levels.append("budget_allocation")
        return levels


CHAIN_RULES: dict[str, ChainRule] = {
    rule.scope: rule for rule in (PersonalRule(), DepartmentalRule(), ExternalRule())
}


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def build_chain_context(project, directory) -> ChainContext:
    """Resolve departments and creator identity for *project*."""
    if project.department is None:
        raise ValidationError("Project department is required", {"department_id": project.department_id})

    threshold = ensure_project_threshold(project)

    departments = {}
    for function in set(LEVEL_FUNCTIONS.values()):
        dept = directory.by_function(function)
        if dept is not None:
            departments[function] = dept

    creator = project.created_by
    creator_level = creator.role_level if creator else 0
    hod_of = frozenset()
    if creator is not None and creator.is_hod and creator.department_id is not None:
        hod_of = frozenset({creator.department_id})

    return ChainContext(
        threshold=threshold,
        requires_budget_allocation=project.requires_budget_allocation,
        project_department=project.department,
        departments=departments,
        creator_level=creator_level,
        creator_hod_department_ids=hod_of,
    )


def build_chain_steps(project, directory) -> list[StepSpec]:
    """Pure chain computation for *project* (nothing is persisted)."""
    rule = CHAIN_RULES.get(project.scope)
    if rule is None:
        raise ValidationError(f"Unknown project scope: {project.scope!r}", {"scope": project.scope})
    ctx = build_chain_context(project, directory)
    steps = rule.build_steps(ctx)

    missing = [s.level for s in steps if s.department is None]
    if missing:
        raise NotFoundError(
            "Department", detail=f"no department configured for approval level(s) {', '.join(missing)}",
        )
    return steps


def generate_approval_chain(project, directory) -> list[ProjectApprovalStep]:
    """
    Generate and attach the approval chain of *project*.

    The chain is generated once; calling this on a project that already has
    steps returns the existing chain untouched.
    """
    if project.approval_steps:
        return list(project.approval_steps)

    specs = build_chain_steps(project, directory)
    for position, spec in enumerate(specs):
        project.approval_steps.append(ProjectApprovalStep(
            position=position,
            level=spec.level,
            department=spec.department,
            status="pending",
            required=True,
        ))

    logger.info(
        "Generated %d-step approval chain (%s, %s): %s",
        len(specs), project.scope, project.budget_threshold,
        " → ".join(s.level for s in specs) or "empty",
        extra={"project_id": project.id},
    )
    return list(project.approval_steps)
