"""
Platform-wide exception hierarchy.

All services raise these types so callers (controllers, CLI commands, tests)
can handle one taxonomy instead of importing ad-hoc classes from service
modules.

Usage:
    from procureflow.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="Project", resource_id=42)
    raise InvalidStateError("Step 'finance' is not the current approval step")
"""


class NotFoundError(Exception):
    """Raised when a referenced project, step, department or user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "ApprovalStep").
        resource_id: The key that was looked up.
        detail: Optional extra context appended to the message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        detail: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.detail = detail
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write collides with a unique value or a concurrent update.

    Args:
        resource: Model name.
        field: The field that collided (``version`` for optimistic-lock failures).
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} conflicts with an existing record"
        super().__init__(msg)


# ── Workflow errors ──────────────────────────────────────────────────────────


class WorkflowError(Exception):
    """Base class for approval-chain and phase state machine errors."""


class InvalidStateError(WorkflowError):
    """Operation attempted against a step or status that does not permit it.

    Examples: approving a step that is not the current one, resubmitting a
    project that is not in ``revision_required``.
    """

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message)


class InvalidTransitionError(WorkflowError):
    """Workflow phase moved backwards or skipped a phase."""

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Workflow phase can only stay or advance one phase: current={current!r}, attempted={attempted!r}"
        )


class PreconditionError(WorkflowError):
    """Dispatcher or sub-trigger invoked before its precondition holds."""

    def __init__(self, message: str, *, precondition: str | None = None) -> None:
        self.precondition = precondition
        super().__init__(message)
