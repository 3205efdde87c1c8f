"""
Workflow Event Outbox.

State transitions record what happened as ``OutboxEvent`` rows in the same
transaction as the change. After commit, ``dispatch_pending_events`` hands
each pending event to its registered handlers (notifications, audit rows).

A failing handler never touches the committed transition: its partial work
is rolled back, the error is logged and stored on the event, and the event
stays ``pending`` for the next dispatch run until ``OUTBOX_MAX_ATTEMPTS``
is reached, at which point it is marked ``failed``.

Architecture:
    - emit_event:                adds an OutboxEvent to the session (no commit)
    - register_handler:          decorator, one handler per event type
    - dispatch_pending_events:   delivers pending events, one commit per event
    - dispatch_after_commit:     inline delivery when OUTBOX_DISPATCH_INLINE is on
    - requeue_failed_events:     failed → pending for a manual retry

Usage:
    emit_event("approval.step_approved", project, level="hod", approver_id=7)
    commit_project(project)
    dispatch_after_commit()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from flask import current_app
from sqlalchemy import select

from procureflow.models import db
from procureflow.models.outbox import OutboxEvent

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Handler Registry
# ═══════════════════════════════════════════════════════════════════════════

_handler_registry: dict[str, Callable] = {}


def register_handler(event_type: str):
    """Decorator to register the handler of an outbox event type.

    Usage:
        @register_handler("approval.step_approved")
        def on_step_approved(event):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _handler_registry[event_type] = fn
        return fn
    return decorator


def get_registered_handlers() -> dict[str, Callable]:
    """Return all registered event handlers."""
    return dict(_handler_registry)


# ═══════════════════════════════════════════════════════════════════════════
#  Emit / Dispatch
# ═══════════════════════════════════════════════════════════════════════════

def emit_event(event_type: str, project=None, **payload) -> OutboxEvent:
    """Record a domain event. The caller's commit persists it."""
    event = OutboxEvent(
        event_type=event_type,
        project=project,
        payload=payload,
        status="pending",
        attempts=0,
    )
    db.session.add(event)
    logger.debug(
        "Emitted %s", event_type,
        extra={"event_type": event_type, "project_id": getattr(project, "id", None)},
    )
    return event


def _deliver(event: OutboxEvent) -> None:
    handler = _handler_registry.get(event.event_type)
    if handler is None:
        logger.debug("No handler for %s; marking delivered", event.event_type)
        return
    handler(event)


def dispatch_pending_events(*, limit: int | None = None, max_attempts: int | None = None) -> dict:
    """
    Deliver pending outbox events in creation order.

    Returns:
        {"delivered": n, "retrying": n, "failed": n}
    """
    if max_attempts is None:
        max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)

    stmt = select(OutboxEvent.id).where(OutboxEvent.status == "pending").order_by(OutboxEvent.id)
    if limit:
        stmt = stmt.limit(limit)
    event_ids = list(db.session.execute(stmt).scalars())

    summary = {"delivered": 0, "retrying": 0, "failed": 0}
    for event_id in event_ids:
        event = db.session.get(OutboxEvent, event_id)
        try:
            _deliver(event)
            event.status = "delivered"
            event.delivered_at = datetime.now(timezone.utc)
            event.last_error = None
            db.session.commit()
            summary["delivered"] += 1
        except Exception as exc:
            db.session.rollback()
            event = db.session.get(OutboxEvent, event_id)
            event.attempts += 1
            event.last_error = f"{type(exc).__name__}: {exc}"
            if event.attempts >= max_attempts:
                event.status = "failed"
                summary["failed"] += 1
            else:
                summary["retrying"] += 1
            db.session.commit()
            logger.exception(
                "Outbox handler failed for %s (attempt %d/%d)",
                event.event_type, event.attempts, max_attempts,
                extra={
                    "event_type": event.event_type,
                    "event_id": event.id,
                    "project_id": event.project_id,
                    "attempts": event.attempts,
                },
            )
    if event_ids:
        logger.info("Outbox dispatch: %s", summary)
    return summary


def dispatch_after_commit() -> dict | None:
    """Deliver pending events right away when inline dispatch is enabled."""
    if not current_app.config.get("OUTBOX_DISPATCH_INLINE", True):
        return None
    return dispatch_pending_events()


def requeue_failed_events(project_id: int | None = None) -> int:
    """Move failed events back to pending with a fresh attempt budget."""
    q = OutboxEvent.query.filter_by(status="failed")
    if project_id is not None:
        q = q.filter_by(project_id=project_id)
    count = q.update({"status": "pending", "attempts": 0}, synchronize_session="fetch")
    db.session.commit()
    return count
