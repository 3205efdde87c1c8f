"""
Domain event outbox.

State transitions add an ``OutboxEvent`` in the same transaction as the
change they describe. Delivery (notifications, audit rows) happens after
commit; a failing handler leaves the row ``pending`` with ``last_error`` set
until ``OUTBOX_MAX_ATTEMPTS`` is reached, then marks it ``failed``.

Lifecycle:
    pending → delivered
    pending → failed   (attempts exhausted)
    failed  → pending  (manual requeue)
"""

from datetime import datetime, timezone

from procureflow.models import db

OUTBOX_TRANSITIONS = {
    "pending": ["delivered", "failed"],
    "failed": ["pending"],
    "delivered": [],
}


def validate_outbox_transition(old_status, new_status):
    return new_status in OUTBOX_TRANSITIONS.get(old_status, [])


class OutboxEvent(db.Model):
    __tablename__ = "outbox_events"

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(60), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    payload = db.Column(db.JSON, default=dict)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    project = db.relationship("Project")

    def to_dict(self):
        return {
            "id": self.id,
            "event_type": self.event_type,
            "project_id": self.project_id,
            "payload": self.payload or {},
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
        }

    def __repr__(self):
        return f"<OutboxEvent {self.id}: {self.event_type} ({self.status})>"
