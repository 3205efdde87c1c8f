"""
Procurement Workflow Platform
Notification Service.

Central service for creating, fanning out and querying in-app
notifications. Workflow code never calls this directly: outbox handlers
(``procureflow.services.event_handlers``) do, after the state transition
that caused the notification has committed.
"""

from datetime import datetime, timezone

from procureflow.models import db
from procureflow.models.notification import Notification
from procureflow.services.directory import get_directory


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_id, title, message="", type="system", priority="medium", data=None):
        """
        Create a single notification record.

        Flushes only; the outbox dispatcher owns the transaction.
        """
        notif = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            data=data or {},
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def notify_function(function, *, title, message="", type="system", priority="medium", data=None):
        """
        Notify the people standing behind a department function
        (its HOD, or its managers when no HOD is set).

        Returns:
            List of created Notification instances.
        """
        return [
            NotificationService.create(
                recipient_id=user.id, title=title, message=message,
                type=type, priority=priority, data=data,
            )
            for user in get_directory().notification_targets(function)
        ]

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = q.order_by(Notification.id.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
