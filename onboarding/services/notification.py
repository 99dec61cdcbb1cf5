"""
Employee Onboarding Platform
Notification Service.

Central service for creating and querying in-app notifications. The
checklist workflow talks to it through ``emit`` and the ``notify_*``
helpers; rows are added to the caller's session so a notification commits
or rolls back together with the transition that caused it.
"""

import logging
from datetime import datetime, timezone

from onboarding.core.exceptions import NotFoundError, ValidationError
from onboarding.models import db
from onboarding.models.notification import NOTIFICATION_KINDS, Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def emit(target_user_id, kind, payload, *, title, message="",
             entity_type="", entity_id=None):
        """
        Queue a notification for ``target_user_id`` in the current session.

        The caller owns the commit.

        Returns:
            The pending Notification instance.
        """
        if kind not in NOTIFICATION_KINDS:
            raise ValidationError(f"Unknown notification kind '{kind}'")
        notif = Notification(
            recipient_id=target_user_id,
            kind=kind,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload or {},
        )
        db.session.add(notif)
        logger.debug(
            "Notification queued",
            extra={"event_type": kind, "recipient_id": target_user_id},
        )
        return notif

    # ── Checklist workflow helpers ────────────────────────────────────────

    @staticmethod
    def notify_assigned(assignment, template):
        return NotificationService.emit(
            assignment.user_id,
            "checklist_assigned",
            {
                "assignment_id": assignment.id,
                "template_id": template.id,
                "actor_id": assignment.assigned_by,
                "due_date": assignment.due_date.isoformat() if assignment.due_date else None,
            },
            title=f"New checklist assigned: {template.title}",
            message=template.description or "",
            entity_type="checklist_assignment",
            entity_id=assignment.id,
        )

    @staticmethod
    def notify_transition(target_user_id, *, assignment_id, item_id, actor_id,
                          new_state, item_title, note=None):
        """Tell the counterpart role that a progress item changed state."""
        kind = {
            "completed_pending": "checklist_item_completed",
            "not_completed": "checklist_item_uncompleted",
            "verified_approved": "checklist_item_verified",
            "verified_rejected": "checklist_item_rejected",
        }[new_state]
        titles = {
            "checklist_item_completed": f"Checklist item completed: {item_title}",
            "checklist_item_uncompleted": f"Checklist item reopened: {item_title}",
            "checklist_item_verified": f"Checklist item approved: {item_title}",
            "checklist_item_rejected": f"Checklist item rejected: {item_title}",
        }
        return NotificationService.emit(
            target_user_id,
            kind,
            {
                "assignment_id": assignment_id,
                "item_id": item_id,
                "actor_id": actor_id,
                "new_state": new_state,
                "note": note,
            },
            title=titles[kind],
            message=note or "",
            entity_type="checklist_assignment",
            entity_id=assignment_id,
        )

    @staticmethod
    def notify_reminder(target_user_id, *, assignment_id, item_id, actor_id, item_title, note):
        return NotificationService.emit(
            target_user_id,
            "checklist_reminder",
            {"assignment_id": assignment_id, "item_id": item_id, "actor_id": actor_id, "note": note},
            title=f"Reminder: {item_title}",
            message=note,
            entity_type="checklist_assignment",
            entity_id=assignment_id,
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, kind=None, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        if kind:
            q = q.filter_by(kind=kind)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark a single notification as read. Other users' rows look missing."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
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
