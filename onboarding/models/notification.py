"""
Employee Onboarding Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from onboarding.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_KINDS = {
    "checklist_assigned",
    "checklist_item_completed",
    "checklist_item_uncompleted",
    "checklist_item_verified",
    "checklist_item_rejected",
    "checklist_reminder",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    kind = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="checklist_assignment/checklist_progress")
    entity_id = db.Column(db.Integer, nullable=True)
    payload = db.Column(db.JSON, default=dict)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload or {},
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
