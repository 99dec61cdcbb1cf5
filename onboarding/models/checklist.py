"""
Employee Onboarding Platform
Checklist domain models.

Models:
    - ChecklistTemplate:      reusable, ordered set of checklist items
    - ChecklistItem:          one step of a template (order index, phase, controlled_by)
    - ChecklistAssignment:    binding of one template to one user
    - ChecklistProgressItem:  per (assignment, item) completion + verification record
    - AutoAssignRule:         department / program type / stage filter per template

Architecture:
    ChecklistTemplate ──1:N──▶ ChecklistItem
    ChecklistTemplate ──1:1──▶ AutoAssignRule
    ChecklistTemplate ──1:N──▶ ChecklistAssignment ──1:N──▶ ChecklistProgressItem
    ChecklistItem     ──1:N──▶ ChecklistProgressItem

Lifecycle states (ChecklistProgressItem):
    not_completed → completed_pending → verified_approved | verified_rejected
    any completed state → not_completed (verification resets to pending)

Assignment status and completion percentage are never stored; see
onboarding.services.completion.
"""

from datetime import datetime, timezone
from enum import Enum

from onboarding.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Tag enumerations ─────────────────────────────────────────────────────────


class Stage(str, Enum):
    """Onboarding timeline stage; declaration order is timeline order."""
    PREPARE = "prepare"
    ORIENT = "orient"
    LAND = "land"
    INTEGRATE = "integrate"
    EXCEL = "excel"


STAGE_ORDER = {s.value: i for i, s in enumerate(Stage)}


class ControlledBy(str, Enum):
    EMPLOYEE = "employee"
    HR = "hr"
    BOTH = "both"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class ProgressState(str, Enum):
    NOT_COMPLETED = "not_completed"
    COMPLETED_PENDING = "completed_pending"
    VERIFIED_APPROVED = "verified_approved"
    VERIFIED_REJECTED = "verified_rejected"


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

# complete_verified: an HR-controlled item completed by a verifying role,
# where completion and approval are one action.
PROGRESS_TRANSITIONS = {
    ProgressState.NOT_COMPLETED: {
        "complete": ProgressState.COMPLETED_PENDING,
        "complete_verified": ProgressState.VERIFIED_APPROVED,
    },
    ProgressState.COMPLETED_PENDING: {
        "uncomplete": ProgressState.NOT_COMPLETED,
        "approve": ProgressState.VERIFIED_APPROVED,
        "reject": ProgressState.VERIFIED_REJECTED,
    },
    ProgressState.VERIFIED_APPROVED: {
        "uncomplete": ProgressState.NOT_COMPLETED,
    },
    ProgressState.VERIFIED_REJECTED: {
        "uncomplete": ProgressState.NOT_COMPLETED,
    },
}


def next_progress_state(state, action):
    """Return the state reached by ``action`` from ``state``, or None if not allowed."""
    return PROGRESS_TRANSITIONS.get(ProgressState(state), {}).get(action)


# ── Models ───────────────────────────────────────────────────────────────────


class ChecklistTemplate(db.Model):
    __tablename__ = "checklist_templates"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    program_type = db.Column(db.String(50), nullable=False, default="all", index=True)
    stage = db.Column(db.String(20), nullable=False, default=Stage.PREPARE.value, index=True)
    auto_assign = db.Column(db.Boolean, nullable=False, default=False)
    requires_verification = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "ChecklistItem", back_populates="template",
        cascade="all, delete-orphan", order_by="ChecklistItem.order_index",
    )
    rule = db.relationship(
        "AutoAssignRule", back_populates="template", uselist=False,
        cascade="all, delete-orphan",
    )
    assignments = db.relationship("ChecklistAssignment", back_populates="template", lazy="dynamic")

    def to_dict(self, include_items=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "program_type": self.program_type,
            "stage": self.stage,
            "auto_assign": self.auto_assign,
            "requires_verification": self.requires_verification,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<ChecklistTemplate {self.id}: {self.title[:40]}>"


class ChecklistItem(db.Model):
    __tablename__ = "checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    order_index = db.Column(db.Integer, nullable=False)
    phase = db.Column(db.String(20), nullable=False, default=Stage.PREPARE.value)
    controlled_by = db.Column(db.String(20), nullable=False, default=ControlledBy.EMPLOYEE.value)

    template = db.relationship("ChecklistTemplate", back_populates="items")
    progress_items = db.relationship(
        "ChecklistProgressItem", back_populates="item",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("template_id", "order_index", name="uq_checklist_items_template_order"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "title": self.title,
            "description": self.description,
            "is_required": self.is_required,
            "order_index": self.order_index,
            "phase": self.phase,
            "controlled_by": self.controlled_by,
        }

    def __repr__(self):
        return f"<ChecklistItem {self.id} #{self.order_index} of template {self.template_id}>"


class ChecklistAssignment(db.Model):
    """
    Binding of one template to one user.

    ``is_open`` only backs the partial unique index below; it is refreshed
    from the progress rows in the same transaction as every completion change.
    Readers use onboarding.services.completion for status.
    """

    __tablename__ = "checklist_assignments"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("checklist_templates.id"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assigned_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="NULL when created by the auto-assignment matcher",
    )
    due_date = db.Column(db.Date, nullable=True)
    is_auto_assigned = db.Column(db.Boolean, nullable=False, default=False)
    is_open = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    template = db.relationship("ChecklistTemplate", back_populates="assignments")
    user = db.relationship("User", foreign_keys=[user_id])
    progress_items = db.relationship(
        "ChecklistProgressItem", back_populates="assignment",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index(
            "uq_checklist_assignments_open_user_template",
            "user_id", "template_id",
            unique=True,
            postgresql_where=db.text("is_open IS TRUE"),
            sqlite_where=db.text("is_open = 1"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "user_id": self.user_id,
            "assigned_by": self.assigned_by,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_auto_assigned": self.is_auto_assigned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ChecklistAssignment {self.id} template={self.template_id} user={self.user_id}>"


class ChecklistProgressItem(db.Model):
    __tablename__ = "checklist_progress_items"

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(
        db.Integer, db.ForeignKey("checklist_assignments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    item_id = db.Column(
        db.Integer, db.ForeignKey("checklist_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = db.Column(db.Text, default="")
    verification_status = db.Column(
        db.String(20), nullable=False, default=VerificationStatus.PENDING.value,
    )
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    assignment = db.relationship("ChecklistAssignment", back_populates="progress_items")
    item = db.relationship("ChecklistItem", back_populates="progress_items")

    __table_args__ = (
        db.UniqueConstraint("assignment_id", "item_id", name="uq_progress_assignment_item"),
    )

    @property
    def state(self) -> ProgressState:
        if not self.is_completed:
            return ProgressState.NOT_COMPLETED
        if self.verification_status == VerificationStatus.APPROVED.value:
            return ProgressState.VERIFIED_APPROVED
        if self.verification_status == VerificationStatus.REJECTED.value:
            return ProgressState.VERIFIED_REJECTED
        return ProgressState.COMPLETED_PENDING

    def apply_state(self, new_state, actor_id=None, notes=None):
        """Write the completion and verification columns for ``new_state``.

        The only writer of these columns, so an incomplete row can never keep
        an approved/rejected verification.
        """
        now = _utcnow()
        new_state = ProgressState(new_state)
        if new_state == ProgressState.NOT_COMPLETED:
            self.is_completed = False
            self.completed_at = None
            self.completed_by = None
            self.verification_status = VerificationStatus.PENDING.value
            self.verified_by = None
            self.verified_at = None
            self.verification_notes = None
            return

        if not self.is_completed:
            self.is_completed = True
            self.completed_at = now
            self.completed_by = actor_id

        if new_state == ProgressState.COMPLETED_PENDING:
            self.verification_status = VerificationStatus.PENDING.value
            self.verified_by = None
            self.verified_at = None
            self.verification_notes = None
        else:
            self.verification_status = (
                VerificationStatus.APPROVED.value
                if new_state == ProgressState.VERIFIED_APPROVED
                else VerificationStatus.REJECTED.value
            )
            self.verified_by = actor_id
            self.verified_at = now
            self.verification_notes = notes

    def to_dict(self, include_item=True):
        d = {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "item_id": self.item_id,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
            "notes": self.notes or "",
            "verification_status": self.verification_status,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verification_notes": self.verification_notes,
            "state": self.state.value,
        }
        if include_item and self.item is not None:
            d["item"] = self.item.to_dict()
        return d

    def __repr__(self):
        return f"<ChecklistProgressItem {self.id} assignment={self.assignment_id} item={self.item_id}>"


class AutoAssignRule(db.Model):
    """Auto-assignment filter for one template. Empty lists match anything."""

    __tablename__ = "checklist_auto_assign_rules"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    departments = db.Column(db.JSON, nullable=False, default=list)
    program_types = db.Column(db.JSON, nullable=False, default=list)
    stages = db.Column(db.JSON, nullable=False, default=list)
    due_in_days = db.Column(db.Integer, nullable=True)
    auto_notify = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    template = db.relationship("ChecklistTemplate", back_populates="rule")

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "departments": list(self.departments or []),
            "program_types": list(self.program_types or []),
            "stages": list(self.stages or []),
            "due_in_days": self.due_in_days,
            "auto_notify": self.auto_notify,
        }
