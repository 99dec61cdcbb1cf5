"""
Directory model — the user records the checklist workflow reads.

User management screens live elsewhere; this table is the lookup the
checklist core needs: role, department, team, direct supervisor and the
onboarding attributes (program type, stage) that auto-assignment rules
match against.
"""

from datetime import datetime, timezone
from enum import Enum

from onboarding.models import db


class Role(str, Enum):
    EMPLOYEE = "employee"
    SUPERVISOR = "supervisor"
    MANAGER = "manager"
    HR = "hr"
    ADMIN = "admin"


HR_ROLES = frozenset({Role.HR.value, Role.ADMIN.value})


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default=Role.EMPLOYEE.value)
    department = db.Column(db.String(100), nullable=True, index=True)
    team_id = db.Column(db.String(64), nullable=True, index=True)
    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    program_type = db.Column(db.String(50), nullable=True)
    stage = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    supervisor = db.relationship("User", remote_side=[id], backref="direct_reports")

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "department": self.department,
            "team_id": self.team_id,
            "supervisor_id": self.supervisor_id,
            "program_type": self.program_type,
            "stage": self.stage,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email} ({self.role})>"
