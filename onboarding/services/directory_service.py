"""
User directory lookups and reporting-line checks.

The checklist workflow asks two questions of the directory:
  - who is this user (department, team, supervisor)?
  - does actor A hold supervisory authority over user B?

Authority rules:
  - HR-level roles (hr, admin) have authority over everyone.
  - A direct supervisor has authority over their direct reports.
  - A manager has authority over users in the same department.
  - Nobody has supervisory authority over themselves.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from onboarding.core.exceptions import ForbiddenError, NotFoundError
from onboarding.models import db
from onboarding.models.directory import Role, User

logger = logging.getLogger(__name__)


def get_user(user_id: int) -> User:
    """Fetch a user or raise NotFoundError."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def users_in_department(department: str) -> list[User]:
    return db.session.execute(
        select(User).where(User.department == department, User.is_active.is_(True)).order_by(User.id)
    ).scalars().all()


def users_in_team(team_id: str) -> list[User]:
    return db.session.execute(
        select(User).where(User.team_id == team_id, User.is_active.is_(True)).order_by(User.id)
    ).scalars().all()


def active_users() -> list[User]:
    return db.session.execute(
        select(User).where(User.is_active.is_(True)).order_by(User.id)
    ).scalars().all()


def has_authority(actor: User, subject: User) -> bool:
    """Return True if ``actor`` may verify, remind or assign on behalf of ``subject``."""
    if actor.id == subject.id:
        return False
    if actor.is_hr:
        return True
    if subject.supervisor_id is not None and subject.supervisor_id == actor.id:
        return True
    if actor.role == Role.MANAGER.value and actor.department and actor.department == subject.department:
        return True
    return False


def can_view(actor: User, subject: User) -> bool:
    """The subject themself, or anyone with authority over them."""
    return actor.id == subject.id or has_authority(actor, subject)


def require_hr(actor: User, action: str) -> None:
    if not actor.is_hr:
        raise ForbiddenError(f"Only HR can {action}.", actor_id=actor.id)


def verifier_for(subject: User, fallback_id: int | None = None) -> int | None:
    """Pick who should hear about the subject's completed items.

    The direct supervisor when there is one, otherwise ``fallback_id``
    (normally whoever made the assignment).
    """
    if subject.supervisor_id is not None:
        return subject.supervisor_id
    return fallback_id


def resolve_actor(actor_id: int | None) -> User:
    """Load the acting user. Unknown or inactive actors are refused, not 404'd."""
    actor = db.session.get(User, actor_id) if actor_id is not None else None
    if actor is None or not actor.is_active:
        raise ForbiddenError("Unknown or inactive actor.", actor_id=actor_id)
    return actor
