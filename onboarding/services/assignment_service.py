"""
Checklist Assignment Manager.

Binds a template to a user and materializes one progress row per template
item in the same transaction.

At most one open assignment may exist per (user, template). ``assign`` checks
under a row lock and the partial unique index
``uq_checklist_assignments_open_user_template`` is the final guard: an
IntegrityError from a racing insert becomes a ConflictError.

Bulk assignment commits per user so one failure never rolls back the others.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from onboarding.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from onboarding.models import db
from onboarding.models.checklist import ChecklistAssignment, ChecklistProgressItem
from onboarding.models.directory import Role, User
from onboarding.services import completion, directory_service, template_service
from onboarding.services.notification import NotificationService

logger = logging.getLogger(__name__)

_ERROR_CODES = {
    NotFoundError: "NOT_FOUND",
    ConflictError: "CONFLICT",
    ForbiddenError: "FORBIDDEN",
    ValidationError: "VALIDATION_ERROR",
}


# ── Serialization ────────────────────────────────────────────────────────────


def serialize(assignment: ChecklistAssignment, today: date | None = None) -> dict:
    """Assignment row plus template summary and derived completion fields."""
    d = assignment.to_dict()
    tpl = assignment.template
    d["template"] = {
        "id": tpl.id,
        "title": tpl.title,
        "stage": tpl.stage,
        "program_type": tpl.program_type,
        "requires_verification": tpl.requires_verification,
    }
    d.update(completion.summarize(assignment, today=today))
    return d


def serialize_detail(assignment: ChecklistAssignment, today: date | None = None) -> dict:
    d = serialize(assignment, today=today)
    requires = assignment.template.requires_verification
    rows = sorted(
        assignment.progress_items,
        key=lambda p: template_service.ordered_items_key(p.item),
    )
    items = []
    for p in rows:
        row = p.to_dict()
        row["is_done"] = completion.is_done(p, requires)
        items.append(row)
    d["progress_items"] = items
    if assignment.user is not None:
        d["user"] = {
            "id": assignment.user.id,
            "full_name": assignment.user.full_name,
            "department": assignment.user.department,
            "team_id": assignment.user.team_id,
        }
    return d


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_assignment_or_404(assignment_id: int) -> ChecklistAssignment:
    a = db.session.get(ChecklistAssignment, assignment_id)
    if a is None:
        raise NotFoundError(resource="ChecklistAssignment", resource_id=assignment_id)
    return a


def _open_assignment_for(user_id: int, template_id: int) -> ChecklistAssignment | None:
    """Return the user's open assignment for the template, locking candidate rows."""
    candidates = db.session.execute(
        select(ChecklistAssignment)
        .where(
            ChecklistAssignment.user_id == user_id,
            ChecklistAssignment.template_id == template_id,
        )
        .with_for_update()
    ).scalars().all()
    for a in candidates:
        if completion.is_open(a):
            return a
    return None


def has_open_assignment(user_id: int, template_id: int) -> bool:
    return _open_assignment_for(user_id, template_id) is not None


# ── Create ───────────────────────────────────────────────────────────────────


def _create(actor: User | None, user_id: int, template_id: int, due_date: date | None,
            is_auto_assigned: bool, notify: bool) -> ChecklistAssignment:
    """Build assignment + progress rows in the current session. Caller commits."""
    tpl = template_service.get_template_or_404(template_id)
    user = directory_service.get_user(user_id)

    if actor is not None and not directory_service.has_authority(actor, user):
        raise ForbiddenError(
            f"User {actor.id} has no authority to assign checklists to user {user.id}.",
            actor_id=actor.id,
        )
    if due_date is not None and not isinstance(due_date, date):
        raise ValidationError("due_date must be a date", details={"due_date": "invalid"})

    existing = _open_assignment_for(user.id, tpl.id)
    if existing is not None:
        raise ConflictError(
            "ChecklistAssignment",
            message=(
                f"User {user.id} already has an open assignment (id={existing.id}) "
                f"for template {tpl.id}."
            ),
        )

    assignment = ChecklistAssignment(
        template_id=tpl.id,
        user_id=user.id,
        assigned_by=actor.id if actor is not None else None,
        due_date=due_date,
        is_auto_assigned=is_auto_assigned,
        is_open=True,
    )
    db.session.add(assignment)
    db.session.flush()

    for item in tpl.items:
        assignment.progress_items.append(
            ChecklistProgressItem(assignment_id=assignment.id, item_id=item.id)
        )

    if notify:
        NotificationService.notify_assigned(assignment, tpl)
    return assignment


def assign(actor_id: int | None, user_id: int, template_id: int, due_date: date | None = None,
           *, is_auto_assigned: bool = False, notify: bool = True) -> dict:
    """Assign a template to a user.

    Args:
        actor_id: Acting user, or None when the auto-assignment matcher runs.
        due_date: Optional due date; overdue status is derived on read.
        is_auto_assigned: Recorded on the assignment for reporting.
        notify: Queue a ``checklist_assigned`` notification for the assignee.

    Returns:
        Serialized assignment with derived fields.

    Raises:
        NotFoundError: template or user does not exist.
        ForbiddenError: actor has no authority over the user.
        ConflictError: an open assignment already exists for the pair.
    """
    actor = directory_service.resolve_actor(actor_id) if actor_id is not None else None
    try:
        assignment = _create(actor, user_id, template_id, due_date, is_auto_assigned, notify)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            "ChecklistAssignment",
            message=f"User {user_id} already has an open assignment for template {template_id}.",
        ) from None
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Checklist assigned template=%s user=%s items=%s auto=%s",
        template_id, user_id, len(assignment.progress_items), is_auto_assigned,
        extra={"assignment_id": assignment.id, "actor_id": actor_id, "event_type": "checklist_assigned"},
    )
    return serialize(assignment)


def bulk_assign(actor_id: int, template_id: int, user_ids: list, due_date: date | None = None) -> list[dict]:
    """Assign one template to many users with independent outcomes.

    Returns:
        One entry per input user id, in input order:
        ``{"user_id", "ok": True, "assignment"}`` or
        ``{"user_id", "ok": False, "error", "code"}``.
    """
    if not isinstance(user_ids, list) or not user_ids:
        raise ValidationError("user_ids must be a non-empty list", details={"user_ids": "required"})

    results = []
    for uid in user_ids:
        try:
            if isinstance(uid, bool) or not isinstance(uid, int):
                raise ValidationError(f"Invalid user id {uid!r}", details={"user_ids": "invalid"})
            assignment = assign(actor_id, uid, template_id, due_date)
            results.append({"user_id": uid, "ok": True, "assignment": assignment})
        except (NotFoundError, ConflictError, ForbiddenError, ValidationError) as exc:
            results.append({
                "user_id": uid,
                "ok": False,
                "error": str(exc),
                "code": _ERROR_CODES[type(exc)],
            })

    succeeded = sum(1 for r in results if r["ok"])
    logger.info(
        "Bulk assignment template=%s requested=%s succeeded=%s",
        template_id, len(user_ids), succeeded,
        extra={"actor_id": actor_id, "event_type": "checklist_bulk_assigned"},
    )
    return results


# ── Read ─────────────────────────────────────────────────────────────────────


def get_assignment_detail(actor_id: int, assignment_id: int) -> dict:
    actor = directory_service.resolve_actor(actor_id)
    a = get_assignment_or_404(assignment_id)
    if not directory_service.can_view(actor, a.user):
        raise ForbiddenError(
            f"User {actor.id} may not view assignment {a.id}.", actor_id=actor.id,
        )
    return serialize_detail(a)


def assignments_for_users(user_ids: list[int]) -> list[ChecklistAssignment]:
    if not user_ids:
        return []
    return db.session.execute(
        select(ChecklistAssignment)
        .where(ChecklistAssignment.user_id.in_(user_ids))
        .order_by(ChecklistAssignment.created_at.desc(), ChecklistAssignment.id.desc())
    ).scalars().all()


def list_for_user(actor_id: int, user_id: int) -> list[dict]:
    actor = directory_service.resolve_actor(actor_id)
    user = directory_service.get_user(user_id)
    if not directory_service.can_view(actor, user):
        raise ForbiddenError(
            f"User {actor.id} may not view assignments of user {user.id}.", actor_id=actor.id,
        )
    today = completion.today_utc()
    return [serialize(a, today=today) for a in assignments_for_users([user.id])]


def _scope_members(actor: User, members: list[User]) -> list[User]:
    """HR sees everyone; others only the members they have authority over."""
    if actor.is_hr:
        return members
    return [m for m in members if directory_service.has_authority(actor, m)]


def list_for_department(actor_id: int, department: str) -> list[dict]:
    """Assignments of a department's users.

    HR sees the whole department, a manager only their own department,
    a supervisor only their direct reports within it.
    """
    actor = directory_service.resolve_actor(actor_id)
    if actor.role == Role.EMPLOYEE.value:
        raise ForbiddenError("Employees cannot list department assignments.", actor_id=actor.id)
    if actor.role == Role.MANAGER.value and actor.department != department:
        raise ForbiddenError(
            f"Manager {actor.id} may only list their own department.", actor_id=actor.id,
        )
    members = _scope_members(actor, directory_service.users_in_department(department))
    today = completion.today_utc()
    return [serialize(a, today=today) for a in assignments_for_users([m.id for m in members])]


def list_for_team(actor_id: int, team_id: str) -> list[dict]:
    actor = directory_service.resolve_actor(actor_id)
    if actor.role == Role.EMPLOYEE.value:
        raise ForbiddenError("Employees cannot list team assignments.", actor_id=actor.id)
    members = _scope_members(actor, directory_service.users_in_team(team_id))
    today = completion.today_utc()
    return [serialize(a, today=today) for a in assignments_for_users([m.id for m in members])]


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_assignment(actor_id: int, assignment_id: int) -> None:
    """Delete an assignment; progress rows go with it."""
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "delete checklist assignments")
    a = get_assignment_or_404(assignment_id)
    db.session.delete(a)
    db.session.commit()
    logger.info(
        "Checklist assignment deleted",
        extra={"assignment_id": assignment_id, "actor_id": actor.id, "event_type": "checklist_unassigned"},
    )
