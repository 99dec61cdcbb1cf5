"""
Checklist Progress Tracker & Verification Workflow.

Each public function is one atomic read-modify-write on a single
ChecklistProgressItem: the row is selected FOR UPDATE, the transition is
looked up in PROGRESS_TRANSITIONS, the columns are written through
``ChecklistProgressItem.apply_state`` and the counterpart notification is
queued, then everything commits together.

Who may do what:
    set_completion  controlled_by employee/both: the assignee only
                    controlled_by hr: a verifying role only; when the template
                    requires verification, completion is also the approval
    verify          supervisor / department manager / HR, never the assignee
    send_reminder   same as verify
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from onboarding.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from onboarding.models import db
from onboarding.models.checklist import (
    ChecklistProgressItem,
    ControlledBy,
    ProgressState,
    next_progress_state,
)
from onboarding.services import completion, directory_service
from onboarding.services.notification import NotificationService

logger = logging.getLogger(__name__)

VERIFY_DECISIONS = {
    "approved": "approve",
    "approve": "approve",
    "rejected": "reject",
    "reject": "reject",
}


def _lock_progress(progress_id: int) -> ChecklistProgressItem:
    progress = db.session.execute(
        select(ChecklistProgressItem)
        .where(ChecklistProgressItem.id == progress_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if progress is None:
        raise NotFoundError(resource="ChecklistProgressItem", resource_id=progress_id)
    return progress


def _require_verifier(actor, assignee, what: str) -> None:
    if actor.id == assignee.id:
        raise ForbiddenError(f"Users cannot {what} their own checklist items.", actor_id=actor.id)
    if not directory_service.has_authority(actor, assignee):
        raise ForbiddenError(
            f"User {actor.id} has no supervisory authority over user {assignee.id}.",
            actor_id=actor.id,
        )


def _serialize(progress: ChecklistProgressItem) -> dict:
    assignment = progress.assignment
    d = progress.to_dict()
    d["is_done"] = completion.is_done(progress, assignment.template.requires_verification)
    d["assignment"] = {"id": assignment.id, **completion.summarize(assignment)}
    return d


def _commit(progress: ChecklistProgressItem) -> None:
    """Refresh the open flag and commit; a reopen that collides becomes a Conflict."""
    assignment = progress.assignment
    assignment.is_open = completion.is_open(assignment)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            "ChecklistAssignment",
            message=(
                f"Reopening assignment {assignment.id} would clash with a newer open "
                "assignment of the same checklist."
            ),
        ) from None


def _notify_transition(recipient_id, progress, actor_id, new_state, note):
    if recipient_id is None or recipient_id == actor_id:
        return
    NotificationService.notify_transition(
        recipient_id,
        assignment_id=progress.assignment_id,
        item_id=progress.item_id,
        actor_id=actor_id,
        new_state=new_state.value,
        item_title=progress.item.title,
        note=note,
    )


# ── Completion side ──────────────────────────────────────────────────────────


def set_completion(actor_id: int, progress_id: int, completed, notes: str | None = None) -> dict:
    """Mark a progress item complete or incomplete, optionally with notes.

    Uncompleting always resets the verification to pending. Sending the
    current completion value only updates notes and notifies nobody.

    Raises:
        NotFoundError: progress item does not exist.
        ForbiddenError: actor may not complete this item.
        ValidationError: ``completed`` is not a boolean.
    """
    if not isinstance(completed, bool):
        raise ValidationError("completed must be a boolean", details={"completed": "invalid"})
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string", details={"notes": "invalid"})

    actor = directory_service.resolve_actor(actor_id)
    progress = _lock_progress(progress_id)
    assignment = progress.assignment
    assignee = assignment.user
    hr_controlled = progress.item.controlled_by == ControlledBy.HR.value

    if hr_controlled:
        _require_verifier(actor, assignee, "complete HR-controlled")
    elif actor.id != assignee.id:
        raise ForbiddenError(
            "Only the assigned employee can change completion of this item.", actor_id=actor.id,
        )

    if notes is not None:
        progress.notes = notes

    if completed == progress.is_completed:
        db.session.commit()
        logger.info(
            "Progress notes updated progress=%s", progress.id,
            extra={"assignment_id": assignment.id, "actor_id": actor.id},
        )
        return _serialize(progress)

    if not completed:
        action = "uncomplete"
    elif hr_controlled and assignment.template.requires_verification:
        action = "complete_verified"
    else:
        action = "complete"

    old_state = progress.state
    new_state = next_progress_state(old_state, action)
    if new_state is None:
        raise ConflictError(
            "ChecklistProgressItem",
            message=f"Cannot {action} progress item {progress.id} from state '{old_state.value}'.",
        )
    progress.apply_state(new_state, actor_id=actor.id)

    if actor.id == assignee.id:
        recipient = directory_service.verifier_for(assignee, fallback_id=assignment.assigned_by)
    else:
        recipient = assignee.id
    _notify_transition(recipient, progress, actor.id, new_state, notes)
    _commit(progress)

    logger.info(
        "Progress item %s → %s progress=%s", old_state.value, new_state.value, progress.id,
        extra={"assignment_id": assignment.id, "actor_id": actor.id, "event_type": action},
    )
    return _serialize(progress)


# ── Verification side ────────────────────────────────────────────────────────


def verify(actor_id: int, progress_id: int, decision: str, notes: str | None = None) -> dict:
    """Approve or reject a completed progress item.

    Raises:
        ValidationError: decision is not approved/rejected.
        ForbiddenError: actor is the assignee or lacks authority.
        ConflictError: item is not awaiting verification.
    """
    action = VERIFY_DECISIONS.get(decision) if isinstance(decision, str) else None
    if action is None:
        raise ValidationError(
            "decision must be 'approved' or 'rejected'", details={"decision": "invalid"},
        )
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string", details={"notes": "invalid"})

    actor = directory_service.resolve_actor(actor_id)
    progress = _lock_progress(progress_id)
    assignment = progress.assignment
    _require_verifier(actor, assignment.user, "verify")

    old_state = progress.state
    if old_state == ProgressState.NOT_COMPLETED:
        raise ConflictError(
            "ChecklistProgressItem",
            message=f"Progress item {progress.id} is not completed and cannot be verified.",
        )
    new_state = next_progress_state(old_state, action)
    if new_state is None:
        raise ConflictError(
            "ChecklistProgressItem",
            message=(
                f"Progress item {progress.id} is already {progress.verification_status}; "
                "it must be completed again before a new decision."
            ),
        )

    progress.apply_state(new_state, actor_id=actor.id, notes=notes)
    _notify_transition(assignment.user_id, progress, actor.id, new_state, notes)
    _commit(progress)

    logger.info(
        "Progress item %s → %s progress=%s", old_state.value, new_state.value, progress.id,
        extra={"assignment_id": assignment.id, "actor_id": actor.id, "event_type": action},
    )
    return _serialize(progress)


def send_reminder(actor_id: int, progress_id: int, note: str) -> dict:
    """Nudge the assignee about an item that is not done yet."""
    if not isinstance(note, str) or not note.strip():
        raise ValidationError("note is required", details={"note": "required"})

    actor = directory_service.resolve_actor(actor_id)
    progress = db.session.get(ChecklistProgressItem, progress_id)
    if progress is None:
        raise NotFoundError(resource="ChecklistProgressItem", resource_id=progress_id)
    assignment = progress.assignment
    _require_verifier(actor, assignment.user, "send reminders for")

    if completion.is_done(progress, assignment.template.requires_verification):
        raise ConflictError(
            "ChecklistProgressItem",
            message=f"Progress item {progress.id} is already done.",
        )

    notif = NotificationService.notify_reminder(
        assignment.user_id,
        assignment_id=assignment.id,
        item_id=progress.item_id,
        actor_id=actor.id,
        item_title=progress.item.title,
        note=note.strip(),
    )
    db.session.commit()
    logger.info(
        "Reminder sent progress=%s", progress.id,
        extra={"assignment_id": assignment.id, "actor_id": actor.id, "event_type": "checklist_reminder"},
    )
    return notif.to_dict()
