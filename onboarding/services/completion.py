"""
Completion aggregation for checklist assignments.

Percentage and status are derived from an assignment's progress rows on
every read; nothing here is persisted.

    percentage = round_half_up(100 * done / total)

``done`` counts approved rows when the template requires verification,
otherwise rows that are completed. A template without verification leaves
``verification_status`` at ``pending``; ``is_done`` is the one place that
interprets that combination.

    status = completed    if percentage == 100
             overdue      if due_date < today
             in_progress  if any row is completed
             assigned     otherwise
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from onboarding.models.checklist import AssignmentStatus, VerificationStatus


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def is_done(progress, requires_verification: bool) -> bool:
    """Whether one progress row counts toward completion."""
    if requires_verification:
        return progress.is_completed and progress.verification_status == VerificationStatus.APPROVED.value
    return bool(progress.is_completed)


def percentage_of(done: int, total: int) -> int:
    """Integer percentage, rounding halves up. Zero items is 0%."""
    if total <= 0:
        return 0
    return (200 * done + total) // (2 * total)


def percentage(assignment) -> int:
    rows = assignment.progress_items
    requires = assignment.template.requires_verification
    done = sum(1 for p in rows if is_done(p, requires))
    return percentage_of(done, len(rows))


def status(assignment, today: date | None = None, pct: int | None = None) -> AssignmentStatus:
    pct = percentage(assignment) if pct is None else pct
    if pct >= 100:
        return AssignmentStatus.COMPLETED
    today = today or today_utc()
    if assignment.due_date is not None and assignment.due_date < today:
        return AssignmentStatus.OVERDUE
    if any(p.is_completed for p in assignment.progress_items):
        return AssignmentStatus.IN_PROGRESS
    return AssignmentStatus.ASSIGNED


def is_open(assignment) -> bool:
    return percentage(assignment) < 100


def summarize(assignment, today: date | None = None) -> dict:
    """Derived fields attached to every serialized assignment."""
    pct = percentage(assignment)
    rows = assignment.progress_items
    requires = assignment.template.requires_verification
    return {
        "completion_percentage": pct,
        "status": status(assignment, today=today, pct=pct).value,
        "total_items": len(rows),
        "completed_items": sum(1 for p in rows if p.is_completed),
        "done_items": sum(1 for p in rows if is_done(p, requires)),
    }
