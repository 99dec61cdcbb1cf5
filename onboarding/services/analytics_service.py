"""
Checklist analytics — department and team roll-ups.

All counts come from derived assignment statuses, computed once per
request against a single ``today``.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date

from onboarding.core.exceptions import ForbiddenError
from onboarding.models.checklist import AssignmentStatus
from onboarding.models.directory import Role
from onboarding.services import assignment_service, completion, directory_service

logger = logging.getLogger(__name__)


def summarize_assignments(assignments, today: date | None = None) -> dict:
    """Roll a list of assignments up into status counts and a per-stage breakdown."""
    today = today or completion.today_utc()
    statuses = Counter(completion.status(a, today=today) for a in assignments)
    by_stage = Counter(a.template.stage for a in assignments)
    total = len(assignments)
    done = statuses[AssignmentStatus.COMPLETED]
    return {
        "total_assignments": total,
        "assigned_assignments": statuses[AssignmentStatus.ASSIGNED],
        "in_progress_assignments": statuses[AssignmentStatus.IN_PROGRESS],
        "completed_assignments": done,
        "overdue_assignments": statuses[AssignmentStatus.OVERDUE],
        "completion_rate": completion.percentage_of(done, total),
        "assignments_by_stage": dict(by_stage),
    }


def department_analytics(actor_id: int, department: str) -> dict:
    """HR sees any department; a manager only their own."""
    actor = directory_service.resolve_actor(actor_id)
    if not actor.is_hr:
        if actor.role != Role.MANAGER.value:
            raise ForbiddenError("Not authorized to view department analytics.", actor_id=actor.id)
        if actor.department != department:
            raise ForbiddenError("Managers can only view their own department.", actor_id=actor.id)

    members = directory_service.users_in_department(department)
    assignments = assignment_service.assignments_for_users([m.id for m in members])
    result = summarize_assignments(assignments)
    result["department"] = department
    return result


def team_analytics(actor_id: int, team_id: str) -> dict:
    """HR sees any team; a supervisor only their own."""
    actor = directory_service.resolve_actor(actor_id)
    if not actor.is_hr:
        if actor.role != Role.SUPERVISOR.value:
            raise ForbiddenError("Not authorized to view team analytics.", actor_id=actor.id)
        if actor.team_id != team_id:
            raise ForbiddenError("Supervisors can only view their own team.", actor_id=actor.id)

    members = directory_service.users_in_team(team_id)
    assignments = assignment_service.assignments_for_users([m.id for m in members])
    result = summarize_assignments(assignments)
    result["team_id"] = team_id
    return result
