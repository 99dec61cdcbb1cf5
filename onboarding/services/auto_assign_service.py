"""
Auto-Assignment Rule Matcher.

One rule per template. A rule has three allow-lists (departments,
program_types, stages); an empty list is a wildcard and the literal
``"all"`` collapses a list to the wildcard. A rule matches an employee
when every non-empty list contains the employee's value.

    departments=[]  program_types=["intern"]  stages=[]
        → any department, interns only, any stage

Running the matcher is idempotent: a template the employee already has
an open assignment for is skipped.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import select

from onboarding.core.exceptions import ConflictError, ValidationError
from onboarding.models import db
from onboarding.models.checklist import AutoAssignRule, ChecklistTemplate
from onboarding.services import assignment_service, completion, directory_service, template_service

logger = logging.getLogger(__name__)

WILDCARD = "all"
RULE_DIMENSIONS = ("departments", "program_types", "stages")


# ── Rule configuration ───────────────────────────────────────────────────────


def _normalize_list(field: str, values) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValidationError(f"{field} must be a list of strings", details={field: "invalid"})
    out: list[str] = []
    for v in values:
        if not isinstance(v, str) or not v.strip():
            raise ValidationError(f"{field} entries must be non-empty strings", details={field: "invalid"})
        v = v.strip()
        if v == WILDCARD:
            return []
        if field == "stages":
            v = template_service.parse_stage(v, field="stages")
        if v not in out:
            out.append(v)
    return out


def set_rule(actor_id: int, template_id: int, data: dict) -> dict:
    """Create or update the template's rule and switch auto_assign on.

    Fields missing from ``data`` keep their current value.
    """
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "configure auto-assignment rules")
    tpl = template_service.get_template_or_404(template_id)

    changes = {
        field: _normalize_list(field, data[field]) for field in RULE_DIMENSIONS if field in data
    }
    if "due_in_days" in data:
        due = data["due_in_days"]
        if due is not None and (isinstance(due, bool) or not isinstance(due, int) or due < 0):
            raise ValidationError(
                "due_in_days must be a non-negative integer", details={"due_in_days": "invalid"},
            )
        changes["due_in_days"] = due
    if "auto_notify" in data:
        changes["auto_notify"] = bool(data["auto_notify"])

    rule = tpl.rule
    if rule is None:
        rule = AutoAssignRule(template_id=tpl.id, departments=[], program_types=[], stages=[])
        tpl.rule = rule
    for field, value in changes.items():
        setattr(rule, field, value)

    tpl.auto_assign = True
    db.session.commit()
    logger.info(
        "Auto-assign rule saved template=%s departments=%s program_types=%s stages=%s",
        tpl.id, rule.departments, rule.program_types, rule.stages,
        extra={"actor_id": actor.id},
    )
    return rule.to_dict()


def get_rule(template_id: int) -> dict | None:
    tpl = template_service.get_template_or_404(template_id)
    return tpl.rule.to_dict() if tpl.rule else None


# ── Matching ─────────────────────────────────────────────────────────────────


def _allows(allowed, value) -> bool:
    return not allowed or value in allowed


def rule_matches(rule, employee) -> bool:
    """Conjunction of the three allow-lists; empty lists match anything."""
    return (
        _allows(rule.departments, employee.department)
        and _allows(rule.program_types, employee.program_type)
        and _allows(rule.stages, employee.stage)
    )


def _auto_templates() -> list[ChecklistTemplate]:
    return db.session.execute(
        select(ChecklistTemplate)
        .join(AutoAssignRule, AutoAssignRule.template_id == ChecklistTemplate.id)
        .where(ChecklistTemplate.auto_assign.is_(True))
        .order_by(ChecklistTemplate.id)
    ).scalars().all()


def run_for_user(user_id: int, today: date | None = None) -> list[dict]:
    """Evaluate every auto-assign template's rule against one employee.

    Returns:
        One entry per matching template:
        ``{"template_id", "result": "assigned" | "skipped", "assignment_id"}``.
    """
    user = directory_service.get_user(user_id)
    if not user.is_active:
        return []
    today = today or completion.today_utc()

    results = []
    for tpl in _auto_templates():
        rule = tpl.rule
        if not rule_matches(rule, user):
            continue
        if assignment_service.has_open_assignment(user.id, tpl.id):
            results.append({"template_id": tpl.id, "result": "skipped", "assignment_id": None})
            continue

        due_date = today + timedelta(days=rule.due_in_days) if rule.due_in_days is not None else None
        try:
            assignment = assignment_service.assign(
                None, user.id, tpl.id, due_date,
                is_auto_assigned=True, notify=rule.auto_notify,
            )
        except ConflictError:
            # Lost a race with a concurrent assign for the same pair.
            results.append({"template_id": tpl.id, "result": "skipped", "assignment_id": None})
            continue
        results.append({"template_id": tpl.id, "result": "assigned", "assignment_id": assignment["id"]})

    logger.info(
        "Auto-assignment run user=%s matched=%s assigned=%s",
        user.id, len(results), sum(1 for r in results if r["result"] == "assigned"),
        extra={"event_type": "auto_assign_run"},
    )
    return results


def run_for_all(today: date | None = None) -> dict[int, list[dict]]:
    """Run the matcher for every active user."""
    today = today or completion.today_utc()
    return {u.id: run_for_user(u.id, today=today) for u in directory_service.active_users()}
