"""
Checklist Template Store.

Owns checklist templates and their ordered items. Only HR-level actors
may change templates.

Rules:
  - order_index is unique per template; a duplicate is a ConflictError.
  - Stage / phase / controlled_by tags are validated here, once.
  - Toggling requires_verification does not rewrite existing progress rows.
  - A template with open assignments cannot be deleted. Completed
    assignments are removed with it only when cascade=True.
  - Adding an item materializes a pending progress row on every open
    assignment of the template; deleting an item drops its progress rows.
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from onboarding.core.exceptions import ConflictError, NotFoundError, ValidationError
from onboarding.models import db
from onboarding.models.checklist import (
    STAGE_ORDER,
    ChecklistAssignment,
    ChecklistItem,
    ChecklistProgressItem,
    ChecklistTemplate,
    ControlledBy,
    Stage,
)
from onboarding.services import completion, directory_service

logger = logging.getLogger(__name__)

_TEMPLATE_FIELDS = ("title", "description", "program_type", "stage", "auto_assign", "requires_verification")
_ITEM_FIELDS = ("title", "description", "is_required", "order_index", "phase", "controlled_by")


# ── Validation helpers ────────────────────────────────────────────────────────


def parse_stage(value, field: str = "stage") -> str:
    try:
        return Stage(value).value
    except ValueError:
        raise ValidationError(
            f"Invalid {field} '{value}'. Must be one of: {', '.join(s.value for s in Stage)}",
            details={field: "invalid"},
        ) from None


def _parse_controlled_by(value) -> str:
    try:
        return ControlledBy(value).value
    except ValueError:
        raise ValidationError(
            f"Invalid controlled_by '{value}'. Must be one of: {', '.join(c.value for c in ControlledBy)}",
            details={"controlled_by": "invalid"},
        ) from None


def _require_title(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("title is required", details={"title": "required"})
    title = value.strip()
    if len(title) > 255:
        raise ValidationError("title must be ≤ 255 characters", details={"title": "too_long"})
    return title


def _parse_order_index(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("order_index must be a non-negative integer", details={"order_index": "invalid"})
    return value


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_template_or_404(template_id: int) -> ChecklistTemplate:
    tpl = db.session.get(ChecklistTemplate, template_id)
    if tpl is None:
        raise NotFoundError(resource="ChecklistTemplate", resource_id=template_id)
    return tpl


def get_item_or_404(item_id: int) -> ChecklistItem:
    item = db.session.get(ChecklistItem, item_id)
    if item is None:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
    return item


def ordered_items_key(item: ChecklistItem) -> tuple[int, int]:
    """Sort key: order index, then phase in timeline order."""
    return item.order_index, STAGE_ORDER.get(item.phase, len(STAGE_ORDER))


def ordered_items(template: ChecklistTemplate) -> list[ChecklistItem]:
    return sorted(template.items, key=ordered_items_key)


# ── Templates ────────────────────────────────────────────────────────────────


def create_template(actor_id: int, data: dict) -> dict:
    """Create a template, optionally with an inline ``items`` list.

    Inline items take their list position as order_index.

    Returns:
        Serialized template with items.

    Raises:
        ForbiddenError: actor is not HR.
        ValidationError: missing title or invalid tags.
    """
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "create checklist templates")

    tpl = ChecklistTemplate(
        title=_require_title(data.get("title")),
        description=data.get("description") or "",
        program_type=(data.get("program_type") or "all").strip(),
        stage=parse_stage(data.get("stage") or Stage.PREPARE.value),
        auto_assign=bool(data.get("auto_assign", False)),
        requires_verification=bool(data.get("requires_verification", True)),
        created_by=actor.id,
    )

    items = data.get("items") or []
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"items": "invalid"})
    tpl.items = [_build_item(raw, order_index=index) for index, raw in enumerate(items)]

    db.session.add(tpl)
    db.session.commit()
    logger.info(
        "Checklist template created id=%s items=%s", tpl.id, len(tpl.items),
        extra={"actor_id": actor.id},
    )
    return tpl.to_dict(include_items=True)


def update_template(actor_id: int, template_id: int, data: dict) -> dict:
    """Edit template metadata. Items are managed through the item operations."""
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "edit checklist templates")
    tpl = get_template_or_404(template_id)

    if "title" in data:
        tpl.title = _require_title(data["title"])
    if "description" in data:
        tpl.description = data["description"] or ""
    if "program_type" in data:
        tpl.program_type = (data["program_type"] or "all").strip()
    if "stage" in data:
        tpl.stage = parse_stage(data["stage"])
    if "auto_assign" in data:
        tpl.auto_assign = bool(data["auto_assign"])
    if "requires_verification" in data:
        tpl.requires_verification = bool(data["requires_verification"])
        _refresh_open_flags(tpl)

    try:
        db.session.commit()
    except IntegrityError:
        # Reopening a finished assignment next to an open one for the same user.
        db.session.rollback()
        raise ConflictError(
            "ChecklistTemplate",
            message="Changing requires_verification would reopen a duplicate assignment.",
        ) from None
    logger.info("Checklist template updated id=%s fields=%s", tpl.id,
                sorted(k for k in data if k in _TEMPLATE_FIELDS))
    return tpl.to_dict(include_items=True)


def delete_template(actor_id: int, template_id: int, cascade: bool = False) -> None:
    """Delete a template.

    Raises:
        ConflictError: open assignments exist, or completed assignments
                       exist and ``cascade`` is False.
    """
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "delete checklist templates")
    tpl = get_template_or_404(template_id)

    assignments = tpl.assignments.all()
    open_count = sum(1 for a in assignments if completion.is_open(a))
    if open_count:
        raise ConflictError(
            "ChecklistTemplate",
            message=f"Template {template_id} has {open_count} open assignment(s) and cannot be deleted.",
        )
    if assignments and not cascade:
        raise ConflictError(
            "ChecklistTemplate",
            message=(
                f"Template {template_id} has {len(assignments)} completed assignment(s). "
                "Pass cascade=true to delete them with the template."
            ),
        )

    for a in assignments:
        db.session.delete(a)
    db.session.delete(tpl)
    db.session.commit()
    logger.info("Checklist template deleted id=%s cascaded_assignments=%s", template_id, len(assignments))


def get_template(template_id: int) -> dict:
    tpl = get_template_or_404(template_id)
    d = tpl.to_dict()
    d["items"] = [i.to_dict() for i in ordered_items(tpl)]
    d["auto_assign_rule"] = tpl.rule.to_dict() if tpl.rule else None
    return d


def list_templates(program_type: str | None = None, stage: str | None = None) -> list[dict]:
    stmt = select(ChecklistTemplate)
    if program_type:
        stmt = stmt.where(ChecklistTemplate.program_type == program_type)
    if stage:
        stmt = stmt.where(ChecklistTemplate.stage == parse_stage(stage))
    stmt = stmt.order_by(ChecklistTemplate.created_at.desc(), ChecklistTemplate.id.desc())
    templates = db.session.execute(stmt).scalars().all()
    result = []
    for tpl in templates:
        d = tpl.to_dict()
        d["item_count"] = len(tpl.items)
        result.append(d)
    return result


# ── Items ────────────────────────────────────────────────────────────────────


def _build_item(data: dict, order_index: int | None = None) -> ChecklistItem:
    if not isinstance(data, dict):
        raise ValidationError("each item must be an object", details={"items": "invalid"})
    return ChecklistItem(
        title=_require_title(data.get("title")),
        description=data.get("description") or "",
        is_required=data.get("is_required", True) is not False,
        order_index=_parse_order_index(order_index if order_index is not None else data.get("order_index")),
        phase=parse_stage(data.get("phase") or Stage.PREPARE.value, field="phase"),
        controlled_by=_parse_controlled_by(data.get("controlled_by") or ControlledBy.EMPLOYEE.value),
    )


def _next_order_index(template_id: int) -> int:
    current = db.session.execute(
        select(func.max(ChecklistItem.order_index)).where(ChecklistItem.template_id == template_id)
    ).scalar()
    return 0 if current is None else current + 1


def _order_index_taken(template_id: int, order_index: int, exclude_item_id: int | None = None) -> bool:
    stmt = select(ChecklistItem.id).where(
        ChecklistItem.template_id == template_id,
        ChecklistItem.order_index == order_index,
    )
    if exclude_item_id is not None:
        stmt = stmt.where(ChecklistItem.id != exclude_item_id)
    return db.session.execute(stmt).first() is not None


def _refresh_open_flags(tpl: ChecklistTemplate) -> None:
    """Re-derive is_open on every assignment whose aggregate may have moved."""
    db.session.flush()
    for a in tpl.assignments.all():
        db.session.expire(a, ["progress_items"])
        a.is_open = completion.is_open(a)


def add_item(actor_id: int, template_id: int, data: dict) -> dict:
    """Append an item with an explicit (or next free) order index.

    Every open assignment of the template receives a pending progress row
    for the new item in the same transaction.

    Raises:
        ConflictError: order_index already used in this template.
    """
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "edit checklist items")
    tpl = get_template_or_404(template_id)

    order_index = data.get("order_index")
    if order_index is None:
        order_index = _next_order_index(tpl.id)
    item = _build_item(data, order_index=order_index)
    if _order_index_taken(tpl.id, item.order_index):
        raise ConflictError("ChecklistItem", "order_index", item.order_index)

    item.template_id = tpl.id
    db.session.add(item)
    db.session.flush()

    open_assignments = db.session.execute(
        select(ChecklistAssignment).where(
            ChecklistAssignment.template_id == tpl.id,
            ChecklistAssignment.is_open.is_(True),
        )
    ).scalars().all()
    for a in open_assignments:
        db.session.add(ChecklistProgressItem(assignment_id=a.id, item_id=item.id))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("ChecklistItem", "order_index", order_index) from None

    logger.info(
        "Checklist item added id=%s template=%s order_index=%s materialized=%s",
        item.id, tpl.id, item.order_index, len(open_assignments),
    )
    return item.to_dict()


def update_item(actor_id: int, item_id: int, data: dict) -> dict:
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "edit checklist items")
    item = get_item_or_404(item_id)

    if "title" in data:
        item.title = _require_title(data["title"])
    if "description" in data:
        item.description = data["description"] or ""
    if "is_required" in data:
        item.is_required = bool(data["is_required"])
    if "phase" in data:
        item.phase = parse_stage(data["phase"], field="phase")
    if "controlled_by" in data:
        item.controlled_by = _parse_controlled_by(data["controlled_by"])
    if "order_index" in data:
        new_index = _parse_order_index(data["order_index"])
        if new_index != item.order_index and _order_index_taken(item.template_id, new_index, item.id):
            raise ConflictError("ChecklistItem", "order_index", new_index)
        item.order_index = new_index

    db.session.commit()
    logger.info("Checklist item updated id=%s fields=%s", item.id,
                sorted(k for k in data if k in _ITEM_FIELDS))
    return item.to_dict()


def delete_item(actor_id: int, item_id: int) -> None:
    """Delete an item and its progress rows; aggregates recompute on next read.

    Raises:
        ConflictError: the item is the last one of a template that has
                       assignments, or the recompute would reopen a
                       duplicate assignment.
    """
    actor = directory_service.resolve_actor(actor_id)
    directory_service.require_hr(actor, "delete checklist items")
    item = get_item_or_404(item_id)
    tpl = item.template

    # An assignment without items has nothing left to complete.
    if len(tpl.items) == 1 and tpl.assignments.first() is not None:
        raise ConflictError(
            "ChecklistItem",
            message=f"Item {item_id} is the last item of template {tpl.id}, which has assignments.",
        )

    db.session.delete(item)
    _refresh_open_flags(tpl)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            "ChecklistItem",
            message="Deleting this item would reopen a duplicate assignment.",
        ) from None
    logger.info("Checklist item deleted id=%s template=%s", item_id, tpl.id)


def list_items(template_id: int) -> list[dict]:
    tpl = get_template_or_404(template_id)
    return [i.to_dict() for i in ordered_items(tpl)]


# ── Reports ──────────────────────────────────────────────────────────────────


def count_by_stage() -> list[dict]:
    """Template counts per stage, in timeline order."""
    rows = db.session.execute(
        select(ChecklistTemplate.stage, func.count(ChecklistTemplate.id))
        .group_by(ChecklistTemplate.stage)
    ).all()
    counts = dict(rows)
    return [{"stage": s.value, "count": counts.get(s.value, 0)} for s in Stage]
