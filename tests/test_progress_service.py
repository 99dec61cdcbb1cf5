"""
Tests: progress tracker & verification workflow.

Walks the Day 1 Setup checklist through completion, approval, rejection
and reopening, and checks the role gates and notifications along the way.
"""

import pytest

from onboarding.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from onboarding.models import db
from onboarding.models.checklist import ChecklistAssignment
from onboarding.models.notification import Notification
from onboarding.services import assignment_service, progress_service, template_service


@pytest.fixture()
def assignment(org, day1_template):
    return assignment_service.assign(org["hr"].id, org["employee"].id, day1_template["id"])


def _pids(org, assignment_id):
    detail = assignment_service.get_assignment_detail(org["hr"].id, assignment_id)
    return [p["id"] for p in detail["progress_items"]]


def _detail(org, assignment_id):
    return assignment_service.get_assignment_detail(org["hr"].id, assignment_id)


def _kinds(user_id):
    rows = (
        db.session.query(Notification)
        .filter_by(recipient_id=user_id)
        .order_by(Notification.id)
        .all()
    )
    return [n.kind for n in rows]


# ── Completion ───────────────────────────────────────────────────────────────


class TestCompletion:

    def test_complete_waits_for_verification(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        row = progress_service.set_completion(org["employee"].id, pid, True, notes="got it")

        assert row["state"] == "completed_pending"
        assert row["is_done"] is False
        assert row["completed_by"] == org["employee"].id
        assert row["notes"] == "got it"
        assert row["assignment"]["completion_percentage"] == 0
        assert row["assignment"]["status"] == "in_progress"

    def test_only_assignee_completes_employee_items(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        for key in ("supervisor", "hr", "employee2"):
            with pytest.raises(ForbiddenError):
                progress_service.set_completion(org[key].id, pid, True)

    def test_completed_flag_must_be_boolean(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        with pytest.raises(ValidationError):
            progress_service.set_completion(org["employee"].id, pid, "yes")

    def test_unknown_progress_item(self, org, assignment):
        with pytest.raises(NotFoundError):
            progress_service.set_completion(org["employee"].id, 4242, True)

    def test_same_value_only_updates_notes(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        before = _kinds(org["supervisor"].id)

        row = progress_service.set_completion(org["employee"].id, pid, True, notes="serial 123")

        assert row["notes"] == "serial 123"
        assert row["state"] == "completed_pending"
        assert _kinds(org["supervisor"].id) == before

    def test_uncomplete_after_approval_resets(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        progress_service.verify(org["supervisor"].id, pid, "approved")

        row = progress_service.set_completion(org["employee"].id, pid, False)

        assert row["state"] == "not_completed"
        assert row["verification_status"] == "pending"
        assert row["verified_by"] is None
        assert row["verification_notes"] is None
        assert row["completed_at"] is None
        assert row["assignment"]["completion_percentage"] == 0


# ── Verification ─────────────────────────────────────────────────────────────


class TestVerification:

    def test_approve_counts_towards_percentage(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        row = progress_service.verify(org["supervisor"].id, pid, "approved", notes="checked")

        assert row["state"] == "verified_approved"
        assert row["is_done"] is True
        assert row["verified_by"] == org["supervisor"].id
        assert row["verification_notes"] == "checked"
        assert row["assignment"]["completion_percentage"] == 33
        assert row["assignment"]["status"] == "in_progress"

    def test_reject_then_redo(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        row = progress_service.verify(org["manager"].id, pid, "rejected", notes="wrong laptop")
        assert row["state"] == "verified_rejected"
        assert row["assignment"]["completion_percentage"] == 0

        progress_service.set_completion(org["employee"].id, pid, False)
        progress_service.set_completion(org["employee"].id, pid, True)
        row = progress_service.verify(org["manager"].id, pid, "approve")
        assert row["state"] == "verified_approved"

    def test_verify_uncompleted_item_conflicts(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        with pytest.raises(ConflictError):
            progress_service.verify(org["supervisor"].id, pid, "approved")

    def test_reverify_requires_new_completion(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        progress_service.verify(org["supervisor"].id, pid, "approved")
        with pytest.raises(ConflictError):
            progress_service.verify(org["supervisor"].id, pid, "rejected")

    def test_self_verification_forbidden(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        with pytest.raises(ForbiddenError):
            progress_service.verify(org["employee"].id, pid, "approved")

    @pytest.mark.parametrize("key", ["outsider_sup", "employee2"])
    def test_verifier_needs_authority(self, org, assignment, key):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        with pytest.raises(ForbiddenError):
            progress_service.verify(org[key].id, pid, "approved")

    def test_invalid_decision(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        with pytest.raises(ValidationError):
            progress_service.verify(org["supervisor"].id, pid, "maybe")

    def test_all_approved_completes_assignment(self, org, assignment):
        for pid in _pids(org, assignment["id"]):
            progress_service.set_completion(org["employee"].id, pid, True)
            progress_service.verify(org["supervisor"].id, pid, "approved")

        detail = _detail(org, assignment["id"])
        assert detail["completion_percentage"] == 100
        assert detail["status"] == "completed"
        assert db.session.get(ChecklistAssignment, assignment["id"]).is_open is False

    def test_reopening_completed_assignment(self, org, assignment):
        pids = _pids(org, assignment["id"])
        for pid in pids:
            progress_service.set_completion(org["employee"].id, pid, True)
            progress_service.verify(org["supervisor"].id, pid, "approved")

        progress_service.set_completion(org["employee"].id, pids[0], False)

        detail = _detail(org, assignment["id"])
        assert detail["status"] == "in_progress"
        assert detail["completion_percentage"] == 67
        assert db.session.get(ChecklistAssignment, assignment["id"]).is_open is True

    def test_reopen_clashing_with_newer_assignment_conflicts(self, org, day1_template, assignment):
        pids = _pids(org, assignment["id"])
        for pid in pids:
            progress_service.set_completion(org["employee"].id, pid, True)
            progress_service.verify(org["supervisor"].id, pid, "approved")
        assignment_service.assign(org["hr"].id, org["employee"].id, day1_template["id"])

        with pytest.raises(ConflictError):
            progress_service.set_completion(org["employee"].id, pids[0], False)
        assert _detail(org, assignment["id"])["status"] == "completed"


# ── controlled_by / requires_verification variants ───────────────────────────


class TestItemVariants:

    def _hr_item_template(self, org, requires_verification):
        return template_service.create_template(org["hr"].id, {
            "title": "Paperwork",
            "requires_verification": requires_verification,
            "items": [
                {"title": "Sign contract", "controlled_by": "hr"},
                {"title": "Read handbook", "controlled_by": "both"},
            ],
        })

    def test_hr_controlled_item_completed_by_verifier_is_approved(self, org):
        tpl = self._hr_item_template(org, requires_verification=True)
        a = assignment_service.assign(org["hr"].id, org["employee"].id, tpl["id"])
        hr_pid, both_pid = _pids(org, a["id"])

        with pytest.raises(ForbiddenError):
            progress_service.set_completion(org["employee"].id, hr_pid, True)

        row = progress_service.set_completion(org["hr"].id, hr_pid, True)
        assert row["state"] == "verified_approved"
        assert row["completed_by"] == org["hr"].id
        assert row["verified_by"] == org["hr"].id
        assert row["assignment"]["completion_percentage"] == 50

        # "both" behaves like an employee item for completion
        row = progress_service.set_completion(org["employee"].id, both_pid, True)
        assert row["state"] == "completed_pending"

    def test_no_verification_template_counts_completion(self, org):
        tpl = self._hr_item_template(org, requires_verification=False)
        a = assignment_service.assign(org["hr"].id, org["employee"].id, tpl["id"])
        hr_pid, both_pid = _pids(org, a["id"])

        row = progress_service.set_completion(org["supervisor"].id, hr_pid, True)
        assert row["state"] == "completed_pending"
        assert row["is_done"] is True

        row = progress_service.set_completion(org["employee"].id, both_pid, True)
        assert row["assignment"]["completion_percentage"] == 100
        assert row["assignment"]["status"] == "completed"


# ── Notifications & reminders ────────────────────────────────────────────────


class TestNotifications:

    def test_completion_notifies_supervisor_and_verification_notifies_employee(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        progress_service.set_completion(org["employee"].id, pid, True)
        progress_service.verify(org["supervisor"].id, pid, "rejected", notes="redo")

        assert _kinds(org["supervisor"].id) == ["checklist_item_completed"]
        assert _kinds(org["employee"].id) == ["checklist_assigned", "checklist_item_rejected"]
        rejected = (
            db.session.query(Notification)
            .filter_by(recipient_id=org["employee"].id, kind="checklist_item_rejected")
            .one()
        )
        assert rejected.payload["note"] == "redo"
        assert rejected.payload["item_id"] is not None

    def test_without_supervisor_notifies_assigner(self, org, day1_template, make_user):
        newbie = make_user("newbie", department="engineering")
        a = assignment_service.assign(org["manager"].id, newbie.id, day1_template["id"])
        pid = _pids(org, a["id"])[0]

        progress_service.set_completion(newbie.id, pid, True)

        assert _kinds(org["manager"].id) == ["checklist_item_completed"]

    def test_reminder(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        notif = progress_service.send_reminder(org["supervisor"].id, pid, "  Please collect today  ")

        assert notif["kind"] == "checklist_reminder"
        assert notif["recipient_id"] == org["employee"].id
        assert notif["message"] == "Please collect today"
        assert notif["payload"]["actor_id"] == org["supervisor"].id

    def test_reminder_gates(self, org, assignment):
        pid = _pids(org, assignment["id"])[0]
        with pytest.raises(ValidationError):
            progress_service.send_reminder(org["supervisor"].id, pid, "  ")
        with pytest.raises(ForbiddenError):
            progress_service.send_reminder(org["employee"].id, pid, "nudge myself")
        with pytest.raises(ForbiddenError):
            progress_service.send_reminder(org["outsider_sup"].id, pid, "hi")

        progress_service.set_completion(org["employee"].id, pid, True)
        progress_service.verify(org["supervisor"].id, pid, "approved")
        with pytest.raises(ConflictError):
            progress_service.send_reminder(org["supervisor"].id, pid, "already done")
