"""
API tests: the checklist workflow end to end over HTTP.

Identity comes from the X-User-Id header (auth disabled in testing) or a
Bearer token minted by jwt_service.
"""

from datetime import timedelta

import pytest

from onboarding.services import completion
from onboarding.services.jwt_service import generate_access_token

BASE = "/api/v1"


def _create_template(client, headers, **overrides):
    body = {
        "title": "Day 1 Setup",
        "stage": "prepare",
        "requires_verification": True,
        "items": [
            {"title": "Collect laptop"},
            {"title": "Activate accounts"},
            {"title": "Pick up badge", "phase": "orient"},
        ],
    }
    body.update(overrides)
    res = client.post(f"{BASE}/checklists", json=body, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _assign(client, headers, user_id, template_id, **extra):
    res = client.post(
        f"{BASE}/checklist-assignments",
        json={"user_id": user_id, "template_id": template_id, **extra},
        headers=headers,
    )
    return res


def _progress_ids(client, headers, assignment_id):
    res = client.get(f"{BASE}/checklist-assignments/{assignment_id}", headers=headers)
    assert res.status_code == 200, res.get_json()
    return [p["id"] for p in res.get_json()["progress_items"]]


# ── Identity ─────────────────────────────────────────────────────────────────


class TestIdentity:

    def test_missing_identity_is_401(self, client, org):
        res = client.get(f"{BASE}/checklists")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_actor_is_403(self, client, org):
        res = client.post(f"{BASE}/checklists", json={"title": "x"}, headers={"X-User-Id": "4242"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_bearer_token_identifies_actor(self, client, org):
        token = generate_access_token(org["hr"].id, role="hr")
        res = client.post(
            f"{BASE}/checklists", json={"title": "Via JWT"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert res.status_code == 201
        assert res.get_json()["created_by"] == org["hr"].id

    def test_header_ignored_when_auth_enabled(self, client, org, monkeypatch, as_user):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        res = client.get(f"{BASE}/checklists", headers=as_user(org["hr"]))
        assert res.status_code == 401

        token = generate_access_token(org["hr"].id)
        res = client.get(f"{BASE}/checklists", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200

    def test_garbage_token_is_401(self, client, org, monkeypatch):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        res = client.get(f"{BASE}/checklists", headers={"Authorization": "Bearer not-a-token"})
        assert res.status_code == 401

    def test_health_needs_no_identity(self, client):
        assert client.get(f"{BASE}/health").get_json() == {"status": "ok"}
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"


# ── Templates ────────────────────────────────────────────────────────────────


class TestTemplateEndpoints:

    def test_create_and_get(self, client, org, as_user):
        tpl = _create_template(client, as_user(org["hr"]))
        assert [i["order_index"] for i in tpl["items"]] == [0, 1, 2]

        res = client.get(f"{BASE}/checklists/{tpl['id']}", headers=as_user(org["employee"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["auto_assign_rule"] is None
        assert [i["title"] for i in body["items"]] == ["Collect laptop", "Activate accounts", "Pick up badge"]

    def test_list_and_report(self, client, org, as_user):
        _create_template(client, as_user(org["hr"]))
        _create_template(client, as_user(org["hr"]), title="Team intro", stage="orient", items=[])

        res = client.get(f"{BASE}/checklists?stage=orient", headers=as_user(org["hr"]))
        assert res.get_json()["total"] == 1

        res = client.get(f"{BASE}/checklists/report/by-stage", headers=as_user(org["hr"]))
        counts = {r["stage"]: r["count"] for r in res.get_json()["items"]}
        assert counts["prepare"] == 1 and counts["orient"] == 1 and counts["excel"] == 0

    def test_create_requires_title(self, client, org, as_user):
        res = client.post(f"{BASE}/checklists", json={"stage": "prepare"}, headers=as_user(org["hr"]))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_invalid_stage_is_422(self, client, org, as_user):
        res = client.post(f"{BASE}/checklists", json={"title": "x", "stage": "launch"},
                          headers=as_user(org["hr"]))
        assert res.status_code == 422
        assert res.get_json()["details"] == {"stage": "invalid"}

    def test_non_object_body_is_400(self, client, org, as_user):
        res = client.post(f"{BASE}/checklists", json=["title"], headers=as_user(org["hr"]))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_non_json_content_type_is_415(self, client, org, as_user):
        res = client.post(f"{BASE}/checklists", data="title=x", content_type="text/plain",
                          headers=as_user(org["hr"]))
        assert res.status_code == 415

    def test_non_hr_cannot_create(self, client, org, as_user):
        res = client.post(f"{BASE}/checklists", json={"title": "x"}, headers=as_user(org["manager"]))
        assert res.status_code == 403

    def test_unknown_template_is_404(self, client, org, as_user):
        res = client.get(f"{BASE}/checklists/4242", headers=as_user(org["hr"]))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_items_crud(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)

        res = client.post(f"{BASE}/checklists/{tpl['id']}/items",
                          json={"title": "Meet buddy", "controlled_by": "both"}, headers=hr)
        assert res.status_code == 201
        item = res.get_json()
        assert item["order_index"] == 3

        res = client.post(f"{BASE}/checklists/{tpl['id']}/items",
                          json={"title": "Dup", "order_index": 0}, headers=hr)
        assert res.status_code == 409

        res = client.put(f"{BASE}/checklist-items/{item['id']}", json={"title": "Meet your buddy"}, headers=hr)
        assert res.status_code == 200
        assert res.get_json()["title"] == "Meet your buddy"

        res = client.delete(f"{BASE}/checklist-items/{item['id']}", headers=hr)
        assert res.status_code == 200
        res = client.get(f"{BASE}/checklists/{tpl['id']}/items", headers=hr)
        assert res.get_json()["total"] == 3

    def test_delete_last_item_of_assigned_template_conflicts(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr, title="NDA", items=[{"title": "Sign"}])
        assert _assign(client, hr, org["employee"].id, tpl["id"]).status_code == 201

        res = client.delete(f"{BASE}/checklist-items/{tpl['items'][0]['id']}", headers=hr)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT"

    def test_update_template(self, client, org, as_user):
        tpl = _create_template(client, as_user(org["hr"]))
        res = client.put(f"{BASE}/checklists/{tpl['id']}", json={"requires_verification": False},
                         headers=as_user(org["hr"]))
        assert res.status_code == 200
        assert res.get_json()["requires_verification"] is False

    def test_delete_with_completed_assignment_needs_cascade(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr, requires_verification=False,
                               items=[{"title": "Only step"}])
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        pid = _progress_ids(client, hr, a["id"])[0]
        client.patch(f"{BASE}/checklist-progress/{pid}", json={"is_completed": True},
                     headers=as_user(org["employee"]))

        res = client.delete(f"{BASE}/checklists/{tpl['id']}", headers=hr)
        assert res.status_code == 409
        res = client.delete(f"{BASE}/checklists/{tpl['id']}?cascade=true", headers=hr)
        assert res.status_code == 200
        assert client.get(f"{BASE}/checklist-assignments/{a['id']}", headers=hr).status_code == 404

    def test_rule_endpoints(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        res = client.put(f"{BASE}/checklists/{tpl['id']}/auto-assign-rule",
                         json={"program_types": ["intern"], "due_in_days": 5}, headers=hr)
        assert res.status_code == 200
        assert res.get_json()["rule"]["program_types"] == ["intern"]

        res = client.get(f"{BASE}/checklists/{tpl['id']}/auto-assign-rule", headers=hr)
        assert res.get_json()["rule"]["due_in_days"] == 5

        res = client.put(f"{BASE}/checklists/{tpl['id']}/auto-assign-rule",
                         json={"stages": ["someday"]}, headers=hr)
        assert res.status_code == 422


# ── Workflow ─────────────────────────────────────────────────────────────────


class TestWorkflow:

    def test_day1_walkthrough(self, client, org, as_user):
        hr, emp, sup = as_user(org["hr"]), as_user(org["employee"]), as_user(org["supervisor"])
        tpl = _create_template(client, hr)

        # assign: three pending rows, 0%
        res = _assign(client, hr, org["employee"].id, tpl["id"])
        assert res.status_code == 201, res.get_json()
        a = res.get_json()
        assert a["status"] == "assigned" and a["completion_percentage"] == 0
        first, second, third = _progress_ids(client, emp, a["id"])

        # employee completes item 1: pending verification, still 0%
        res = client.patch(f"{BASE}/checklist-progress/{first}", json={"is_completed": True}, headers=emp)
        assert res.status_code == 200
        body = res.get_json()
        assert body["verification_status"] == "pending"
        assert body["assignment"]["completion_percentage"] == 0
        assert body["assignment"]["status"] == "in_progress"

        # supervisor approves: 33%
        res = client.patch(f"{BASE}/checklist-progress/{first}/verify",
                           json={"verification_status": "approved", "verification_notes": "ok"}, headers=sup)
        assert res.status_code == 200
        assert res.get_json()["assignment"]["completion_percentage"] == 33

        # employee un-completes: verification resets, 0%
        res = client.patch(f"{BASE}/checklist-progress/{first}", json={"is_completed": False}, headers=emp)
        body = res.get_json()
        assert body["verification_status"] == "pending"
        assert body["verified_by"] is None
        assert body["assignment"]["completion_percentage"] == 0

        # finish everything
        for pid in (first, second, third):
            client.patch(f"{BASE}/checklist-progress/{pid}", json={"is_completed": True}, headers=emp)
            res = client.patch(f"{BASE}/checklist-progress/{pid}/verify",
                               json={"decision": "approved"}, headers=sup)
            assert res.status_code == 200
        res = client.get(f"{BASE}/checklist-assignments/{a['id']}", headers=emp)
        assert res.get_json()["status"] == "completed"
        assert res.get_json()["completion_percentage"] == 100

    def test_duplicate_assignment_is_409(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        assert _assign(client, hr, org["employee"].id, tpl["id"]).status_code == 201
        res = _assign(client, hr, org["employee"].id, tpl["id"])
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT"

        res = client.get(f"{BASE}/checklist-assignments/user/{org['employee'].id}", headers=hr)
        assert res.get_json()["total"] == 1

    def test_bulk_partial_results(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        _assign(client, hr, org["employee2"].id, tpl["id"])

        res = client.post(f"{BASE}/checklist-assignments/bulk",
                          json={"template_id": tpl["id"],
                                "user_ids": [org["employee"].id, org["employee2"].id]},
                          headers=hr)
        assert res.status_code == 200
        body = res.get_json()
        assert body["succeeded"] == 1 and body["failed"] == 1
        assert body["results"][0]["ok"] is True
        assert body["results"][1]["code"] == "CONFLICT"

    def test_overdue_assignment(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        yesterday = (completion.today_utc() - timedelta(days=1)).isoformat()
        res = _assign(client, hr, org["employee"].id, tpl["id"], due_date=yesterday)
        assert res.status_code == 201
        assert res.get_json()["status"] == "overdue"

    def test_bad_due_date_is_400(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        res = _assign(client, hr, org["employee"].id, tpl["id"], due_date="next week")
        assert res.status_code == 400
        assert res.get_json()["details"] == {"due_date": "invalid"}

    def test_verification_gates(self, client, org, as_user):
        hr, emp = as_user(org["hr"]), as_user(org["employee"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        pid = _progress_ids(client, hr, a["id"])[0]

        res = client.patch(f"{BASE}/checklist-progress/{pid}/verify",
                           json={"verification_status": "approved"}, headers=as_user(org["supervisor"]))
        assert res.status_code == 409

        client.patch(f"{BASE}/checklist-progress/{pid}", json={"is_completed": True}, headers=emp)
        res = client.patch(f"{BASE}/checklist-progress/{pid}/verify",
                           json={"verification_status": "approved"}, headers=emp)
        assert res.status_code == 403
        res = client.patch(f"{BASE}/checklist-progress/{pid}/verify",
                           json={"verification_status": "approved"}, headers=as_user(org["outsider_sup"]))
        assert res.status_code == 403
        res = client.patch(f"{BASE}/checklist-progress/{pid}/verify", json={}, headers=hr)
        assert res.status_code == 400

    def test_progress_requires_boolean(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        pid = _progress_ids(client, hr, a["id"])[0]
        res = client.patch(f"{BASE}/checklist-progress/{pid}", json={"is_completed": "yes"},
                           headers=as_user(org["employee"]))
        assert res.status_code == 400

    def test_reminder(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        pid = _progress_ids(client, hr, a["id"])[0]

        res = client.post(f"{BASE}/checklist-progress/{pid}/reminder", json={"note": "Badge desk closes at 5"},
                          headers=as_user(org["supervisor"]))
        assert res.status_code == 201
        assert res.get_json()["kind"] == "checklist_reminder"

        res = client.post(f"{BASE}/checklist-progress/{pid}/reminder", json={},
                          headers=as_user(org["supervisor"]))
        assert res.status_code == 400

    def test_delete_assignment(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        res = client.delete(f"{BASE}/checklist-assignments/{a['id']}", headers=as_user(org["supervisor"]))
        assert res.status_code == 403
        res = client.delete(f"{BASE}/checklist-assignments/{a['id']}", headers=hr)
        assert res.status_code == 200
        assert client.get(f"{BASE}/checklist-assignments/{a['id']}", headers=hr).status_code == 404


# ── Lists & analytics ────────────────────────────────────────────────────────


class TestListsAndAnalytics:

    @pytest.fixture()
    def populated(self, client, org, as_user):
        hr, emp, sup = as_user(org["hr"]), as_user(org["employee"]), as_user(org["supervisor"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        yesterday = (completion.today_utc() - timedelta(days=1)).isoformat()
        _assign(client, hr, org["employee2"].id, tpl["id"], due_date=yesterday)
        pid = _progress_ids(client, hr, a["id"])[0]
        client.patch(f"{BASE}/checklist-progress/{pid}", json={"is_completed": True}, headers=emp)
        client.patch(f"{BASE}/checklist-progress/{pid}/verify", json={"verification_status": "approved"},
                     headers=sup)
        return tpl

    def test_department_list_scoping(self, client, org, as_user, populated):
        res = client.get(f"{BASE}/checklist-assignments/department/engineering", headers=as_user(org["manager"]))
        assert res.get_json()["total"] == 2
        res = client.get(f"{BASE}/checklist-assignments/department/sales", headers=as_user(org["manager"]))
        assert res.status_code == 403
        res = client.get(f"{BASE}/checklist-assignments/department/engineering", headers=as_user(org["employee"]))
        assert res.status_code == 403

    def test_team_list(self, client, org, as_user, populated):
        res = client.get(f"{BASE}/checklist-assignments/team/platform", headers=as_user(org["supervisor"]))
        statuses = sorted(a["status"] for a in res.get_json()["items"])
        assert statuses == ["in_progress", "overdue"]

    def test_department_analytics(self, client, org, as_user, populated):
        res = client.get(f"{BASE}/checklist-assignments/analytics/department/engineering",
                         headers=as_user(org["hr"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["department"] == "engineering"
        assert body["total_assignments"] == 2
        assert body["in_progress_assignments"] == 1
        assert body["overdue_assignments"] == 1
        assert body["completed_assignments"] == 0
        assert body["completion_rate"] == 0
        assert body["assignments_by_stage"] == {"prepare": 2}

        res = client.get(f"{BASE}/checklist-assignments/analytics/department/engineering",
                         headers=as_user(org["supervisor"]))
        assert res.status_code == 403

    def test_team_analytics(self, client, org, as_user, populated):
        res = client.get(f"{BASE}/checklist-assignments/analytics/team/platform",
                         headers=as_user(org["supervisor"]))
        assert res.status_code == 200
        assert res.get_json()["total_assignments"] == 2

        res = client.get(f"{BASE}/checklist-assignments/analytics/team/platform",
                         headers=as_user(org["outsider_sup"]))
        assert res.status_code == 403


# ── Notifications & auto-assignment ──────────────────────────────────────────


class TestInboxAndAutoAssign:

    def test_notification_inbox(self, client, org, as_user):
        hr, emp = as_user(org["hr"]), as_user(org["employee"])
        tpl = _create_template(client, hr)
        a = _assign(client, hr, org["employee"].id, tpl["id"]).get_json()
        pid = _progress_ids(client, hr, a["id"])[0]
        client.post(f"{BASE}/checklist-progress/{pid}/reminder", json={"note": "ping"}, headers=hr)

        res = client.get(f"{BASE}/notifications", headers=emp)
        body = res.get_json()
        assert body["total"] == 2
        assert [n["kind"] for n in body["items"]] == ["checklist_reminder", "checklist_assigned"]

        assert client.get(f"{BASE}/notifications/unread-count", headers=emp).get_json() == {"unread_count": 2}

        first_id = body["items"][0]["id"]
        res = client.post(f"{BASE}/notifications/{first_id}/read", headers=hr)
        assert res.status_code == 404
        res = client.post(f"{BASE}/notifications/{first_id}/read", headers=emp)
        assert res.get_json()["is_read"] is True

        res = client.post(f"{BASE}/notifications/read-all", headers=emp)
        assert res.get_json() == {"marked_read": 1}
        assert client.get(f"{BASE}/notifications?unread_only=true", headers=emp).get_json()["total"] == 0

    def test_auto_assign_run(self, client, org, as_user):
        hr = as_user(org["hr"])
        tpl = _create_template(client, hr, program_type="intern")
        client.put(f"{BASE}/checklists/{tpl['id']}/auto-assign-rule",
                   json={"program_types": ["intern"], "auto_notify": True}, headers=hr)

        res = client.post(f"{BASE}/auto-assign/run", json={"user_id": org["employee"].id}, headers=hr)
        assert res.status_code == 200
        assert [r["result"] for r in res.get_json()["results"]] == ["assigned"]

        res = client.post(f"{BASE}/auto-assign/run", json={"user_id": org["employee"].id}, headers=hr)
        assert [r["result"] for r in res.get_json()["results"]] == ["skipped"]

        res = client.post(f"{BASE}/auto-assign/run", json={"user_id": org["employee"].id},
                          headers=as_user(org["supervisor"]))
        assert res.status_code == 403

        res = client.post(f"{BASE}/auto-assign/run", json={}, headers=hr)
        assert res.status_code == 400
