"""
Gate workflow API tests.

Tests cover:
  - Project create / read / update and classification
  - Decide → advance happy path over HTTP
  - Error contract: 401, 403, 404, 409, 422
  - Approval matrix lookup
  - Documents, notifications inbox, overdue scan, scheduler, metrics, health
"""

import pytest

API = "/api/v1"


@pytest.fixture()
def bidder(make_user):
    return make_user("bid_manager")


@pytest.fixture()
def branch(make_user):
    return make_user("branch_manager")


@pytest.fixture()
def created(client, headers, bidder):
    res = client.post(
        f"{API}/projects",
        json={"name": "Desalination Plant", "client_name": "Aqua Co", "revenue": 1_000_000, "risk_factor": 2},
        headers=headers(bidder),
    )
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════

class TestProjects:
    def test_create_classifies(self, created):
        assert created["category"] == "category_1b"
        assert created["current_gate"] == 1
        assert created["gate_name"] == "Early Bid Decision"

    def test_create_requires_caller(self, client):
        res = client.post(f"{API}/projects", json={"name": "X", "revenue": 1, "risk_factor": 1})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_create_validation(self, client, headers, bidder):
        res = client.post(
            f"{API}/projects", json={"name": "X", "revenue": 1000, "risk_factor": 11}, headers=headers(bidder),
        )
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_RULE"
        assert "risk_factor" in body["details"]

    def test_list_and_filter(self, client, created):
        res = client.get(f"{API}/projects?category=category_1b")
        assert res.status_code == 200
        assert res.get_json()["total"] == 1
        assert client.get(f"{API}/projects?category=category_3").get_json()["total"] == 0

    def test_detail_includes_readiness(self, client, created):
        res = client.get(f"{API}/projects/{created['id']}")
        assert res.status_code == 200
        readiness = res.get_json()["readiness"]
        assert readiness["ready"] is False
        assert readiness["pending_approvals"][0]["required_role"] == "bid_manager"

    def test_not_found(self, client):
        res = client.get(f"{API}/projects/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_update_descriptive_fields(self, client, headers, bidder, created):
        res = client.put(
            f"{API}/projects/{created['id']}", json={"description": "Phase 2"}, headers=headers(bidder),
        )
        assert res.status_code == 200
        assert res.get_json()["description"] == "Phase 2"

    def test_category_cannot_change(self, client, headers, bidder, created):
        res = client.put(
            f"{API}/projects/{created['id']}", json={"revenue": 90_000_000}, headers=headers(bidder),
        )
        assert res.status_code == 422
        assert res.get_json()["details"] == {"revenue": "immutable"}

    def test_unchanged_immutable_value_as_string(self, client, headers, bidder, created):
        res = client.put(
            f"{API}/projects/{created['id']}",
            json={"revenue": "1000000", "risk_factor": "2", "current_gate": 1, "description": "Same numbers"},
            headers=headers(bidder),
        )
        assert res.status_code == 200
        assert res.get_json()["description"] == "Same numbers"

    def test_non_string_name(self, client, headers, bidder, created):
        res = client.put(f"{API}/projects/{created['id']}", json={"name": 123}, headers=headers(bidder))
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "must be a string"}

        res = client.post(
            f"{API}/projects", json={"name": ["X"], "revenue": 1, "risk_factor": 1}, headers=headers(bidder),
        )
        assert res.status_code == 422
        assert res.get_json()["details"]["name"] == "must be a string"


# ═════════════════════════════════════════════════════════════════════════
# APPROVALS & ADVANCEMENT
# ═════════════════════════════════════════════════════════════════════════

class TestWorkflow:
    def _approval_id(self, client, project_id):
        res = client.get(f"{API}/projects/{project_id}/approvals?gate=1")
        return res.get_json()[0]["id"]

    def test_decide_then_advance(self, client, headers, bidder, branch, created):
        aid = self._approval_id(client, created["id"])

        res = client.post(
            f"{API}/approvals/{aid}/decide",
            json={"decision": "approved", "comments": "Go"},
            headers=headers(bidder),
        )
        assert res.status_code == 200
        assert res.get_json()["ready_to_advance"] is True

        res = client.post(f"{API}/projects/{created['id']}/advance", headers=headers(branch))
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "advanced"
        assert body["current_gate"] == 2
        assert [a["required_role"] for a in body["approvals"]] == ["branch_manager"]

        gates = client.get(f"{API}/projects/{created['id']}/gates").get_json()
        assert [(g["gate_number"], g["status"]) for g in gates] == [(1, "approved"), (2, "in_progress")]

    def test_wrong_role_cannot_decide(self, client, headers, branch, created):
        aid = self._approval_id(client, created["id"])
        res = client.post(f"{API}/approvals/{aid}/decide", json={"decision": "approved"}, headers=headers(branch))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_invalid_decision(self, client, headers, bidder, created):
        aid = self._approval_id(client, created["id"])
        res = client.post(f"{API}/approvals/{aid}/decide", json={"decision": "maybe"}, headers=headers(bidder))
        assert res.status_code == 422

    def test_list_decision(self, client, headers, bidder, created):
        aid = self._approval_id(client, created["id"])
        res = client.post(
            f"{API}/approvals/{aid}/decide", json={"decision": ["approved"]}, headers=headers(bidder),
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_advance_blocked(self, client, headers, branch, created):
        res = client.post(f"{API}/projects/{created['id']}/advance", headers=headers(branch))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_REQUIREMENTS_NOT_MET"
        assert body["details"]["approvals_ok"] is False

    def test_advance_needs_management(self, client, headers, bidder, created):
        res = client.post(f"{API}/projects/{created['id']}/advance", headers=headers(bidder))
        assert res.status_code == 403

    def test_final_gate(self, client, headers, branch, created, force_gate, session):
        from plm.models.project import Project

        force_gate(session.get(Project, created["id"]), 7)
        res = client.post(f"{API}/projects/{created['id']}/advance", headers=headers(branch))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_FINAL_GATE"

    def test_reject_and_resubmit(self, client, headers, bidder, created):
        aid = self._approval_id(client, created["id"])
        client.post(
            f"{API}/approvals/{aid}/decide",
            json={"decision": "rejected", "comments": "Pricing"},
            headers=headers(bidder),
        )
        res = client.post(f"{API}/approvals/{aid}/resubmit", json={"note": "Repriced"}, headers=headers(bidder))
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "pending"
        assert [c["kind"] for c in body["comments"]] == ["decision", "resubmission"]

    def test_pending_for_caller(self, client, headers, bidder, created):
        res = client.get(f"{API}/approvals/pending", headers=headers(bidder))
        assert res.status_code == 200
        items = res.get_json()
        assert len(items) == 1
        assert items[0]["project"]["name"] == "Desalination Plant"


class TestApprovalMatrix:
    def test_category_gate(self, client):
        res = client.get(f"{API}/approval-matrix?category=category_3&gate=1")
        assert res.status_code == 200
        assert [a["role"] for a in res.get_json()["approvers"]] == ["bu_director"]

    def test_all_gates(self, client):
        res = client.get(f"{API}/approval-matrix?category=category_2")
        assert len(res.get_json()) == 7

    def test_unknown_category(self, client):
        assert client.get(f"{API}/approval-matrix?category=category_9&gate=1").status_code == 422

    def test_for_project(self, client, created):
        res = client.get(f"{API}/approval-matrix?project_id={created['id']}")
        step = res.get_json()["approvers"][0]
        assert step["role"] == "bid_manager"
        assert step["status"] == "pending"


# ═════════════════════════════════════════════════════════════════════════
# DOCUMENTS
# ═════════════════════════════════════════════════════════════════════════

class TestDocuments:
    def test_requirement_and_upload(self, client, headers, bidder, branch, created):
        res = client.post(
            f"{API}/document-requirements",
            json={"gate_number": 1, "document_type": "Site Survey"},
            headers=headers(branch),
        )
        assert res.status_code == 201
        req_id = res.get_json()["id"]

        dup = client.post(
            f"{API}/document-requirements",
            json={"gate_number": 1, "document_type": "Site Survey"},
            headers=headers(branch),
        )
        assert dup.status_code == 409

        checklist = client.get(f"{API}/projects/{created['id']}/document-checklist").get_json()
        assert checklist[0]["fulfilled"] is False

        res = client.post(
            f"{API}/projects/{created['id']}/documents",
            json={"requirement_id": req_id, "file_name": "survey.pdf"},
            headers=headers(bidder),
        )
        assert res.status_code == 201
        checklist = client.get(f"{API}/projects/{created['id']}/document-checklist").get_json()
        assert checklist[0]["fulfilled"] is True

    def test_non_string_document_fields(self, client, headers, bidder, branch, created):
        res = client.post(
            f"{API}/document-requirements",
            json={"gate_number": 1, "document_type": 42},
            headers=headers(branch),
        )
        assert res.status_code == 422
        req_id = client.post(
            f"{API}/document-requirements",
            json={"gate_number": 1, "document_type": "Site Survey"},
            headers=headers(branch),
        ).get_json()["id"]

        res = client.post(
            f"{API}/projects/{created['id']}/documents",
            json={"requirement_id": req_id, "file_name": ["survey.pdf"], "upload_status": ["completed"]},
            headers=headers(bidder),
        )
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"file_name", "upload_status"}

    def test_requirement_needs_management(self, client, headers, bidder):
        res = client.post(
            f"{API}/document-requirements",
            json={"gate_number": 1, "document_type": "Site Survey"},
            headers=headers(bidder),
        )
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS & JOBS
# ═════════════════════════════════════════════════════════════════════════

class TestNotifications:
    def test_inbox(self, client, headers, branch, created):
        res = client.get(f"{API}/notifications", headers=headers(branch))
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert {n["type"] for n in body["items"]} == {"project_creation", "approval_request"}
        assert body["items"][0]["metadata"]["project_id"] == created["id"]

        nid = body["items"][0]["id"]
        assert client.post(f"{API}/notifications/{nid}/read", headers=headers(branch)).status_code == 200
        count = client.get(f"{API}/notifications/unread-count", headers=headers(branch)).get_json()
        assert count["unread_count"] == 1

        res = client.post(f"{API}/notifications/read-all", headers=headers(branch))
        assert res.get_json()["marked_read"] == 1

    def test_other_users_notification(self, client, headers, bidder, branch, created):
        items = client.get(f"{API}/notifications", headers=headers(branch)).get_json()["items"]
        res = client.post(f"{API}/notifications/{items[0]['id']}/read", headers=headers(bidder))
        assert res.status_code == 404

    def test_scan_overdue(self, client, headers, branch, created):
        res = client.post(f"{API}/notifications/scan-overdue", headers=headers(branch))
        assert res.status_code == 200
        assert res.get_json()["notifications_created"] == 0

    def test_scan_overdue_needs_management(self, client, headers, bidder):
        res = client.post(f"{API}/notifications/scan-overdue", headers=headers(bidder))
        assert res.status_code == 403

    def test_scheduler_jobs(self, client, headers, branch):
        jobs = client.get(f"{API}/scheduler/jobs").get_json()
        assert {j["job_name"] for j in jobs} >= {"overdue_scanner", "periodic_review_scanner"}
        assert client.post(f"{API}/scheduler/jobs/nope/run", headers=headers(branch)).status_code == 404


class TestUsersAndHealth:
    def test_create_user_needs_management(self, client, headers, bidder, branch):
        payload = {"email": "pm@example.com", "full_name": "Pat", "role": "project_manager"}
        assert client.post(f"{API}/users", json=payload, headers=headers(bidder)).status_code == 403
        res = client.post(f"{API}/users", json=payload, headers=headers(branch))
        assert res.status_code == 201
        assert res.get_json()["role_label"] == "Project Manager"
        assert client.post(f"{API}/users", json=payload, headers=headers(branch)).status_code == 409

    def test_me(self, client, headers, bidder):
        res = client.get(f"{API}/me", headers=headers(bidder))
        assert res.get_json()["id"] == bidder.id

    def test_dashboard(self, client, created):
        res = client.get(f"{API}/metrics/dashboard")
        assert res.status_code == 200
        assert res.get_json()["total_projects"] == 1

    def test_health(self, client):
        assert client.get(f"{API}/health").get_json()["status"] == "ok"
        assert client.get(f"{API}/health/live").status_code == 200
