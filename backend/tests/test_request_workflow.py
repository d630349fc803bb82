"""
Request workflow tests.

Verifies:
- Request creation (validation issues, department resolution, numbering)
- Role-gated transitions and 409 on invalid source status
- The revision loop (owner edit resubmits)
- Delete only when REJECTED with no invoices, cascading dependents
"""

import io
import os

from catering.extensions import db
from catering.models import AuditLog, Department, Invoice, Notification, ServiceRequest, User
from catering.services import department_service
from catering.time_utils import current_year

from conftest import identity_headers, invoice_payload, request_payload


def _create(client, headers, **overrides):
    resp = client.post("/api/requests", json=request_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


# =============================================================================
# CREATE
# =============================================================================


class TestCreateRequest:

    def test_creates_submitted_request_with_number(self, client, requester_headers, outbox):
        body = _create(client, requester_headers)

        assert body["status"] == "SUBMITTED"
        assert body["request_no"] == f"REQ-{current_year()}-00001"
        assert body["requester"]["email"] == "requester@uni.test"
        assert body["department"]["code"] == "CS"

        entries = db.session.query(AuditLog).filter_by(request_id=body["id"]).all()
        assert [e.action for e in entries] == ["CREATE_REQUEST"]

    def test_sequential_numbers(self, client, requester_headers, outbox):
        first = _create(client, requester_headers)
        second = _create(client, requester_headers)
        assert first["request_no"].endswith("-00001")
        assert second["request_no"].endswith("-00002")

    def test_notifies_approvers_and_finance(self, client, requester_headers, approver, finance, outbox):
        body = _create(client, requester_headers)

        recipients = {
            n.user_id for n in db.session.query(Notification).filter_by(request_id=body["id"]).all()
        }
        assert recipients == {approver.id, finance.id}
        assert {to for to, _, _ in outbox} == {"approver@uni.test", "finance@uni.test"}
        assert all(subject.startswith("New Service Request") for _, subject, _ in outbox)

    def test_validation_issues(self, client, requester_headers):
        resp = client.post(
            "/api/requests",
            json=request_payload(event_name="ab", venue="x", attendees=0, estimate_amount_cents=-5),
            headers=requester_headers,
        )
        assert resp.status_code == 400
        fields = {issue["field"] for issue in resp.get_json()["issues"]}
        assert {"event_name", "venue", "attendees", "estimate_amount_cents"} <= fields

    def test_missing_required_fields(self, client, requester_headers):
        resp = client.post("/api/requests", json={"department_name": "Computer Science"}, headers=requester_headers)
        assert resp.status_code == 400
        fields = {issue["field"] for issue in resp.get_json()["issues"]}
        assert {"event_name", "event_date", "venue", "attendees", "estimate_amount_cents", "funding_source"} <= fields

    def test_invalid_event_date(self, client, requester_headers):
        resp = client.post("/api/requests", json=request_payload(event_date="next tuesday"), headers=requester_headers)
        assert resp.status_code == 400
        assert resp.get_json()["issues"][0]["field"] == "event_date"

    def test_department_required(self, client, requester_headers):
        payload = request_payload()
        del payload["department_name"]
        resp = client.post("/api/requests", json=payload, headers=requester_headers)
        assert resp.status_code == 400

    def test_unknown_department_is_created(self, client, requester_headers, outbox):
        body = _create(client, requester_headers, department_name="Chemistry")

        department = db.session.query(Department).filter_by(name="Chemistry").one()
        assert body["department"]["id"] == department.id
        assert department.code.startswith("CHE")
        assert len(department.code) == 6
        assert department.code[3:].isdigit()

    def test_department_code_collision_retries(self, client, requester_headers, monkeypatch, outbox):
        monkeypatch.setattr(department_service.time, "time", lambda: 1700000000.5)

        _create(client, requester_headers, department_name="Chemistry")
        body = _create(client, requester_headers, department_name="Chemical Engineering")

        first = db.session.query(Department).filter_by(name="Chemistry").one()
        second = db.session.query(Department).filter_by(name="Chemical Engineering").one()
        assert body["department"]["id"] == second.id
        assert first.code == "CHE500"
        assert second.code == "CHE501"

    def test_department_by_id(self, client, requester_headers, department, outbox):
        payload = request_payload(department_id=department.id)
        del payload["department_name"]
        resp = client.post("/api/requests", json=payload, headers=requester_headers)
        assert resp.status_code == 201
        assert resp.get_json()["department"]["id"] == department.id

    def test_phone_required_when_user_has_none(self, client, db_session, requester, outbox):
        requester.phone = None
        db_session.commit()
        headers = identity_headers(requester)

        resp = client.post("/api/requests", json=request_payload(), headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()["issues"][0]["field"] == "phone"

        resp = client.post("/api/requests", json=request_payload(phone="+1-555-0999"), headers=headers)
        assert resp.status_code == 201
        assert resp.get_json()["contact_phone"] == "+1-555-0999"
        assert db.session.get(User, requester.id).phone == "+1-555-0999"

    def test_unknown_field_rejected(self, client, requester_headers):
        resp = client.post("/api/requests", json=request_payload(status="APPROVED"), headers=requester_headers)
        assert resp.status_code == 400
        assert resp.get_json()["issues"][0]["field"] == "status"


# =============================================================================
# TRANSITIONS
# =============================================================================


class TestTransitions:

    def test_approve_sets_approver_and_date(self, client, requester_headers, approver, approver_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.post(f"/api/requests/{body['id']}/approve", json={"comments": "ok"}, headers=approver_headers)

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "APPROVED"
        assert data["approver"]["id"] == approver.id
        assert data["approval_date"] is not None

        actions = [e.action for e in db.session.query(AuditLog).filter_by(request_id=body["id"]).order_by(AuditLog.id)]
        assert actions == ["CREATE_REQUEST", "APPROVED_REQUEST"]

    def test_requester_cannot_approve(self, client, requester_headers):
        body = _create(client, requester_headers)
        resp = client.post(f"/api/requests/{body['id']}/approve", headers=requester_headers)
        assert resp.status_code == 403
        assert db.session.get(ServiceRequest, body["id"]).status == "SUBMITTED"

    def test_approve_twice_conflicts(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)

        resp = client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)
        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "APPROVED"

        actions = [e.action for e in db.session.query(AuditLog).filter_by(request_id=body["id"])]
        assert actions.count("APPROVED_REQUEST") == 1

    def test_submitted_cannot_be_fulfilled(self, client, requester_headers, finance_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.post(f"/api/requests/{body['id']}/fulfill", headers=finance_headers)
        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "SUBMITTED"

    def test_fulfill_after_approval(self, client, requester_headers, approver_headers, finance_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)

        resp = client.post(f"/api/requests/{body['id']}/fulfill", headers=approver_headers)
        assert resp.status_code == 403

        resp = client.post(f"/api/requests/{body['id']}/fulfill", headers=finance_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "FULFILLED"

    def test_reject_records_reason(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.post(
            f"/api/requests/{body['id']}/reject",
            json={"rejection_reason": "budget exceeded"},
            headers=approver_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["rejection_reason"] == "budget exceeded"

        note = db.session.query(Notification).filter_by(request_id=body["id"], type="REQUEST_REJECTED").one()
        assert "budget exceeded" in note.message

    def test_revision_only_from_submitted(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.post(
            f"/api/requests/{body['id']}/revision", json={"comments": "add menu"}, headers=approver_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "NEEDS_REVISION"
        assert resp.get_json()["revision_comments"] == "add menu"

        resp = client.post(f"/api/requests/{body['id']}/revision", headers=approver_headers)
        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "NEEDS_REVISION"

    def test_approve_from_needs_revision(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/revision", headers=approver_headers)
        resp = client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "APPROVED"

    def test_unknown_request_404(self, client, approver_headers):
        resp = client.post("/api/requests/9999/approve", headers=approver_headers)
        assert resp.status_code == 404


# =============================================================================
# READ / LIST
# =============================================================================


class TestReadAccess:

    def test_requester_sees_only_own(self, client, requester_headers, other_requester, approver_headers, outbox):
        mine = _create(client, requester_headers)
        theirs = _create(client, identity_headers(other_requester), event_name="Other Event")

        resp = client.get("/api/requests", headers=requester_headers)
        ids = [r["id"] for r in resp.get_json()["requests"]]
        assert ids == [mine["id"]]

        resp = client.get("/api/requests", headers=approver_headers)
        ids = [r["id"] for r in resp.get_json()["requests"]]
        assert ids == [theirs["id"], mine["id"]]

    def test_get_other_users_request_forbidden(self, client, requester_headers, other_requester, outbox):
        theirs = _create(client, identity_headers(other_requester))
        resp = client.get(f"/api/requests/{theirs['id']}", headers=requester_headers)
        assert resp.status_code == 403

    def test_detail_includes_history(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/approve", json={"comments": "ok"}, headers=approver_headers)

        resp = client.get(f"/api/requests/{body['id']}", headers=requester_headers)
        assert resp.status_code == 200
        history = resp.get_json()["history"]
        assert [h["action"] for h in history] == ["CREATE_REQUEST", "APPROVED_REQUEST"]
        assert history[1]["details"].endswith(": ok")
        assert resp.get_json()["invoices"] == []

    def test_get_missing_request(self, client, requester_headers):
        resp = client.get("/api/requests/424242", headers=requester_headers)
        assert resp.status_code == 404

    def test_status_filter(self, client, requester_headers, approver_headers, outbox):
        first = _create(client, requester_headers)
        _create(client, requester_headers)
        client.post(f"/api/requests/{first['id']}/approve", headers=approver_headers)

        resp = client.get("/api/requests?status=approved", headers=approver_headers)
        assert [r["id"] for r in resp.get_json()["requests"]] == [first["id"]]

    def test_pending_approvals(self, client, requester_headers, approver_headers, outbox):
        first = _create(client, requester_headers)
        second = _create(client, requester_headers)
        client.post(f"/api/requests/{first['id']}/reject", headers=approver_headers)

        resp = client.get("/api/approvals", headers=approver_headers)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.get_json()["requests"]] == [second["id"]]

        resp = client.get("/api/approvals", headers=requester_headers)
        assert resp.status_code == 403


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdateRequest:

    def test_owner_edits_submitted(self, client, requester_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.put(f"/api/requests/{body['id']}", json={"attendees": 55}, headers=requester_headers)
        assert resp.status_code == 200
        assert resp.get_json()["attendees"] == 55
        assert resp.get_json()["status"] == "SUBMITTED"

    def test_owner_edit_resubmits_revision(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/revision", json={"comments": "fix venue"}, headers=approver_headers)

        resp = client.put(f"/api/requests/{body['id']}", json={"venue": "Garden Court"}, headers=requester_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "SUBMITTED"
        assert resp.get_json()["venue"] == "Garden Court"

    def test_status_not_writable(self, client, requester_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.put(f"/api/requests/{body['id']}", json={"status": "APPROVED"}, headers=requester_headers)
        assert resp.status_code == 400
        assert db.session.get(ServiceRequest, body["id"]).status == "SUBMITTED"

    def test_non_owner_forbidden(self, client, requester_headers, other_requester, approver_headers, outbox):
        body = _create(client, requester_headers)
        for headers in (identity_headers(other_requester), approver_headers):
            resp = client.put(f"/api/requests/{body['id']}", json={"attendees": 1}, headers=headers)
            assert resp.status_code == 403

    def test_finance_may_edit(self, client, requester_headers, finance_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.put(f"/api/requests/{body['id']}", json={"venue": "Annex"}, headers=finance_headers)
        assert resp.status_code == 200

    def test_approved_request_locked(self, client, requester_headers, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)

        resp = client.put(f"/api/requests/{body['id']}", json={"attendees": 99}, headers=requester_headers)
        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "APPROVED"


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteRequest:

    def test_reject_then_delete_cascades(self, client, requester_headers, requester, approver_headers, upload_dir, outbox):
        body = _create(client, requester_headers)
        resp = client.post(
            f"/api/requests/{body['id']}/attachments",
            data={"file": (io.BytesIO(b"%PDF-1.4 menu"), "menu.pdf")},
            headers=requester_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        assert len(os.listdir(upload_dir)) == 1

        client.post(
            f"/api/requests/{body['id']}/reject",
            json={"rejection_reason": "budget exceeded"},
            headers=approver_headers,
        )
        assert db.session.query(Notification).filter_by(request_id=body["id"]).count() > 0

        resp = client.delete(f"/api/requests/{body['id']}", headers=requester_headers)
        assert resp.status_code == 200

        assert db.session.get(ServiceRequest, body["id"]) is None
        assert db.session.query(Notification).filter_by(request_id=body["id"]).count() == 0
        assert db.session.query(AuditLog).filter_by(request_id=body["id"]).count() == 0

        tombstone = db.session.query(AuditLog).filter_by(action="DELETE_REQUEST").one()
        assert tombstone.entity_id == body["id"]
        assert tombstone.request_id is None
        assert tombstone.user_id == requester.id
        assert os.listdir(upload_dir) == []

    def test_cannot_delete_submitted(self, client, requester_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.delete(f"/api/requests/{body['id']}", headers=requester_headers)
        assert resp.status_code == 400
        assert db.session.get(ServiceRequest, body["id"]).status == "SUBMITTED"

    def test_non_owner_cannot_delete(self, client, requester_headers, other_requester, approver_headers, outbox):
        body = _create(client, requester_headers)
        client.post(f"/api/requests/{body['id']}/reject", headers=approver_headers)

        resp = client.delete(f"/api/requests/{body['id']}", headers=identity_headers(other_requester))
        assert resp.status_code == 403
        resp = client.delete(f"/api/requests/{body['id']}", headers=approver_headers)
        assert resp.status_code == 403
        assert db.session.get(ServiceRequest, body["id"]) is not None

    def test_cannot_delete_with_invoices(self, client, db_session, requester_headers, finance, approver_headers, outbox):
        body = _create(client, requester_headers)
        request_row = db.session.get(ServiceRequest, body["id"])
        request_row.status = "REJECTED"
        db_session.add(Invoice(
            invoice_no="INV-LEGACY-1",
            request_id=request_row.id,
            invoice_date=request_row.event_date,
            due_date=request_row.event_date,
            gross_amount_cents=100,
            tax_amount_cents=0,
            net_amount_cents=100,
            created_by_id=finance.id,
        ))
        db_session.commit()

        resp = client.delete(f"/api/requests/{body['id']}", headers=identity_headers(finance))
        assert resp.status_code == 400
        assert db.session.get(ServiceRequest, body["id"]) is not None

    def test_invoice_requires_approved_request(self, client, requester_headers, finance_headers, outbox):
        body = _create(client, requester_headers)
        resp = client.post("/api/invoices", json=invoice_payload(body["id"]), headers=finance_headers)
        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "SUBMITTED"
