"""
Notification dispatcher and inbox tests.

Verifies:
- One in-app notification per distinct recipient, e-mailed when possible
- Delivery failures never fail the workflow transition
- Mark-read deletes; cleanup purges old read rows only
"""

from datetime import timedelta

from catering.extensions import db
from catering.models import Notification
from catering.services import mail_service, notification_service
from catering.services.mail_service import MailError
from catering.time_utils import utcnow

from conftest import request_payload


def _create_request(client, headers):
    resp = client.post("/api/requests", json=request_payload(), headers=headers)
    assert resp.status_code == 201
    return resp.get_json()


# =============================================================================
# DISPATCH
# =============================================================================


class TestDispatch:

    def test_email_flags_set_when_sent(self, client, requester_headers, approver, outbox):
        _create_request(client, requester_headers)

        note = db.session.query(Notification).filter_by(user_id=approver.id).one()
        assert note.email_sent is True
        assert note.email_sent_at is not None
        assert note.recipient_email == "approver@uni.test"

    def test_rendered_email_mentions_request(self, client, requester_headers, approver, outbox):
        body = _create_request(client, requester_headers)

        _, subject, html = outbox[0]
        assert subject == "New Service Request: Faculty Welcome Lunch"
        assert body["request_no"] in html
        assert "Main Hall" in html

    def test_duplicates_and_missing_recipients_skipped(self, app, db_session, approver, outbox):
        created = notification_service.dispatch(
            "REQUEST_CREATED",
            [approver, None, approver],
            event_name="Retreat",
            requester_name="Alice",
            event_date="2026-12-01",
        )
        assert created == 1
        assert db_session.query(Notification).count() == 1
        assert len(outbox) == 1

    def test_send_email_false(self, app, db_session, approver, outbox):
        notification_service.dispatch("REQUEST_CREATED", [approver], send_email=False, event_name="Retreat")
        assert outbox == []
        assert db_session.query(Notification).one().email_sent is False

    def test_smtp_failure_does_not_fail_transition(
        self, client, monkeypatch, requester, requester_headers, approver_headers
    ):
        monkeypatch.setattr(mail_service, "send_html_mail", lambda *a, **kw: True)
        body = _create_request(client, requester_headers)

        def broken_send(to, subject, html, text=None):
            raise MailError("SMTP delivery failed")

        monkeypatch.setattr(mail_service, "send_html_mail", broken_send)

        resp = client.post(f"/api/requests/{body['id']}/approve", headers=approver_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "APPROVED"

        note = db.session.query(Notification).filter_by(
            user_id=requester.id, type="REQUEST_APPROVED"
        ).one()
        assert note.email_sent is False

    def test_failure_for_one_recipient_isolated(self, app, db_session, approver, finance, monkeypatch):
        sent = []

        def flaky_send(to, subject, html, text=None):
            if to == approver.email:
                raise MailError("mailbox unavailable")
            sent.append(to)
            return True

        monkeypatch.setattr(mail_service, "send_html_mail", flaky_send)

        created = notification_service.dispatch("REQUEST_CREATED", [approver, finance], event_name="Retreat")
        assert created == 2
        assert sent == [finance.email]

    def test_suppressed_mail_reports_not_sent(self, app, db_session):
        assert app.config["MAIL_SUPPRESS_SEND"] is True
        assert mail_service.send_html_mail("someone@uni.test", "Hello", "<p>hi</p>") is False

    def test_unknown_event_type_logged_not_raised(self, app, db_session, approver, outbox):
        created = notification_service.dispatch("SOMETHING_ELSE", [approver])
        assert created == 0
        assert db_session.query(Notification).count() == 0


class TestMessages:

    def test_format_cents(self):
        assert notification_service.format_cents(1234567) == "12,345.67"
        assert notification_service.format_cents(5) == "0.05"
        assert notification_service.format_cents(None) == "0.00"
        assert notification_service.format_cents(-150) == "-1.50"

    def test_rejection_reason_in_message(self):
        _, message = notification_service.build_message(
            "REQUEST_REJECTED", {"event_name": "Gala", "comments": "budget exceeded"}
        )
        assert message.endswith("Reason: budget exceeded")

    def test_subject_single_line(self):
        assert mail_service.clean_subject("Line one\nLine\ttwo ") == "Line one Line two"
        assert len(mail_service.clean_subject("x" * 500)) == 200


# =============================================================================
# INBOX
# =============================================================================


class TestInbox:

    def test_list_and_unread_count(self, client, requester_headers, approver_headers, outbox):
        _create_request(client, requester_headers)
        _create_request(client, requester_headers)

        resp = client.get("/api/notifications", headers=approver_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["notifications"]) == 2
        assert data["unread_count"] == 2
        assert all(n["type"] == "REQUEST_CREATED" for n in data["notifications"])

        resp = client.get("/api/notifications?limit=1&offset=1", headers=approver_headers)
        assert len(resp.get_json()["notifications"]) == 1

        resp = client.get("/api/notifications/unread-count", headers=approver_headers)
        assert resp.get_json() == {"unread_count": 2}

    def test_only_own_notifications(self, client, requester_headers, outbox):
        _create_request(client, requester_headers)
        resp = client.get("/api/notifications", headers=requester_headers)
        assert resp.get_json()["notifications"] == []

    def test_mark_read_deletes(self, client, requester_headers, approver_headers, outbox):
        _create_request(client, requester_headers)
        note_id = client.get("/api/notifications", headers=approver_headers).get_json()["notifications"][0]["id"]

        resp = client.patch(f"/api/notifications/{note_id}/read", headers=approver_headers)
        assert resp.status_code == 200
        assert db.session.get(Notification, note_id) is None

        resp = client.patch(f"/api/notifications/{note_id}/read", headers=approver_headers)
        assert resp.status_code == 404

    def test_cannot_mark_someone_elses(self, client, requester_headers, approver, finance_headers, outbox):
        _create_request(client, requester_headers)
        note = db.session.query(Notification).filter_by(user_id=approver.id).one()

        resp = client.patch(f"/api/notifications/{note.id}/read", headers=finance_headers)
        assert resp.status_code == 404
        assert db.session.get(Notification, note.id) is not None

    def test_mark_all_read(self, client, requester_headers, approver, approver_headers, finance, outbox):
        _create_request(client, requester_headers)
        _create_request(client, requester_headers)

        resp = client.patch("/api/notifications/mark-all-read", headers=approver_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 2

        assert db.session.query(Notification).filter_by(user_id=approver.id).count() == 0
        assert db.session.query(Notification).filter_by(user_id=finance.id).count() == 2


class TestCleanup:

    def _note(self, user, *, is_read, age_days):
        note = Notification(
            user_id=user.id,
            type="REQUEST_CREATED",
            title="t",
            message="m",
            is_read=is_read,
            created_at=utcnow() - timedelta(days=age_days),
        )
        db.session.add(note)
        return note

    def test_only_old_read_rows_removed(self, app, db_session, approver):
        old_read = self._note(approver, is_read=True, age_days=45)
        self._note(approver, is_read=False, age_days=45)
        self._note(approver, is_read=True, age_days=5)
        db_session.commit()
        old_read_id = old_read.id

        deleted = notification_service.cleanup_old_notifications()
        assert deleted == 1
        assert db_session.get(Notification, old_read_id) is None
        assert db_session.query(Notification).count() == 2

    def test_custom_retention(self, app, db_session, approver):
        self._note(approver, is_read=True, age_days=5)
        db_session.commit()

        assert notification_service.cleanup_old_notifications(retention_days=10) == 0
        assert notification_service.cleanup_old_notifications(retention_days=1) == 1

    def test_unread_inbox_survives_cleanup(self, app, db_session, approver):
        stale = self._note(approver, is_read=False, age_days=90)
        kept = self._note(approver, is_read=False, age_days=90)
        db_session.commit()

        notification_service.mark_read(approver.id, stale.id)
        assert notification_service.cleanup_old_notifications() == 0
        assert [n.id for n in db_session.query(Notification).all()] == [kept.id]
