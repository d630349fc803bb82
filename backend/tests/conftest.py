"""
Pytest fixtures for catering backend tests.

Provides test database setup, users for every role, identity headers and
an outbox that captures e-mail instead of sending it.
"""

import pytest
from catering import create_app
from catering.config import TestConfig
from catering.extensions import db
from catering.models import Department, User, ROLE_REQUESTER, ROLE_APPROVER, ROLE_FINANCE_OFFICER
from catering.services import mail_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def outbox(monkeypatch):
    """Capture outbound e-mail as (to, subject, html) tuples."""
    sent = []

    def fake_send(to, subject, html, text=None):
        sent.append((to, subject, html))
        return True

    monkeypatch.setattr(mail_service, "send_html_mail", fake_send)
    return sent


@pytest.fixture(scope='function')
def upload_dir(app, tmp_path, monkeypatch):
    """Store uploads under a per-test directory."""
    monkeypatch.setitem(app.config, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture(scope='function')
def department(db_session):
    dept = Department(name="Computer Science", code="CS", cost_centre="CC-CS-001")
    db_session.add(dept)
    db_session.commit()
    return dept


def _make_user(db_session, external_id, email, name, role, department=None, phone="+1-555-0100"):
    user = User(
        external_id=external_id,
        email=email,
        name=name,
        role=role,
        department_id=department.id if department else None,
        phone=phone,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def requester(db_session, department):
    return _make_user(db_session, "sub_req", "requester@uni.test", "Alice Cooper", ROLE_REQUESTER, department)


@pytest.fixture(scope='function')
def other_requester(db_session, department):
    return _make_user(db_session, "sub_req2", "other@uni.test", "Bob Wilson", ROLE_REQUESTER, department)


@pytest.fixture(scope='function')
def approver(db_session, department):
    return _make_user(db_session, "sub_appr", "approver@uni.test", "Sarah Johnson", ROLE_APPROVER, department)


@pytest.fixture(scope='function')
def finance(db_session):
    return _make_user(db_session, "sub_fin", "finance@uni.test", "Michael Chen", ROLE_FINANCE_OFFICER)


@pytest.fixture(scope='function')
def finance_two(db_session):
    return _make_user(db_session, "sub_fin2", "finance2@uni.test", "Dana Park", ROLE_FINANCE_OFFICER)


def identity_headers(user) -> dict:
    """Headers the upstream identity gateway would forward for user."""
    return {
        'X-Auth-Subject': user.external_id,
        'X-Auth-Email': user.email,
        'X-Auth-Name': user.name,
    }


def request_payload(**overrides) -> dict:
    """A valid createRequest body."""
    payload = {
        "event_name": "Faculty Welcome Lunch",
        "event_date": "2026-12-01T12:00:00Z",
        "venue": "Main Hall",
        "attendees": 40,
        "estimate_amount_cents": 150000,
        "funding_source": "Department budget",
        "department_name": "Computer Science",
    }
    payload.update(overrides)
    return payload


def invoice_payload(request_id: int, **overrides) -> dict:
    payload = {
        "request_id": request_id,
        "invoice_date": "2026-12-02",
        "due_date": "2026-12-30",
        "gross_amount_cents": 100000,
        "tax_amount_cents": 10000,
        "net_amount_cents": 110000,
    }
    payload.update(overrides)
    return payload


def payment_payload(invoice_id: int, amount_cents: int, **overrides) -> dict:
    payload = {
        "invoice_id": invoice_id,
        "method": "TRANSFER",
        "payment_date": "2026-12-05",
        "amount_cents": amount_cents,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def requester_headers(requester):
    return identity_headers(requester)


@pytest.fixture(scope='function')
def approver_headers(approver):
    return identity_headers(approver)


@pytest.fixture(scope='function')
def finance_headers(finance):
    return identity_headers(finance)


@pytest.fixture(scope='function')
def approved_request(client, requester_headers, approver_headers, outbox):
    """A request created by the requester and approved."""
    resp = client.post("/api/requests", json=request_payload(), headers=requester_headers)
    request_id = resp.get_json()["id"]
    resp = client.post(f"/api/requests/{request_id}/approve", json={"comments": "ok"}, headers=approver_headers)
    assert resp.status_code == 200
    return resp.get_json()


@pytest.fixture(scope='function')
def invoice(client, approved_request, finance_headers):
    """An 1100.00 invoice (1000.00 + 100.00 tax) on the approved request."""
    resp = client.post("/api/invoices", json=invoice_payload(approved_request["id"]), headers=finance_headers)
    assert resp.status_code == 201
    return resp.get_json()
