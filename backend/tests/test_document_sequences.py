"""
Document number allocation tests.

Numbers are PREFIX-YYYY-NNNNN, sequential per (document type, year), and
only consumed when the caller commits.
"""

import pytest

from catering.extensions import db
from catering.models import DocumentSequence
from catering.services import document_service
from catering.services.document_service import DocumentSequenceError, next_document_number

from conftest import request_payload


class TestDocumentNumbers:

    def test_first_number_of_year(self, app, db_session):
        assert document_service.next_request_no(year=2026) == "REQ-2026-00001"
        db_session.commit()

        row = db_session.query(DocumentSequence).filter_by(document_type="SERVICE_REQUEST", year=2026).one()
        assert row.next_number == 2

    def test_sequential(self, app, db_session):
        numbers = [document_service.next_invoice_no(year=2026) for _ in range(3)]
        db_session.commit()
        assert numbers == ["INV-2026-00001", "INV-2026-00002", "INV-2026-00003"]

    def test_types_and_years_independent(self, app, db_session):
        assert document_service.next_payment_no(year=2026) == "PAY-2026-00001"
        assert document_service.next_request_no(year=2026) == "REQ-2026-00001"
        assert document_service.next_payment_no(year=2027) == "PAY-2027-00001"
        assert document_service.next_payment_no(year=2026) == "PAY-2026-00002"
        db_session.commit()

    def test_rollback_releases_number(self, app, db_session):
        document_service.next_request_no(year=2026)
        db_session.rollback()
        assert document_service.next_request_no(year=2026) == "REQ-2026-00001"

    def test_padding(self, app, db_session):
        number = next_document_number(document_type="TEST", prefix="T", year=2026, pad=3)
        assert number == "T-2026-001"

    def test_prefix_required(self, app, db_session):
        with pytest.raises(DocumentSequenceError):
            next_document_number(document_type="TEST", prefix="")
        with pytest.raises(DocumentSequenceError):
            next_document_number(document_type="", prefix="T")

    def test_numbers_unique_across_requests(self, client, requester_headers, outbox):
        numbers = {
            client.post("/api/requests", json=request_payload(), headers=requester_headers).get_json()["request_no"]
            for _ in range(5)
        }
        assert len(numbers) == 5
        assert db.session.query(DocumentSequence).filter_by(document_type="SERVICE_REQUEST").one().next_number == 6
