# Overview: Service-layer operations for document numbers; allocates request/invoice/payment numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from catering.time_utils import current_year


REQUEST_DOCUMENT = ("SERVICE_REQUEST", "REQ")
INVOICE_DOCUMENT = ("INVOICE", "INV")
PAYMENT_DOCUMENT = ("PAYMENT", "PAY")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _read_current(document_type: str, year: int) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 5,
) -> str:
    """
    Allocate the next document number for a (type, year) pair.

    The counter row is bumped with UPDATE ... SET next_number = next_number + 1
    so concurrent callers serialize on the row. The first number of a year
    inserts the row inside a savepoint; losing that insert race falls back
    to the UPDATE path without discarding the caller's pending work.

    Runs inside the caller's transaction: the number is only consumed if the
    caller commits.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    year = year or current_year()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _read_current(document_type, year)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, year=year, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")
            next_num = _read_current(document_type, year)

    return f"{prefix}-{year}-{next_num:0{pad}d}"


def next_request_no(year: int | None = None) -> str:
    document_type, prefix = REQUEST_DOCUMENT
    return next_document_number(document_type=document_type, prefix=prefix, year=year)


def next_invoice_no(year: int | None = None) -> str:
    document_type, prefix = INVOICE_DOCUMENT
    return next_document_number(document_type=document_type, prefix=prefix, year=year)


def next_payment_no(year: int | None = None) -> str:
    document_type, prefix = PAYMENT_DOCUMENT
    return next_document_number(document_type=document_type, prefix=prefix, year=year)
