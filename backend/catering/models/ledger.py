from __future__ import annotations

from ..extensions import db
from catering.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Billable invoice raised against an APPROVED service request.

    WHY total_paid_cents: the sum of non-cancelled payments is kept as a
    running column, updated in the same transaction as the payment change
    while the invoice row is locked. Payment-progress statuses
    (PARTIALLY_PAID, PAID) are derived from it; the rest are set by officers.

    version_id gives optimistic conflict detection where row locks are not
    honoured (SQLite).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("total_paid_cents >= 0", name="ck_invoices_total_paid_nonneg"),
        db.Index("ix_invoices_status_date", "status", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(32), nullable=False, unique=True, index=True)

    request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=False, index=True)

    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Amounts (in cents). net is expected to be gross + tax but not enforced.
    gross_amount_cents = db.Column(db.Integer, nullable=False)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_amount_cents = db.Column(db.Integer, nullable=False)

    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default="SUBMITTED", index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    request = db.relationship("ServiceRequest", back_populates="invoices")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    payments = db.relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )
    attachments = db.relationship("Attachment", backref="invoice", cascade="all, delete-orphan", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_cents(self) -> int:
        return self.net_amount_cents - (self.total_paid_cents or 0)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} no={self.invoice_no!r} status={self.status}>"

    def to_dict(self, *, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_no": self.invoice_no,
            "request_id": self.request_id,
            "request": self.request.to_summary() if self.request else None,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "gross_amount_cents": self.gross_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "net_amount_cents": self.net_amount_cents,
            "total_paid_cents": self.total_paid_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class Payment(db.Model):
    """
    Payment recorded by a finance officer against an invoice.

    METHODS: CHEQUE, TRANSFER, MOBILE_MONEY, CASH
    STATUS:  DRAFT, PROCESSED, CLEARED, CANCELLED, FAILED

    CANCELLED payments do not count toward the invoice's paid total and are
    the only ones that may be deleted.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_no = db.Column(db.String(32), nullable=False, unique=True, index=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PROCESSED", index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    invoice = db.relationship("Invoice", back_populates="payments")
    created_by = db.relationship("User", foreign_keys=[created_by_id], backref=db.backref("payments_created", lazy=True))
    attachments = db.relationship("Attachment", backref="payment", cascade="all, delete-orphan", lazy=True)

    def __repr__(self) -> str:
        return f"<Payment id={self.id} no={self.payment_no!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_no": self.payment_no,
            "invoice_id": self.invoice_id,
            "method": self.method,
            "reference": self.reference,
            "payment_date": to_utc_z(self.payment_date),
            "amount_cents": self.amount_cents,
            "status": self.status,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
