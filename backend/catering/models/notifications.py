from __future__ import annotations

from ..extensions import db
from catering.time_utils import to_utc_z


class Notification(db.Model):
    """
    In-app notification for a single user.

    Created by the notification dispatcher after a workflow transition has
    committed. "Mark as read" deletes the row; read rows that survive are
    purged by the cleanup command after the retention window.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    recipient_email = db.Column(db.String(255), nullable=True)

    request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    email_sent = db.Column(db.Boolean, nullable=False, default=False)
    email_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "request_id": self.request_id,
            "invoice_id": self.invoice_id,
            "payment_id": self.payment_id,
            "is_read": self.is_read,
            "email_sent": self.email_sent,
            "email_sent_at": to_utc_z(self.email_sent_at),
            "created_at": to_utc_z(self.created_at),
        }
