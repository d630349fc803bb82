# Overview: Outbound e-mail; SMTP transport and Jinja template rendering.

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template


class MailError(Exception):
    """Raised when a message cannot be handed to the SMTP server."""
    pass


# Event type -> (template, subject format). Subjects are formatted with the
# same context the template receives.
EMAIL_TEMPLATES = {
    "REQUEST_CREATED": ("email/request_created.html", "New Service Request: {event_name}"),
    "REQUEST_APPROVED": ("email/request_approved.html", "Service Request Approved: {event_name}"),
    "REQUEST_REJECTED": ("email/request_rejected.html", "Service Request Update: {event_name}"),
    "REQUEST_NEEDS_REVISION": ("email/request_revision.html", "Revision Required: {event_name}"),
    "INVOICE_CREATED": ("email/invoice_created.html", "Invoice Generated: {invoice_no}"),
    "PAYMENT_RECORDED": ("email/payment_recorded.html", "Payment Recorded: Invoice {invoice_no}"),
    "FINANCE_ACTION_REQUIRED": ("email/finance_action_required.html", "Request Approved - Ready for Finance: {event_name}"),
}


def clean_subject(subject: str) -> str:
    """Subjects are single-line and capped at 200 characters."""
    return " ".join((subject or "").split())[:200]


class _DefaultDict(dict):
    def __missing__(self, key):
        return ""


def render_email(event_type: str, **context) -> tuple[str, str]:
    """Render (subject, html) for an event type."""
    try:
        template, subject_format = EMAIL_TEMPLATES[event_type]
    except KeyError:
        raise MailError(f"No e-mail template for {event_type}")

    context.setdefault("frontend_url", current_app.config.get("FRONTEND_URL", ""))
    subject = clean_subject(subject_format.format_map(_DefaultDict(context)))
    html = render_template(template, subject=subject, **context)
    return subject, html


def send_html_mail(to: str, subject: str, html: str, text: str | None = None) -> bool:
    """
    Send one HTML message (with a plain-text alternative).

    Returns True when handed to the server, False when sending is suppressed
    (MAIL_SUPPRESS_SEND or no MAIL_SERVER). Transport failures raise MailError;
    callers decide whether that matters.
    """
    config = current_app.config
    subject = clean_subject(subject)

    if not to:
        raise MailError("Recipient address is required")

    if config.get("MAIL_SUPPRESS_SEND") or not config.get("MAIL_SERVER"):
        current_app.logger.warning("Mail suppressed: to=%s subject=%r", to, subject)
        return False

    msg = MIMEMultipart("alternative")
    msg["From"] = config["MAIL_DEFAULT_SENDER"]
    msg["To"] = to
    msg["Subject"] = subject
    msg.attach(MIMEText(text or subject, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    try:
        with smtplib.SMTP(config["MAIL_SERVER"], config["MAIL_PORT"], timeout=10) as server:
            if config.get("MAIL_USE_TLS"):
                server.starttls()
            if config.get("MAIL_USERNAME"):
                server.login(config["MAIL_USERNAME"], config.get("MAIL_PASSWORD") or "")
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise MailError(f"SMTP delivery to {to} failed: {exc}") from exc

    current_app.logger.info("Mail sent: to=%s subject=%r", to, subject)
    return True
