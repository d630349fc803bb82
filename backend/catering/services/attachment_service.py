# Overview: Service-layer operations for attachments; stores uploads and their metadata.

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import Attachment, Invoice, Payment, ServiceRequest, User
from ..validation import NotFoundError, ValidationError
from . import audit_service, permission_service


# Upload target -> (model, attachment FK, action required to attach)
TARGETS = {
    "request": (ServiceRequest, "request_id", "request.view"),
    "invoice": (Invoice, "invoice_id", "invoice.manage"),
    "payment": (Payment, "payment_id", "payment.manage"),
}


def _extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower()


def _upload_dir() -> str:
    upload_dir = current_app.config["UPLOAD_DIR"]
    if not os.path.isabs(upload_dir):
        upload_dir = os.path.join(current_app.instance_path, upload_dir)
    return upload_dir


def stored_paths(attachments) -> list[str]:
    """On-disk paths of attachments; collect before the rows are deleted."""
    upload_dir = _upload_dir()
    return [os.path.join(upload_dir, a.file_url.rsplit("/", 1)[-1]) for a in attachments if a.file_url]


def remove_files(paths) -> None:
    """Unlink stored uploads after their rows are committed away."""
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        except OSError:
            current_app.logger.exception("Failed to remove attachment file %s", path)


def add_attachment(user: User, target: str, target_id: int, file_storage) -> Attachment:
    """
    Save an uploaded file and attach it to a request, invoice or payment.

    Requesters may attach to their own requests; invoice and payment
    attachments need the matching finance permission.
    """
    try:
        model, fk_name, action = TARGETS[target]
    except KeyError:
        raise ValidationError("Unknown attachment target", [{"field": "target", "message": "is not supported"}])

    entity = db.session.get(model, target_id)
    if not entity:
        raise NotFoundError(f"{model.__name__} not found")
    permission_service.require(user, action, entity if target == "request" else None)

    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file uploaded", [{"field": "file", "message": "is required"}])

    original_name = secure_filename(file_storage.filename)
    allowed = current_app.config.get("ALLOWED_UPLOAD_EXTENSIONS") or set()
    if not original_name or _extension(original_name) not in allowed:
        raise ValidationError(
            "File type not allowed",
            [{"field": "file", "message": f"must be one of {', '.join(sorted(allowed))}"}],
        )

    upload_dir = _upload_dir()
    os.makedirs(upload_dir, exist_ok=True)

    stored_name = f"{uuid.uuid4().hex}{_extension(original_name)}"
    path = os.path.join(upload_dir, stored_name)
    file_storage.save(path)
    size = os.path.getsize(path)

    attachment = Attachment(
        file_name=original_name,
        file_type=file_storage.mimetype or "application/octet-stream",
        file_size=size,
        file_url=f"/uploads/{stored_name}",
        uploaded_by_id=user.id,
    )
    setattr(attachment, fk_name, entity.id)
    db.session.add(attachment)
    db.session.flush()

    if target == "request":
        request_id = entity.id
    elif target == "invoice":
        request_id = entity.request_id
    else:
        request_id = entity.invoice.request_id

    audit_service.record(
        user_id=user.id,
        action="ADD_ATTACHMENT",
        entity_type=model.__name__,
        entity_id=entity.id,
        details=f"Attached {original_name} ({size} bytes)",
        request_id=request_id,
    )
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        os.remove(path)
        raise

    current_app.logger.info("Attachment %s stored for %s %s", attachment.id, target, entity.id)
    return attachment
