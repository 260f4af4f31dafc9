# nitionz/services/kyc.py
"""
KYC review workflow.

    (none|pending|rejected) --submit--> submitted --review--> approved | rejected
    rejected --reopen / admin_edit--> submitted

There is one record per user and its primary key is the user id, so a
resubmission updates the same row.
"""

from __future__ import annotations

import re

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nitionz.errors import InvalidStateError, NotFoundError, UpstreamError, ValidationError
from nitionz.extensions import db
from nitionz.models import (
    KYC_APPROVED,
    KYC_DOCUMENT_TYPES,
    KYC_PENDING,
    KYC_REJECTED,
    KYC_STATUSES,
    KYC_SUBMITTED,
    KYCRecord,
    User,
    utcnow_naive,
)
from nitionz.services import notifications
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import (
    clean_str,
    parse_date,
    sanitize_input,
    validate_aadhaar,
    validate_pan,
)

REQUIRED_FIELDS = ("document_type", "document_number", "full_name", "date_of_birth", "address")
EDITABLE_FIELDS = REQUIRED_FIELDS + ("document_url",)

FIELD_LABELS = {
    "document_type": "Document type",
    "document_number": "Document number",
    "full_name": "Full name",
    "date_of_birth": "Date of birth",
    "address": "Address",
    "document_url": "Document file",
}

# API payloads are camelCase
_CAMEL = {
    "documentType": "document_type",
    "documentNumber": "document_number",
    "fullName": "full_name",
    "dateOfBirth": "date_of_birth",
    "documentUrl": "document_url",
}


def _normalize_keys(fields: dict | None) -> dict:
    out = {}
    for key, value in (fields or {}).items():
        out[_CAMEL.get(key, key)] = value
    return out


def _clean_fields(fields: dict, *, require_all: bool) -> dict:
    """
    Validate and normalise document fields. Only EDITABLE_FIELDS survive;
    with require_all=False missing keys are simply left out.
    """
    fields = _normalize_keys(fields)
    cleaned: dict = {}

    for name in EDITABLE_FIELDS:
        if name not in fields:
            if require_all and name in REQUIRED_FIELDS:
                raise ValidationError(f"{FIELD_LABELS[name]} is required.", field=name)
            continue

        raw = fields.get(name)
        if name == "date_of_birth":
            value = parse_date(raw)
            if value is None:
                raise ValidationError("Date of birth must be a valid date (YYYY-MM-DD).", field=name)
            if value >= utcnow_naive().date():
                raise ValidationError("Date of birth must be in the past.", field=name)
        elif name == "address":
            value = sanitize_input(raw, maxlen=500)
        else:
            value = sanitize_input(raw, maxlen=160)

        if not value and name in REQUIRED_FIELDS:
            raise ValidationError(f"{FIELD_LABELS[name]} is required.", field=name)
        cleaned[name] = value or None

    doc_type = cleaned.get("document_type")
    if doc_type is not None:
        doc_type = doc_type.lower()
        if doc_type not in KYC_DOCUMENT_TYPES:
            raise ValidationError("Unknown document type.", field="document_type")
        cleaned["document_type"] = doc_type

    number = cleaned.get("document_number")
    if number is not None:
        number = re.sub(r"\s", "", number).upper()
        kind = doc_type or None
        if kind == "aadhaar" and not validate_aadhaar(number):
            raise ValidationError("Aadhaar number must be 12 digits.", field="document_number")
        if kind == "pan" and not validate_pan(number):
            raise ValidationError("PAN must look like ABCDE1234F.", field="document_number")
        cleaned["document_number"] = number

    return cleaned


# =========================================================
# Reads
# =========================================================
def get_record(user_id) -> KYCRecord | None:
    return db.session.get(KYCRecord, user_id) if user_id is not None else None


def get_status(user_id) -> str:
    record = get_record(user_id)
    return record.status if record else KYC_PENDING


def list_records(*, status: str | None = None, search: str | None = None, limit: int = 500):
    stmt = sa.select(KYCRecord).join(User, User.id == KYCRecord.id)
    if status and status != "all":
        if status not in KYC_STATUSES:
            raise ValidationError("Invalid status filter.", field="status")
        stmt = stmt.where(KYCRecord.status == status)

    q = clean_str(search)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(
            sa.or_(
                KYCRecord.full_name.ilike(like),
                KYCRecord.document_number.ilike(like),
                User.email.ilike(like),
                User.name.ilike(like),
            )
        )

    stmt = stmt.order_by(sa.func.coalesce(KYCRecord.resubmitted_at, KYCRecord.submitted_at).desc()).limit(limit)
    return list(db.session.scalars(stmt).unique())


# =========================================================
# User side
# =========================================================
def check_submission(user_id, document_fields: dict) -> dict:
    """
    Field and state checks for a submission, without writing anything.
    Returns the cleaned fields. Routes call it before storing the document file.
    """
    cleaned = _clean_fields(document_fields, require_all=True)

    get_or_raise(User, user_id, "User")
    record = get_record(user_id)
    if record is not None and record.status == KYC_APPROVED:
        raise InvalidStateError("Your KYC is already approved.")
    if record is not None and record.status == KYC_SUBMITTED:
        raise InvalidStateError("Your KYC is already under review.")
    return cleaned


def submit(user_id, document_fields: dict, file_ref: str | None) -> KYCRecord:
    cleaned = check_submission(user_id, document_fields)
    url = clean_str(file_ref) or clean_str(cleaned.get("document_url"))
    if not url:
        raise ValidationError("Please upload your document.", field="document_url")
    cleaned["document_url"] = url

    record = get_record(user_id)
    now = utcnow_naive()

    if record is None:
        record = KYCRecord(id=user_id, submitted_at=now)
        db.session.add(record)
    else:
        if record.status == KYC_REJECTED:
            record.resubmitted_at = now
        if record.submitted_at is None:
            record.submitted_at = now

    for name, value in cleaned.items():
        setattr(record, name, value)
    record.status = KYC_SUBMITTED
    record.rejection_reason = None
    record.reviewed_at = None
    record.reviewed_by = None

    commit_or_raise("Submit KYC")
    current_app.logger.info("KYC submitted for user %s", user_id)
    return record


# =========================================================
# Admin side
# =========================================================
def review(user_id, decision, reason=None, *, reviewed_by=None) -> KYCRecord:
    decision = clean_str(decision).lower()
    if decision not in ("approve", "reject"):
        raise ValidationError("Decision must be 'approve' or 'reject'.", field="decision")

    reason = sanitize_input(reason)
    if decision == "reject" and not reason:
        raise ValidationError("Please provide a reason for rejection.", field="reason")

    record = get_record(user_id)
    if record is None:
        raise NotFoundError("KYC record not found.")
    if record.status != KYC_SUBMITTED:
        raise InvalidStateError(f"KYC is '{record.status}'; only submitted records can be reviewed.")

    target = KYC_APPROVED if decision == "approve" else KYC_REJECTED
    try:
        result = db.session.execute(
            sa.update(KYCRecord)
            .where(KYCRecord.id == record.id, KYCRecord.status == KYC_SUBMITTED)
            .values(
                status=target,
                rejection_reason=reason if target == KYC_REJECTED else None,
                reviewed_at=utcnow_naive(),
                reviewed_by=clean_str(reviewed_by) or "admin",
                updated_at=utcnow_naive(),
            )
            .execution_options(synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Review KYC failed")
        raise UpstreamError("Review KYC failed. Please try again.") from exc

    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStateError("KYC record was changed by someone else. Reload and try again.")

    commit_or_raise("Review KYC")
    db.session.refresh(record)
    current_app.logger.info("KYC for user %s -> %s", user_id, target)

    notifications.notify_kyc_status_change(record.id, target, record.rejection_reason)
    return record


def admin_edit(user_id, fields: dict) -> KYCRecord:
    """
    Back-office correction of a record. Whatever the prior status, the edited
    record goes back to 'submitted' for a fresh review.
    """
    record = get_record(user_id)
    if record is None:
        raise NotFoundError("KYC record not found.")

    cleaned = _clean_fields(fields, require_all=False)
    if "document_number" in cleaned and "document_type" not in cleaned and record.document_type:
        # Re-check the number against the existing type.
        cleaned = _clean_fields({**cleaned, "document_type": record.document_type}, require_all=False)

    for name, value in cleaned.items():
        setattr(record, name, value)

    previous = record.status
    record.status = KYC_SUBMITTED
    record.rejection_reason = None
    record.reviewed_at = None
    record.reviewed_by = None
    if previous == KYC_REJECTED:
        record.resubmitted_at = utcnow_naive()

    commit_or_raise("Update KYC")
    current_app.logger.info("KYC for user %s edited by admin (%s -> submitted)", user_id, previous)
    return record


def reopen(user_id) -> KYCRecord:
    record = get_record(user_id)
    if record is None:
        raise NotFoundError("KYC record not found.")
    if record.status != KYC_REJECTED:
        raise InvalidStateError("Only rejected KYC records can be sent back for review.")

    record.status = KYC_SUBMITTED
    record.rejection_reason = None
    record.resubmitted_at = utcnow_naive()
    commit_or_raise("Reopen KYC")
    return record
