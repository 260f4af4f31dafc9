# tests/test_kyc.py
from __future__ import annotations

from datetime import date
from unittest import mock

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import make_kyc, make_user
from nitionz.errors import InvalidStateError, NotFoundError, UpstreamError, ValidationError
from nitionz.extensions import db
from nitionz.models import KYCRecord, Notification
from nitionz.services import kyc

FIELDS = {
    "documentType": "aadhaar",
    "documentNumber": "1234 5678 9012",
    "fullName": "Asha Investor",
    "dateOfBirth": "1990-05-17",
    "address": "12 MG Road, Pune",
}
FILE = "https://files.example.com/kyc/aadhaar.jpg"


def _record(user_id) -> KYCRecord:
    db.session.expire_all()
    return db.session.get(KYCRecord, user_id)


# ======================
# Submission
# ======================
def test_status_is_pending_without_a_record(ctx):
    user = make_user()
    assert kyc.get_status(user.id) == "pending"


def test_submit_creates_submitted_record(ctx):
    user = make_user()

    record = kyc.submit(user.id, FIELDS, FILE)

    assert record.status == "submitted"
    assert record.document_type == "aadhaar"
    assert record.document_number == "123456789012"
    assert record.date_of_birth == date(1990, 5, 17)
    assert record.document_url == FILE
    assert record.submitted_at is not None
    assert kyc.get_status(user.id) == "submitted"


@pytest.mark.parametrize(
    "override, field",
    [
        ({"documentType": "ration_card"}, "document_type"),
        ({"documentNumber": "1234"}, "document_number"),
        ({"fullName": "  "}, "full_name"),
        ({"dateOfBirth": "17/05/1990"}, "date_of_birth"),
    ],
)
def test_submit_validates_fields(ctx, override, field):
    user = make_user()
    with pytest.raises(ValidationError) as exc:
        kyc.submit(user.id, {**FIELDS, **override}, FILE)
    assert exc.value.field == field
    assert kyc.get_status(user.id) == "pending"


def test_submit_requires_document_file(ctx):
    user = make_user()
    with pytest.raises(ValidationError):
        kyc.submit(user.id, FIELDS, None)


def test_submit_checks_pan_format(ctx):
    user = make_user()
    fields = {**FIELDS, "documentType": "pan", "documentNumber": "abcde1234f"}
    record = kyc.submit(user.id, fields, FILE)
    assert record.document_number == "ABCDE1234F"

    other = make_user("other@example.com")
    with pytest.raises(ValidationError):
        kyc.submit(other.id, {**fields, "documentNumber": "ABCD1234F"}, FILE)


def test_submit_while_under_review_or_approved_is_invalid_state(ctx):
    user = make_user()
    make_kyc(user, status="submitted")
    with pytest.raises(InvalidStateError):
        kyc.submit(user.id, FIELDS, FILE)

    approved = make_user("approved@example.com")
    make_kyc(approved, status="approved")
    with pytest.raises(InvalidStateError):
        kyc.submit(approved.id, FIELDS, FILE)


def test_resubmit_after_rejection_clears_reason(ctx):
    user = make_user()
    make_kyc(user, status="rejected", reason="Blurry photo")

    record = kyc.submit(user.id, FIELDS, FILE)

    assert record.status == "submitted"
    assert record.rejection_reason is None
    assert record.resubmitted_at is not None


# ======================
# Review
# ======================
def test_approve_notifies_user(ctx):
    user = make_user()
    make_kyc(user)

    record = kyc.review(user.id, "approve", reviewed_by="ops@nitionz.test")

    assert record.status == "approved"
    assert record.reviewed_by == "ops@nitionz.test"
    notes = db.session.scalars(sa.select(Notification).where(Notification.user_id == user.id)).all()
    assert [(n.title, n.type) for n in notes] == [("KYC Approved!", "success")]


def test_reject_with_reason_notifies_with_warning(ctx):
    user = make_user()
    make_kyc(user)

    record = kyc.review(user.id, "reject", "Document expired")

    assert record.status == "rejected"
    assert record.rejection_reason == "Document expired"
    note = db.session.scalars(sa.select(Notification).where(Notification.user_id == user.id)).one()
    assert note.type == "warning"
    assert "Document expired" in note.message


def test_reject_without_reason_keeps_status(ctx):
    user = make_user()
    make_kyc(user)

    for reason in (None, "", "   "):
        with pytest.raises(ValidationError):
            kyc.review(user.id, "reject", reason)

    assert _record(user.id).status == "submitted"
    assert _record(user.id).rejection_reason is None


def test_reject_with_empty_reason_touches_nothing(ctx):
    user = make_user()
    make_kyc(user)
    # read before patching: the expired instance would reload through execute
    user_id = user.id

    with mock.patch.object(Session, "commit") as commit, mock.patch.object(Session, "flush") as flush, mock.patch.object(
        Session, "execute"
    ) as execute:
        with pytest.raises(ValidationError):
            kyc.review(user_id, "reject", "")

    commit.assert_not_called()
    flush.assert_not_called()
    execute.assert_not_called()


def test_store_failure_during_review_raises_upstream_error(ctx):
    user = make_user()
    make_kyc(user)
    user_id = user.id
    real_execute = Session.execute

    def failing_update(self, statement, *args, **kwargs):
        if isinstance(statement, sa.Update):
            raise OperationalError("UPDATE kyc", {}, Exception("gone"))
        return real_execute(self, statement, *args, **kwargs)

    with mock.patch.object(Session, "execute", failing_update):
        with pytest.raises(UpstreamError):
            kyc.review(user_id, "approve")

    assert _record(user_id).status == "submitted"
    assert db.session.scalars(sa.select(Notification).where(Notification.user_id == user_id)).all() == []


def test_check_submission_validates_without_writing(ctx):
    user = make_user()
    cleaned = kyc.check_submission(user.id, FIELDS)

    assert cleaned["document_number"] == "123456789012"
    assert _record(user.id) is None

    make_kyc(user)
    with pytest.raises(InvalidStateError):
        kyc.check_submission(user.id, FIELDS)


def test_review_requires_submitted_record(ctx):
    user = make_user()
    with pytest.raises(NotFoundError):
        kyc.review(user.id, "approve")

    make_kyc(user, status="approved")
    with pytest.raises(InvalidStateError):
        kyc.review(user.id, "reject", "Changed my mind")


# ======================
# Admin edit / reopen
# ======================
def test_submit_then_admin_edit_keeps_submitted_and_applies_fields(ctx):
    user = make_user()
    kyc.submit(user.id, FIELDS, FILE)

    record = kyc.admin_edit(user.id, {"fullName": "Asha R. Investor", "address": "44 FC Road, Pune"})

    assert record.status == "submitted"
    assert record.full_name == "Asha R. Investor"
    assert record.address == "44 FC Road, Pune"
    assert record.document_number == "123456789012"


def test_admin_edit_resets_approved_and_rejected_to_submitted(ctx):
    approved = make_user()
    make_kyc(approved, status="approved")
    rejected = make_user("rejected@example.com")
    make_kyc(rejected, status="rejected", reason="Name mismatch")

    assert kyc.admin_edit(approved.id, {"address": "New address"}).status == "submitted"

    record = kyc.admin_edit(rejected.id, {"fullName": "Corrected Name"})
    assert record.status == "submitted"
    assert record.rejection_reason is None


def test_admin_edit_ignores_unknown_fields(ctx):
    user = make_user()
    make_kyc(user)
    record = kyc.admin_edit(user.id, {"status": "approved", "reviewedBy": "someone"})
    assert record.status == "submitted"
    assert record.reviewed_by is None


def test_reopen_only_from_rejected(ctx):
    user = make_user()
    make_kyc(user, status="rejected", reason="Blurry photo")

    record = kyc.reopen(user.id)
    assert record.status == "submitted"
    assert record.rejection_reason is None

    with pytest.raises(InvalidStateError):
        kyc.reopen(user.id)


def test_list_records_filters_by_status(ctx):
    a = make_user()
    b = make_user("b@example.com")
    make_kyc(a, status="submitted")
    make_kyc(b, status="approved")

    assert [r.id for r in kyc.list_records(status="submitted")] == [a.id]
    assert len(kyc.list_records()) == 2
    assert [r.id for r in kyc.list_records(search="b@example")] == [b.id]
