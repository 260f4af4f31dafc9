# nitionz/services/bank_details.py
from __future__ import annotations

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nitionz.errors import UpstreamError, ValidationError
from nitionz.extensions import db
from nitionz.models import BankDetail
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import clean_str, parse_bool, parse_int, sanitize_input, validate_ifsc

_FIELDS = {
    # api key -> (column, required, maxlen)
    "bankName": ("bank_name", True, 120),
    "accountNumber": ("account_number", True, 40),
    "accountHolderName": ("account_holder_name", True, 160),
    "ifscCode": ("ifsc_code", True, 20),
    "branchName": ("branch_name", False, 160),
    "upiId": ("upi_id", False, 120),
}


def _apply_fields(bank: BankDetail, data: dict, *, partial: bool) -> None:
    for key, (column, required, maxlen) in _FIELDS.items():
        if key not in data:
            if required and not partial:
                raise ValidationError(f"{key} is required.", field=key)
            continue
        value = sanitize_input(data.get(key), maxlen=maxlen)
        if required and not value:
            raise ValidationError(f"{key} is required.", field=key)
        if column == "ifsc_code":
            value = value.upper()
            if not validate_ifsc(value):
                raise ValidationError("Invalid IFSC code.", field=key)
        if column == "account_number" and not value.isdigit():
            raise ValidationError("Account number must contain digits only.", field=key)
        setattr(bank, column, value or None)

    if "upiEnabled" in data:
        bank.upi_enabled = parse_bool(data.get("upiEnabled"), default=True)
    if "isActive" in data:
        bank.is_active = parse_bool(data.get("isActive"), default=True)


def get_bank(bank_id) -> BankDetail:
    return get_or_raise(BankDetail, parse_int(bank_id), "Bank account")


def list_banks(*, active_only: bool = False):
    stmt = sa.select(BankDetail)
    if active_only:
        stmt = stmt.where(BankDetail.is_active.is_(True))
    stmt = stmt.order_by(BankDetail.is_default.desc(), BankDetail.created_at.desc())
    return list(db.session.scalars(stmt))


def get_default():
    return db.session.scalars(
        sa.select(BankDetail).where(BankDetail.is_default.is_(True), BankDetail.is_active.is_(True))
    ).first()


def create_bank(data: dict) -> BankDetail:
    bank = BankDetail(is_default=False)
    _apply_fields(bank, data or {}, partial=False)
    db.session.add(bank)
    commit_or_raise("Add bank account")

    if bank.is_active and (parse_bool((data or {}).get("isDefault")) or get_default() is None):
        set_as_default(bank.id)
    return bank


def update_bank(bank_id, data: dict) -> BankDetail:
    bank = get_bank(bank_id)
    try:
        _apply_fields(bank, data or {}, partial=True)
        if not bank.is_active and bank.is_default:
            raise ValidationError("The default account cannot be deactivated. Pick another default first.", field="isActive")
    except ValidationError:
        db.session.rollback()
        raise
    commit_or_raise("Update bank account")

    if parse_bool((data or {}).get("isDefault")) and not bank.is_default:
        set_as_default(bank.id)
    return bank


def delete_bank(bank_id) -> None:
    bank = get_bank(bank_id)
    if bank.is_default:
        raise ValidationError("The default account cannot be deleted. Pick another default first.")
    db.session.delete(bank)
    commit_or_raise("Delete bank account")


def set_as_default(bank_id) -> BankDetail:
    """
    Make one account the default, in one transaction: clear every other
    default, then set the chosen one. The partial unique index on is_default
    rejects any interleaving that would leave two defaults.
    """
    bank = get_bank(bank_id)
    if not bank.is_active:
        raise ValidationError("Inactive accounts cannot be the default.")

    try:
        db.session.execute(
            sa.update(BankDetail)
            .where(BankDetail.id != bank.id, BankDetail.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(
            sa.update(BankDetail)
            .where(BankDetail.id == bank.id)
            .values(is_default=True)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Setting default bank account %s failed", bank_id)
        raise UpstreamError("Could not set the default account. Please try again.") from exc

    db.session.refresh(bank)
    current_app.logger.info("Default bank account is now %s (%s)", bank.id, clean_str(bank.bank_name))
    return bank
