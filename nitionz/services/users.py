# nitionz/services/users.py
from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import IntegrityError

from nitionz.errors import AccountLockedError, InvalidStateError, ValidationError
from nitionz.extensions import db
from nitionz.models import (
    ACTIVE_ORDER_STATUSES,
    DEFAULT_PREFERENCES,
    KYC_PENDING,
    USER_ROLES,
    USER_STATUSES,
    KYCRecord,
    Order,
    User,
    utcnow_naive,
)
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.passwords import (
    clear_failed_logins,
    hash_password,
    lockout_minutes_left,
    password_matches,
    policy_error,
    record_failed_login,
)
from nitionz.utils.validators import clean_str, parse_bool, parse_int, sanitize_input, validate_email, validate_phone

NAME_MAXLEN = 120


def get_user(user_id) -> User:
    return get_or_raise(User, parse_int(user_id), "User")


def find_by_email(email) -> User | None:
    email = clean_str(email).lower()
    if not email:
        return None
    return db.session.scalars(sa.select(User).where(sa.func.lower(User.email) == email)).first()


# =========================================================
# Accounts
# =========================================================
def register_user(name, email, password, phone=None, *, role: str = "user") -> User:
    name = sanitize_input(name, maxlen=NAME_MAXLEN)
    if not name:
        raise ValidationError("Name is required.", field="name")

    email = clean_str(email).lower()
    if not validate_email(email):
        raise ValidationError("Please enter a valid email address.", field="email")

    phone = clean_str(phone) or None
    if phone and not validate_phone(phone):
        raise ValidationError("Please enter a valid phone number.", field="phone")

    problem = policy_error(password)
    if problem:
        raise ValidationError(problem, field="password")

    if role not in USER_ROLES:
        raise ValidationError("Invalid role.", field="role")

    if find_by_email(email) is not None:
        raise ValidationError("An account with this email already exists.", field="email")

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        status="active",
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        # lost a race with a concurrent signup
        db.session.rollback()
        raise ValidationError("An account with this email already exists.", field="email") from exc

    current_app.logger.info("User %s registered (%s)", user.id, role)
    return user


def authenticate(email, password, now=None) -> User | None:
    """
    The user for a correct email/password pair, else None.

    Each wrong password counts against the account; after MAX_FAILED_LOGINS
    in a row it is locked and even the right password raises
    AccountLockedError until the lock expires.
    """
    user = find_by_email(email)
    if user is None:
        return None

    now = now or utcnow_naive()
    minutes = lockout_minutes_left(user, now)
    if minutes:
        raise AccountLockedError(f"Too many failed sign-in attempts. Try again in {minutes} minute(s).")

    if not password_matches(user.password_hash, password):
        if record_failed_login(user, now):
            current_app.logger.warning("User %s locked out after repeated failed logins", user.id)
        commit_or_raise("Record failed login")
        return None

    if clear_failed_logins(user):
        commit_or_raise("Clear failed logins")
    return user


def touch_last_login(user: User) -> None:
    user.last_login_at = utcnow_naive()
    commit_or_raise("Record login")


def change_password(user: User, current_password, new_password) -> None:
    if not password_matches(user.password_hash, current_password):
        raise ValidationError("Current password is incorrect.", field="currentPassword")
    problem = policy_error(new_password)
    if problem:
        raise ValidationError(problem, field="newPassword")
    if password_matches(user.password_hash, new_password):
        raise ValidationError("New password must be different from the current password.", field="newPassword")

    user.password_hash = hash_password(new_password)
    commit_or_raise("Change password")


def update_profile(user: User, data: dict) -> User:
    """
    Self-service profile edit: name, phone and the notification / privacy
    switches. Email, role and status are not editable here.
    """
    data = data or {}

    if "name" in data:
        name = sanitize_input(data.get("name"), maxlen=NAME_MAXLEN)
        if not name:
            raise ValidationError("Name is required.", field="name")
        user.name = name

    if "phone" in data:
        phone = clean_str(data.get("phone")) or None
        if phone and not validate_phone(phone):
            raise ValidationError("Please enter a valid phone number.", field="phone")
        user.phone = phone

    prefs = user.settings
    changed = False
    for group, defaults in DEFAULT_PREFERENCES.items():
        incoming = data.get(group)
        if incoming is None:
            continue
        if not isinstance(incoming, dict):
            raise ValidationError(f"{group} must be an object.", field=group)
        # unknown switches are dropped
        for key in defaults:
            if key in incoming:
                prefs[group][key] = parse_bool(incoming[key])
                changed = True
    if changed:
        user.preferences = prefs

    commit_or_raise("Update profile")
    current_app.logger.info("User %s updated their profile", user.id)
    return user


# =========================================================
# Admin: listing + management
# =========================================================
def list_users_with_stats(*, search=None, status=None, limit: int = 500) -> list[dict]:
    """
    Users with KYC status and investment aggregates, one query for the users
    and one grouped query for the order totals.
    """
    stmt = sa.select(User).where(User.role == "user")
    if status and status != "all":
        if status not in USER_STATUSES:
            raise ValidationError("Invalid status filter.", field="status")
        stmt = stmt.where(User.status == status)

    q = clean_str(search)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(sa.or_(User.name.ilike(like), User.email.ilike(like), User.phone.ilike(like)))

    users = list(db.session.scalars(stmt.order_by(User.created_at.desc()).limit(limit)))
    if not users:
        return []

    ids = [u.id for u in users]
    active = sa.case((Order.status.in_(ACTIVE_ORDER_STATUSES), 1), else_=0)
    rows = db.session.execute(
        sa.select(
            Order.user_id,
            sa.func.count(Order.id),
            sa.func.coalesce(sa.func.sum(sa.case((Order.status.in_(ACTIVE_ORDER_STATUSES), Order.amount), else_=0)), 0),
            sa.func.coalesce(sa.func.sum(active), 0),
        )
        .where(Order.user_id.in_(ids))
        .group_by(Order.user_id)
    ).all()
    totals = {r[0]: (int(r[1]), Decimal(str(r[2])), int(r[3])) for r in rows}

    kyc = dict(db.session.execute(sa.select(KYCRecord.id, KYCRecord.status).where(KYCRecord.id.in_(ids))).all())

    out = []
    for u in users:
        total_orders, total_invested, active_count = totals.get(u.id, (0, Decimal("0"), 0))
        out.append(
            {
                "user": u,
                "kycStatus": kyc.get(u.id, KYC_PENDING),
                "totalOrders": total_orders,
                "totalInvested": total_invested,
                "activeInvestments": active_count,
            }
        )
    return out


def update_user(user_id, data: dict) -> User:
    user = get_user(user_id)
    data = data or {}

    if "name" in data:
        name = sanitize_input(data.get("name"), maxlen=NAME_MAXLEN)
        if not name:
            raise ValidationError("Name is required.", field="name")
        user.name = name

    if "phone" in data:
        phone = clean_str(data.get("phone")) or None
        if phone and not validate_phone(phone):
            raise ValidationError("Please enter a valid phone number.", field="phone")
        user.phone = phone

    if "status" in data:
        return set_user_status(user.id, data.get("status"))

    commit_or_raise("Update user")
    return user


def set_user_status(user_id, status) -> User:
    """Ban / suspend / reactivate. Signed-in sessions are cut on their next request."""
    status = clean_str(status).lower()
    if status not in USER_STATUSES:
        raise ValidationError("Invalid status.", field="status")

    user = get_user(user_id)
    if user.is_admin and status != "active":
        raise InvalidStateError("Admin accounts cannot be banned or suspended.")

    previous = user.status
    user.status = status
    commit_or_raise("Update user status")
    current_app.logger.info("User %s status %s -> %s", user.id, previous, status)
    return user


def delete_user(user_id) -> None:
    user = get_user(user_id)
    if user.is_admin:
        raise InvalidStateError("Admin accounts cannot be deleted.")
    has_orders = db.session.scalar(sa.select(sa.func.count(Order.id)).where(Order.user_id == user.id)) or 0
    if has_orders:
        raise InvalidStateError("Users with orders cannot be deleted; ban the account instead.")

    db.session.delete(user)
    commit_or_raise("Delete user")


def user_status(user_id) -> dict:
    user = get_user(user_id)
    row = db.session.execute(
        sa.select(
            sa.func.count(Order.id),
            sa.func.coalesce(sa.func.sum(Order.amount), 0),
        ).where(Order.user_id == user.id, Order.status.in_(ACTIVE_ORDER_STATUSES))
    ).one()
    return {
        "id": user.id,
        "status": user.status,
        "kycStatus": user.kyc_status,
        "investmentCount": int(row[0]),
        "totalInvested": Decimal(str(row[1])),
        "lastLogin": user.last_login_at.isoformat() if user.last_login_at else None,
    }
