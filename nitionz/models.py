# nitionz/models.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import validates

from .extensions import db


# Naive UTC everywhere: columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# jsonb on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


# =========================================================
# Status vocabularies + transition tables
# =========================================================
ORDER_PENDING = "pending"
ORDER_PAYMENT_UPLOADED = "payment_uploaded"
ORDER_PAID = "paid"
ORDER_PROCESSING = "processing"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PAYMENT_UPLOADED,
    ORDER_PAID,
    ORDER_PROCESSING,
    ORDER_CANCELLED,
)

ORDER_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PAYMENT_UPLOADED, ORDER_CANCELLED},
    ORDER_PAYMENT_UPLOADED: {ORDER_PAID, ORDER_PROCESSING, ORDER_CANCELLED},
    ORDER_PROCESSING: {ORDER_PAID},
    ORDER_PAID: set(),
    ORDER_CANCELLED: set(),
}

# Both count as a live investment (revenue, portfolio, certificates).
ACTIVE_ORDER_STATUSES = (ORDER_PAID, ORDER_PROCESSING)
TERMINAL_ORDER_STATUSES = (ORDER_PAID, ORDER_CANCELLED)


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


KYC_PENDING = "pending"
KYC_SUBMITTED = "submitted"
KYC_APPROVED = "approved"
KYC_REJECTED = "rejected"
KYC_STATUSES = (KYC_PENDING, KYC_SUBMITTED, KYC_APPROVED, KYC_REJECTED)

KYC_DOCUMENT_TYPES = {
    "aadhaar": "Aadhaar Card",
    "pan": "PAN Card",
    "passport": "Passport",
    "driving_license": "Driving License",
    "voter_id": "Voter ID",
}

QUERY_TYPES = ("general", "priority")
QUERY_STATUSES = ("open", "replied", "resolved")
MESSAGE_SENDERS = ("user", "admin")

NOTIFICATION_TYPES = ("info", "success", "warning", "error")

USER_ROLES = ("user", "admin")
USER_STATUSES = ("active", "suspended", "banned")

DEFAULT_PREFERENCES = {
    "notifications": {"email": True, "sms": False, "push": True},
    "privacy": {"profileVisible": True, "shareData": False},
}

FEEDBACK_CATEGORIES = {
    "general": "General Feedback",
    "bug": "Bug Report",
    "feature": "Feature Request",
    "ui": "User Interface",
    "performance": "Performance",
}
FEEDBACK_STATUSES = ("new", "reviewed", "resolved")


def _in_check(column: str, values) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


# =========================================================
# User model (Authentication + Roles)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    # Replaces the single hardcoded admin email: authorization reads this column.
    role = db.Column(db.String(20), nullable=False, default="user")

    # active | suspended | banned
    status = db.Column(db.String(20), nullable=False, default="active")

    last_login_at = db.Column(db.DateTime, nullable=True)

    # Login lockout
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime, nullable=True)

    # {"notifications": {...}, "privacy": {...}}; missing keys fall back to DEFAULT_PREFERENCES
    preferences = db.Column(MutableDict.as_mutable(JSONType), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    kyc = db.relationship(
        "KYCRecord",
        back_populates="user",
        uselist=False,
        lazy="select",
        cascade="all, delete-orphan",
    )
    orders = db.relationship("Order", back_populates="user", lazy="dynamic")

    __table_args__ = (
        db.UniqueConstraint("email", name="user_email_key"),
        db.CheckConstraint(_in_check("role", USER_ROLES), name="ck_user_role"),
        db.CheckConstraint(_in_check("status", USER_STATUSES), name="ck_user_status"),
    )

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses to sign in inactive users.
        return (self.status or "active") == "active"

    @property
    def is_authenticated(self) -> bool:
        # UserMixin derives this from is_active. A banned user with a live
        # session must still count as signed in so sign_out_blocked_user can end it.
        return True

    @property
    def settings(self) -> dict:
        """Preferences merged over DEFAULT_PREFERENCES."""
        stored = self.preferences or {}
        return {
            group: {**defaults, **(stored.get(group) or {})}
            for group, defaults in DEFAULT_PREFERENCES.items()
        }

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"

    @property
    def kyc_status(self) -> str:
        return self.kyc.status if self.kyc else KYC_PENDING

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"


# =========================================================
# Investment plans (catalog)
# =========================================================
class InvestmentPlan(db.Model):
    __tablename__ = "investment_plan"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    min_amount = db.Column(db.Numeric(14, 2), nullable=False)
    max_amount = db.Column(db.Numeric(14, 2), nullable=False)
    roi_percentage = db.Column(db.Numeric(6, 2), nullable=False)
    duration_months = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("min_amount > 0", name="ck_plan_min_positive"),
        db.CheckConstraint("max_amount >= min_amount", name="ck_plan_range"),
    )

    def __repr__(self) -> str:
        return f"<InvestmentPlan {self.id} {self.name}>"


# =========================================================
# Bank details (where investors send money)
# =========================================================
class BankDetail(db.Model):
    __tablename__ = "bank_detail"

    id = db.Column(db.Integer, primary_key=True)
    bank_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(40), nullable=False)
    account_holder_name = db.Column(db.String(160), nullable=False)
    ifsc_code = db.Column(db.String(20), nullable=False)
    branch_name = db.Column(db.String(160), nullable=True)

    upi_id = db.Column(db.String(120), nullable=True)
    upi_enabled = db.Column(db.Boolean, nullable=False, default=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        # At most one default account, enforced by the database.
        db.Index(
            "uq_bank_detail_single_default",
            "is_default",
            unique=True,
            postgresql_where=sa.text("is_default"),
            sqlite_where=sa.text("is_default = 1"),
        ),
    )

    def snapshot(self) -> dict:
        """Frozen copy stored on an order at checkout."""
        return {
            "id": self.id,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "accountHolderName": self.account_holder_name,
            "ifscCode": self.ifsc_code,
            "branchName": self.branch_name,
            "upiId": self.upi_id if self.upi_enabled else None,
        }

    def __repr__(self) -> str:
        return f"<BankDetail {self.id} {self.bank_name} default={self.is_default}>"


# =========================================================
# Order (investment purchase)
# =========================================================
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    user = db.relationship("User", back_populates="orders", lazy="joined")

    # Denormalised at checkout so the back-office list needs no joins.
    user_name = db.Column(db.String(120), nullable=False)
    user_email = db.Column(db.String(120), nullable=False)

    plan_id = db.Column(db.Integer, db.ForeignKey("investment_plan.id"), nullable=True, index=True)
    plan_name = db.Column(db.String(120), nullable=False)
    # Plan terms frozen at checkout; later plan edits do not touch live orders.
    roi_percentage = db.Column(db.Numeric(6, 2), nullable=True)
    duration_months = db.Column(db.Integer, nullable=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)

    status = db.Column(db.String(30), nullable=False, default=ORDER_PENDING, index=True)

    payment_proof = db.Column(db.String(500), nullable=True)
    payment_note = db.Column(db.Text, nullable=True)
    transaction_id = db.Column(db.String(120), nullable=True)
    bank_details = db.Column(MutableDict.as_mutable(JSONType), nullable=True)

    admin_note = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime, nullable=True)
    decided_by = db.Column(db.String(120), nullable=True)

    # {"url", "uploadedAt", "uploadedBy"}
    certificate = db.Column(MutableDict.as_mutable(JSONType), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_order_amount_positive"),
        db.CheckConstraint(_in_check("status", ORDER_STATUSES), name="ck_order_status"),
    )

    @validates("amount")
    def _validate_amount(self, key, value):
        value = Decimal(str(value))
        if self.amount is not None and Decimal(str(self.amount)) != value:
            raise ValueError("Order amount is immutable once created.")
        return value

    @property
    def is_active_investment(self) -> bool:
        return self.status in ACTIVE_ORDER_STATUSES

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status} {self.amount}>"


# =========================================================
# KYC (one record per user; primary key is the user id)
# =========================================================
class KYCRecord(db.Model):
    __tablename__ = "kyc"

    id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    user = db.relationship("User", back_populates="kyc", lazy="joined")

    status = db.Column(db.String(20), nullable=False, default=KYC_PENDING, index=True)

    document_type = db.Column(db.String(30), nullable=True)
    document_number = db.Column(db.String(60), nullable=True)
    full_name = db.Column(db.String(160), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    address = db.Column(db.Text, nullable=True)
    document_url = db.Column(db.String(500), nullable=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    resubmitted_at = db.Column(db.DateTime, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    reviewed_by = db.Column(db.String(120), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_in_check("status", KYC_STATUSES), name="ck_kyc_status"),
        db.CheckConstraint(
            "(status = 'rejected') = (rejection_reason IS NOT NULL AND rejection_reason <> '')",
            name="ck_kyc_rejection_reason",
        ),
    )

    @property
    def user_id(self) -> int:
        return self.id

    def __repr__(self) -> str:
        return f"<KYCRecord {self.id} {self.status}>"


# =========================================================
# Support queries + their message thread
# =========================================================
class SupportQuery(db.Model):
    __tablename__ = "queries"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # NULL for guests (contact form)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    user_email = db.Column(db.String(120), nullable=False)
    user_name = db.Column(db.String(120), nullable=False)

    subject = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="general")
    status = db.Column(db.String(20), nullable=False, default="open", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    messages = db.relationship(
        "QueryMessage",
        back_populates="thread",
        order_by="QueryMessage.seq",
        cascade="all, delete-orphan",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint(_in_check("type", QUERY_TYPES), name="ck_query_type"),
        db.CheckConstraint(_in_check("status", QUERY_STATUSES), name="ck_query_status"),
        db.CheckConstraint("type <> 'priority' OR user_id IS NOT NULL", name="ck_query_priority_owner"),
    )

    def __repr__(self) -> str:
        return f"<SupportQuery {self.id} {self.type} {self.status}>"


class QueryMessage(db.Model):
    __tablename__ = "query_message"

    # Autoincrement keeps insertion order.
    seq = db.Column(db.Integer, primary_key=True)

    query_id = db.Column(
        sa.Uuid(as_uuid=True),
        db.ForeignKey("queries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    thread = db.relationship("SupportQuery", back_populates="messages")

    sender = db.Column(db.String(10), nullable=False)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_in_check("sender", MESSAGE_SENDERS), name="ck_query_message_sender"),
    )


# =========================================================
# Notifications
# =========================================================
class Notification(db.Model):
    __tablename__ = "notification"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="info")
    read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    __table_args__ = (
        db.CheckConstraint(_in_check("type", NOTIFICATION_TYPES), name="ck_notification_type"),
    )

    def is_new(self, now: datetime | None = None, window: timedelta = timedelta(days=1)) -> bool:
        now = now or utcnow_naive()
        return (not self.read) and self.created_at is not None and now - self.created_at <= window

    def __repr__(self) -> str:
        return f"<Notification {self.id} user={self.user_id} {self.type}>"


# =========================================================
# Feedback
# =========================================================
class Feedback(db.Model):
    __tablename__ = "feedback"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    user_email = db.Column(db.String(120), nullable=False)
    user_name = db.Column(db.String(120), nullable=False)

    feedback = db.Column(db.Text, nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(20), nullable=False, default="general")
    status = db.Column(db.String(20), nullable=False, default="new")

    admin_note = db.Column(db.Text, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_feedback_rating"),
        db.CheckConstraint(_in_check("status", FEEDBACK_STATUSES), name="ck_feedback_status"),
    )

    def __repr__(self) -> str:
        return f"<Feedback {self.id} {self.status} rating={self.rating}>"


# =========================================================
# Back-office settings (one JSON document per key)
# =========================================================
class AdminSetting(db.Model):
    __tablename__ = "admin_setting"

    key = db.Column(db.String(60), primary_key=True)
    value = db.Column(MutableDict.as_mutable(JSONType), nullable=False, default=dict)

    updated_by = db.Column(db.String(120), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    def __repr__(self) -> str:
        return f"<AdminSetting {self.key}>"
