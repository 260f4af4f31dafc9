# nitionz/services/notifications.py
"""
Notification emitter.

Notifications are a side channel: a failed write must never undo or block the
transition that triggered it. ``emit`` therefore commits on its own, rolls
back and logs on failure, and hands the outcome back as an ``EmitResult`` the
caller is free to ignore.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nitionz.config.company import format_inr
from nitionz.errors import NotFoundError
from nitionz.extensions import db
from nitionz.models import NOTIFICATION_TYPES, Notification, utcnow_naive
from nitionz.services.base import commit_or_raise


@dataclass(frozen=True)
class EmitResult:
    ok: bool
    notification_id: str | None = None
    error: str | None = None


# =========================================================
# Emitter
# =========================================================
def emit(user_id, title: str, message: str, severity: str = "info") -> EmitResult:
    if user_id is None:
        return EmitResult(ok=False, error="no recipient")

    if severity not in NOTIFICATION_TYPES:
        severity = "info"

    note = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=severity,
        read=False,
        created_at=utcnow_naive(),
    )
    try:
        db.session.add(note)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Creating notification for user %s failed", user_id)
        return EmitResult(ok=False, error=str(exc))

    return EmitResult(ok=True, notification_id=str(note.id))


# =========================================================
# Typed helpers (one per state transition of interest)
# =========================================================
def notify_kyc_status_change(user_id, status: str, rejection_reason: str | None = None) -> EmitResult:
    if status == "approved":
        return emit(
            user_id,
            "KYC Approved!",
            "Your KYC verification has been approved. You can now start investing!",
            "success",
        )
    return emit(
        user_id,
        "KYC Needs Attention",
        f"Your KYC verification was rejected. Reason: {rejection_reason}",
        "warning",
    )


def notify_payment_received(user_id, plan_name: str, amount) -> EmitResult:
    return emit(
        user_id,
        "Payment Received!",
        f"We have received your payment of {format_inr(amount)} for {plan_name}. "
        "Your investment is now active.",
        "success",
    )


def notify_investment_confirmation(user_id, plan_name: str, amount) -> EmitResult:
    return emit(
        user_id,
        "Investment Confirmed!",
        f"Your investment in {plan_name} for {format_inr(amount)} has been confirmed.",
        "success",
    )


def notify_order_cancelled(user_id, plan_name: str, amount, admin_note: str | None = None) -> EmitResult:
    message = f"Your payment of {format_inr(amount)} for {plan_name} could not be verified and the order was cancelled."
    if admin_note:
        message = f"{message} Note: {admin_note}"
    return emit(user_id, "Payment Not Verified", message, "warning")


def notify_query_response(user_id, query_subject: str, query_type: str = "general") -> EmitResult:
    if query_type == "priority":
        message = (
            f'You have a new response for your priority query: "{query_subject}". '
            "You can reply to continue the conversation."
        )
    else:
        message = (
            f'You have a new response for your query: "{query_subject}". '
            "Check your queries to view the response."
        )
    return emit(user_id, "Query Response", message, "success" if query_type == "priority" else "info")


# =========================================================
# Reader side
# =========================================================
def _new_window() -> timedelta:
    return timedelta(hours=current_app.config.get("NOTIFICATION_NEW_WINDOW_HOURS", 24))


def list_for_user(user_id, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    stmt = sa.select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
    return list(db.session.scalars(stmt))


def unread_badge_count(user_id, now=None) -> int:
    """Unread notifications that are still 'new' (inside the rolling window)."""
    since = (now or utcnow_naive()) - _new_window()
    stmt = (
        sa.select(sa.func.count(Notification.id))
        .where(Notification.user_id == user_id)
        .where(Notification.read.is_(False))
        .where(Notification.created_at >= since)
    )
    return db.session.scalar(stmt) or 0


def mark_read(notification_id, user_id) -> Notification:
    note = db.session.get(Notification, notification_id) if notification_id else None
    if note is None or note.user_id != user_id:
        raise NotFoundError("Notification not found.")
    if not note.read:
        note.read = True
        commit_or_raise("Mark notification read")
    return note


def mark_all_read(user_id) -> int:
    result = db.session.execute(
        sa.update(Notification)
        .where(Notification.user_id == user_id)
        .where(Notification.read.is_(False))
        .values(read=True)
    )
    commit_or_raise("Mark notifications read")
    return result.rowcount or 0
