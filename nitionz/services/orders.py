# nitionz/services/orders.py
"""
Order lifecycle.

    pending ──submit_payment──> payment_uploaded ──decide(approve)──> paid
       │                              │  └──mark_processing──> processing ──complete──> paid
       └──cancel_unpaid──> cancelled <┘ decide(reject)

Every status change is a guarded UPDATE (``WHERE status = <expected>``), so a
second admin acting on the same order loses cleanly with InvalidStateError
instead of overwriting the first decision.
"""

from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nitionz.config.company import MAX_ORDER_AMOUNT, format_inr
from nitionz.errors import InvalidStateError, NotFoundError, UpstreamError, ValidationError
from nitionz.extensions import db
from nitionz.models import (
    ACTIVE_ORDER_STATUSES,
    ORDER_CANCELLED,
    ORDER_PAID,
    ORDER_PAYMENT_UPLOADED,
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_STATUSES,
    BankDetail,
    InvestmentPlan,
    Order,
    can_transition,
    utcnow_naive,
)
from nitionz.services import notifications
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import clean_str, parse_decimal, parse_int, parse_uuid, sanitize_input

DECISIONS = {"approve": ORDER_PAID, "reject": ORDER_CANCELLED}

TRANSACTION_ID_MAXLEN = 120
LIST_LIMIT = 500
DEFAULT_ROI_PERCENTAGE = Decimal("12")


# =========================================================
# Lookups
# =========================================================
def get_order(order_id) -> Order:
    return get_or_raise(Order, parse_uuid(order_id), "Order")


def get_order_for_user(order_id, user_id) -> Order:
    order = get_order(order_id)
    # Other people's orders look exactly like missing ones.
    if order.user_id != user_id:
        raise NotFoundError("Order not found.")
    return order


def _orders_query(*, status: str | None = None, search: str | None = None, user_id=None):
    stmt = sa.select(Order)

    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise ValidationError("Invalid status filter.", field="status")
        stmt = stmt.where(Order.status == status)

    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)

    q = clean_str(search)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(
            sa.or_(
                Order.user_name.ilike(like),
                Order.user_email.ilike(like),
                Order.plan_name.ilike(like),
                Order.transaction_id.ilike(like),
            )
        )

    return stmt.order_by(Order.created_at.desc())


def list_orders(*, status: str | None = None, search: str | None = None, user_id=None, limit: int | None = None):
    stmt = _orders_query(status=status, search=search, user_id=user_id).limit(limit or LIST_LIMIT)
    return list(db.session.scalars(stmt).unique())


# =========================================================
# Transition helper
# =========================================================
def _transition(order: Order, target: str, action: str, **values) -> Order:
    expected = order.status
    if not can_transition(expected, target):
        raise InvalidStateError(f"Order is '{expected}' and cannot move to '{target}'.")

    try:
        result = db.session.execute(
            sa.update(Order)
            .where(Order.id == order.id, Order.status == expected)
            .values(status=target, updated_at=utcnow_naive(), **values)
            .execution_options(synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise UpstreamError(f"{action} failed. Please try again.") from exc

    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStateError("Order was changed by someone else. Reload and try again.")

    commit_or_raise(action)
    db.session.refresh(order)
    current_app.logger.info("Order %s: %s -> %s", order.id, expected, target)
    return order


# =========================================================
# User side
# =========================================================
def create_order(user, plan_id, amount, bank_detail_id=None) -> Order:
    plan = get_or_raise(InvestmentPlan, parse_int(plan_id), "Investment plan")
    if not plan.is_active:
        raise ValidationError("This plan is not open for investment.", field="planId")

    value = parse_decimal(amount)
    if value is None or value <= 0:
        raise ValidationError("Amount must be a positive number.", field="amount")
    value = value.quantize(Decimal("0.01"))
    if value > MAX_ORDER_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {format_inr(MAX_ORDER_AMOUNT)}.", field="amount")
    if value < plan.min_amount or value > plan.max_amount:
        raise ValidationError(
            f"Amount must be between {format_inr(plan.min_amount)} and {format_inr(plan.max_amount)} for {plan.name}.",
            field="amount",
        )

    if bank_detail_id not in (None, ""):
        bank = get_or_raise(BankDetail, parse_int(bank_detail_id), "Bank account")
        if not bank.is_active:
            raise ValidationError("That bank account is not accepting payments.", field="bankDetailId")
    else:
        bank = db.session.scalars(
            sa.select(BankDetail).where(BankDetail.is_active.is_(True)).order_by(BankDetail.is_default.desc(), BankDetail.id)
        ).first()

    order = Order(
        user_id=user.id,
        user_name=user.name,
        user_email=user.email,
        plan_id=plan.id,
        plan_name=plan.name,
        roi_percentage=plan.roi_percentage,
        duration_months=plan.duration_months,
        amount=value,
        status=ORDER_PENDING,
        bank_details=bank.snapshot() if bank else None,
    )
    db.session.add(order)
    commit_or_raise("Create order")
    current_app.logger.info("Order %s created by user %s for %s", order.id, user.id, value)
    return order


def payable_order(order_id, transaction_id, *, user_id) -> tuple[Order, str]:
    """
    Every check submit_payment makes before writing. Routes call it before
    storing a proof file. Returns the order and the cleaned transaction id.
    """
    txn = clean_str(transaction_id)
    if not txn:
        raise ValidationError("Transaction ID is required.", field="transactionId")
    if len(txn) > TRANSACTION_ID_MAXLEN:
        raise ValidationError(f"Transaction ID too long (max {TRANSACTION_ID_MAXLEN}).", field="transactionId")

    order = get_order_for_user(order_id, user_id)
    if order.status != ORDER_PENDING:
        raise InvalidStateError("Payment has already been submitted for this order.")
    return order, txn


def submit_payment(order_id, transaction_id, proof_url=None, *, user_id, payment_note=None) -> Order:
    order, txn = payable_order(order_id, transaction_id, user_id=user_id)
    return _transition(
        order,
        ORDER_PAYMENT_UPLOADED,
        "Submit payment",
        transaction_id=txn,
        payment_proof=clean_str(proof_url) or None,
        payment_note=sanitize_input(payment_note) or None,
    )


def cancel_unpaid(order_id, *, user_id=None) -> Order:
    """Drop an order nobody has paid for yet (user or admin)."""
    order = get_order_for_user(order_id, user_id) if user_id is not None else get_order(order_id)
    if order.status != ORDER_PENDING:
        raise InvalidStateError("Only unpaid orders can be cancelled.")
    return _transition(order, ORDER_CANCELLED, "Cancel order")


# =========================================================
# Admin side
# =========================================================
def decide(order_id, decision, admin_note=None, *, decided_by=None) -> Order:
    target = DECISIONS.get(clean_str(decision).lower())
    if target is None:
        raise ValidationError("Decision must be 'approve' or 'reject'.", field="decision")

    order = get_order(order_id)
    if order.status != ORDER_PAYMENT_UPLOADED:
        raise InvalidStateError(f"Order is '{order.status}'; only orders awaiting payment review can be decided.")

    note = sanitize_input(admin_note) or order.admin_note
    order = _transition(
        order,
        target,
        "Approve order" if target == ORDER_PAID else "Reject order",
        admin_note=note,
        decided_at=utcnow_naive(),
        decided_by=decided_by,
    )

    if target == ORDER_PAID:
        notifications.notify_payment_received(order.user_id, order.plan_name, order.amount)
    else:
        notifications.notify_order_cancelled(order.user_id, order.plan_name, order.amount, order.admin_note)
    return order


def mark_processing(order_id, admin_note=None, *, decided_by=None) -> Order:
    order = get_order(order_id)
    if order.status != ORDER_PAYMENT_UPLOADED:
        raise InvalidStateError(f"Order is '{order.status}'; only orders awaiting payment review can be processed.")

    order = _transition(
        order,
        ORDER_PROCESSING,
        "Mark order processing",
        admin_note=sanitize_input(admin_note) or order.admin_note,
        decided_at=utcnow_naive(),
        decided_by=decided_by,
    )
    notifications.notify_payment_received(order.user_id, order.plan_name, order.amount)
    return order


def complete_processing(order_id, *, decided_by=None) -> Order:
    order = get_order(order_id)
    if order.status != ORDER_PROCESSING:
        raise InvalidStateError(f"Order is '{order.status}', not processing.")

    order = _transition(order, ORDER_PAID, "Complete order", decided_by=decided_by or order.decided_by)
    notifications.notify_investment_confirmation(order.user_id, order.plan_name, order.amount)
    return order


def set_status(order_id, target, admin_note=None, *, decided_by=None) -> Order:
    """
    Back-office "change status" control. Routes each requested status to the
    operation that owns it; anything else is an invalid transition.
    """
    target = clean_str(target).lower()
    if target not in ORDER_STATUSES:
        raise ValidationError("Invalid status.", field="status")

    order = get_order(order_id)
    current = order.status

    if current == ORDER_PAYMENT_UPLOADED and target == ORDER_PAID:
        return decide(order_id, "approve", admin_note, decided_by=decided_by)
    if current == ORDER_PAYMENT_UPLOADED and target == ORDER_CANCELLED:
        return decide(order_id, "reject", admin_note, decided_by=decided_by)
    if current == ORDER_PAYMENT_UPLOADED and target == ORDER_PROCESSING:
        return mark_processing(order_id, admin_note, decided_by=decided_by)
    if current == ORDER_PROCESSING and target == ORDER_PAID:
        return complete_processing(order_id, decided_by=decided_by)
    if current == ORDER_PENDING and target == ORDER_CANCELLED:
        return cancel_unpaid(order_id)

    raise InvalidStateError(f"Order is '{current}' and cannot move to '{target}'.")


def update_admin_note(order_id, admin_note) -> Order:
    order = get_order(order_id)
    order.admin_note = sanitize_input(admin_note) or None
    commit_or_raise("Update order note")
    return order


def certifiable_order(order_id) -> Order:
    order = get_order(order_id)
    if order.status not in ACTIVE_ORDER_STATUSES:
        raise InvalidStateError("Certificates can only be attached once the payment is confirmed.")
    return order


def attach_certificate(order_id, file_ref, uploaded_by) -> Order:
    url = clean_str(file_ref)
    if not url:
        raise ValidationError("Certificate file is required.", field="certificate")

    order = certifiable_order(order_id)

    if order.certificate:
        current_app.logger.info("Order %s: replacing certificate %s", order.id, order.certificate.get("url"))

    order.certificate = {
        "url": url,
        "uploadedAt": utcnow_naive().isoformat(),
        "uploadedBy": clean_str(uploaded_by) or "admin",
    }
    commit_or_raise("Attach certificate")
    return order


# =========================================================
# Portfolio (user dashboard)
# =========================================================
def _months_elapsed(order: Order, now) -> int:
    if not order.created_at:
        return 0
    return max(0, (now - order.created_at).days // 30)


def current_value(order: Order, now=None) -> Decimal:
    """Amount compounded monthly at the plan's ROI for the whole months elapsed."""
    now = now or utcnow_naive()
    roi = Decimal(str(order.roi_percentage if order.roi_percentage is not None else DEFAULT_ROI_PERCENTAGE))
    monthly = roi / Decimal(12) / Decimal(100)
    value = Decimal(str(order.amount)) * (Decimal(1) + monthly) ** _months_elapsed(order, now)
    return value.quantize(Decimal("0.01"))


def portfolio_summary(user_id, now=None) -> dict:
    now = now or utcnow_naive()
    # every order, not a listing page
    orders = list(db.session.scalars(_orders_query(user_id=user_id)).unique())
    active = [o for o in orders if o.status in ACTIVE_ORDER_STATUSES]

    total_invested = sum((Decimal(str(o.amount)) for o in active), Decimal("0"))
    value_now = sum((current_value(o, now) for o in active), Decimal("0"))

    return {
        "totalInvested": total_invested,
        "currentValue": value_now,
        "totalProfit": value_now - total_invested,
        "activeInvestments": len(active),
        "pendingOrders": sum(1 for o in orders if o.status in (ORDER_PENDING, ORDER_PAYMENT_UPLOADED)),
        "investments": [(o, current_value(o, now)) for o in active],
    }
