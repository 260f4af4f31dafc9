# tests/test_orders.py
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from unittest import mock

from conftest import make_bank, make_order, make_plan, make_user
from nitionz.errors import InvalidStateError, NotFoundError, UpstreamError, ValidationError
from nitionz.extensions import db
from nitionz.models import Notification, Order, utcnow_naive
from nitionz.services import orders


def _notifications_for(user_id):
    return db.session.scalars(sa.select(Notification).where(Notification.user_id == user_id)).all()


# ======================
# Checkout
# ======================
def test_create_order_snapshots_default_bank(ctx):
    user = make_user()
    plan = make_plan()
    make_bank("SBI", account="11112222333")
    default = make_bank("HDFC Bank", default=True)

    order = orders.create_order(user, plan.id, "250000")

    assert order.status == "pending"
    assert order.amount == Decimal("250000.00")
    assert order.plan_name == "Gold FD"
    assert order.roi_percentage == Decimal("12")
    assert order.bank_details["id"] == default.id
    assert order.bank_details["bankName"] == "HDFC Bank"


def test_create_order_rejects_amount_outside_plan_range(ctx):
    user = make_user()
    plan = make_plan(min_amount="10000", max_amount="100000")

    with pytest.raises(ValidationError) as exc:
        orders.create_order(user, plan.id, "500000")
    assert exc.value.field == "amount"

    with pytest.raises(ValidationError):
        orders.create_order(user, plan.id, "-5")
    with pytest.raises(ValidationError):
        orders.create_order(user, plan.id, "abc")


def test_create_order_rejects_amount_above_one_crore(ctx):
    user = make_user()
    plan = make_plan(max_amount="10000000")
    with pytest.raises(ValidationError):
        orders.create_order(user, plan.id, "10000000.01")


def test_create_order_unknown_or_inactive_plan(ctx):
    user = make_user()
    inactive = make_plan("Closed FD", active=False)

    with pytest.raises(NotFoundError):
        orders.create_order(user, 9999, "50000")
    with pytest.raises(ValidationError):
        orders.create_order(user, inactive.id, "50000")


def test_amount_is_immutable_after_creation(ctx):
    user = make_user()
    order = make_order(user, make_plan())
    with pytest.raises(ValueError):
        order.amount = Decimal("1")


# ======================
# Payment submission
# ======================
def test_submit_payment_moves_pending_to_payment_uploaded(ctx):
    user = make_user()
    order = make_order(user, make_plan())

    updated = orders.submit_payment(
        order.id, " UTR123456 ", "https://files.example.com/proof.jpg", user_id=user.id, payment_note="NEFT"
    )

    assert updated.status == "payment_uploaded"
    assert updated.transaction_id == "UTR123456"
    assert updated.payment_proof == "https://files.example.com/proof.jpg"
    assert updated.payment_note == "NEFT"


def test_submit_payment_requires_transaction_id(ctx):
    user = make_user()
    order = make_order(user, make_plan())
    with pytest.raises(ValidationError):
        orders.submit_payment(order.id, "   ", user_id=user.id)
    assert db.session.get(Order, order.id).status == "pending"


def test_submit_payment_on_someone_elses_order_is_not_found(ctx):
    owner = make_user()
    other = make_user("other@example.com")
    order = make_order(owner, make_plan())
    with pytest.raises(NotFoundError):
        orders.submit_payment(order.id, "UTR1", user_id=other.id)


def test_payable_order_checks_without_writing(ctx):
    user = make_user()
    order = make_order(user, make_plan())

    found, txn = orders.payable_order(order.id, "  UTR77 ", user_id=user.id)

    assert found.id == order.id
    assert txn == "UTR77"
    assert db.session.get(Order, order.id).status == "pending"

    other = make_user("ravi@example.com")
    with pytest.raises(NotFoundError):
        orders.payable_order(order.id, "UTR77", user_id=other.id)


def test_submit_payment_twice_is_invalid_state(ctx):
    user = make_user()
    order = make_order(user, make_plan())
    orders.submit_payment(order.id, "UTR1", user_id=user.id)
    with pytest.raises(InvalidStateError):
        orders.submit_payment(order.id, "UTR2", user_id=user.id)


# ======================
# Admin decision
# ======================
def test_approve_marks_paid_and_emits_one_success_notification(ctx):
    user = make_user()
    order = make_order(user, make_plan(), amount="500000", status="payment_uploaded", transaction_id="UTR9")

    decided = orders.decide(order.id, "approve", decided_by="ops@nitionz.test")

    assert decided.status == "paid"
    assert decided.decided_by == "ops@nitionz.test"
    assert decided.decided_at is not None

    notes = _notifications_for(user.id)
    assert len(notes) == 1
    assert notes[0].type == "success"
    assert notes[0].title == "Payment Received!"
    assert "₹5,00,000" in notes[0].message


def test_second_approve_fails(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")

    orders.decide(order.id, "approve")
    with pytest.raises(InvalidStateError):
        orders.decide(order.id, "approve")
    with pytest.raises(InvalidStateError):
        orders.decide(order.id, "reject")

    assert db.session.get(Order, order.id).status == "paid"
    assert len(_notifications_for(user.id)) == 1


def test_reject_cancels_and_warns_user(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")

    decided = orders.decide(order.id, "reject", "UTR not found in statement")

    assert decided.status == "cancelled"
    assert decided.admin_note == "UTR not found in statement"
    notes = _notifications_for(user.id)
    assert [n.type for n in notes] == ["warning"]
    assert "UTR not found" in notes[0].message


def test_decide_requires_known_decision(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")
    with pytest.raises(ValidationError):
        orders.decide(order.id, "maybe")


def test_decide_on_pending_order_is_invalid_state(ctx):
    user = make_user()
    order = make_order(user, make_plan())
    with pytest.raises(InvalidStateError):
        orders.decide(order.id, "approve")


def test_guarded_update_loses_race_cleanly(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")
    stale = db.session.get(Order, order.id)
    assert stale.status == "payment_uploaded"

    # another admin approves behind our back
    db.session.execute(
        sa.update(Order).where(Order.id == order.id).values(status="paid").execution_options(synchronize_session=False)
    )
    assert stale.status == "payment_uploaded"

    with pytest.raises(InvalidStateError):
        orders._transition(stale, "cancelled", "Reject order")


def test_processing_then_complete(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")

    assert orders.mark_processing(order.id).status == "processing"
    assert orders.complete_processing(order.id).status == "paid"

    titles = sorted(n.title for n in _notifications_for(user.id))
    assert titles == ["Investment Confirmed!", "Payment Received!"]

    with pytest.raises(InvalidStateError):
        orders.complete_processing(order.id)


def test_cancel_unpaid_only_from_pending(ctx):
    user = make_user()
    plan = make_plan()
    pending = make_order(user, plan)
    uploaded = make_order(user, plan, status="payment_uploaded")

    assert orders.cancel_unpaid(pending.id, user_id=user.id).status == "cancelled"
    with pytest.raises(InvalidStateError):
        orders.cancel_unpaid(uploaded.id, user_id=user.id)
    assert _notifications_for(user.id) == []


def test_set_status_routes_to_the_right_transition(ctx):
    user = make_user()
    plan = make_plan()
    order = make_order(user, plan, status="payment_uploaded")

    assert orders.set_status(order.id, "processing").status == "processing"
    with pytest.raises(InvalidStateError):
        orders.set_status(order.id, "cancelled")
    with pytest.raises(ValidationError):
        orders.set_status(order.id, "refunded")
    assert orders.set_status(order.id, "paid").status == "paid"


def test_notification_failure_does_not_undo_approval(ctx):
    user = make_user()
    order = make_order(user, make_plan(), status="payment_uploaded")

    real_commit = Session.commit

    def commit_failing_for_notifications(self):
        if any(isinstance(obj, Notification) for obj in self.new):
            raise OperationalError("INSERT INTO notification", {}, Exception("disk I/O error"))
        return real_commit(self)

    with mock.patch.object(Session, "commit", commit_failing_for_notifications):
        decided = orders.decide(order.id, "approve")

    assert decided.status == "paid"
    assert db.session.get(Order, order.id).status == "paid"
    assert _notifications_for(user.id) == []


def test_store_failure_during_transition_raises_upstream_error(ctx):
    user = make_user()
    order = make_order(user, make_plan())

    with mock.patch.object(Session, "commit", side_effect=OperationalError("UPDATE", {}, Exception("gone"))):
        with pytest.raises(UpstreamError):
            orders.submit_payment(order.id, "UTR1", user_id=user.id)

    assert db.session.get(Order, order.id).status == "pending"


# ======================
# Certificates
# ======================
def test_attach_certificate_only_for_live_investments(ctx):
    user = make_user()
    plan = make_plan()
    pending = make_order(user, plan)
    paid = make_order(user, plan, status="paid")

    with pytest.raises(InvalidStateError):
        orders.attach_certificate(pending.id, "https://files.example.com/cert.pdf", "ops")
    with pytest.raises(ValidationError):
        orders.attach_certificate(paid.id, "  ", "ops")

    updated = orders.attach_certificate(paid.id, "https://files.example.com/cert.pdf", "ops")
    assert updated.status == "paid"
    assert updated.certificate["url"] == "https://files.example.com/cert.pdf"
    assert updated.certificate["uploadedBy"] == "ops"

    replaced = orders.attach_certificate(paid.id, "https://files.example.com/cert-v2.pdf", "ops")
    assert replaced.certificate["url"].endswith("cert-v2.pdf")


# ======================
# Listing + portfolio
# ======================
def test_list_orders_filters_and_searches(ctx):
    asha = make_user()
    ravi = make_user("ravi@example.com", name="Ravi Kumar")
    gold = make_plan()
    silver = make_plan("Silver FD")
    make_order(asha, gold)
    make_order(ravi, silver, status="payment_uploaded")

    assert len(orders.list_orders()) == 2
    assert [o.user_email for o in orders.list_orders(status="payment_uploaded")] == ["ravi@example.com"]
    assert [o.plan_name for o in orders.list_orders(search="silver")] == ["Silver FD"]
    assert [o.user_name for o in orders.list_orders(user_id=asha.id)] == ["Asha Investor"]
    with pytest.raises(ValidationError):
        orders.list_orders(status="bogus")


def test_portfolio_counts_paid_and_processing(ctx):
    user = make_user()
    plan = make_plan(roi="12")
    now = utcnow_naive()
    make_order(user, plan, amount="100000", status="paid", created_at=now - timedelta(days=61))
    make_order(user, plan, amount="50000", status="processing", created_at=now)
    make_order(user, plan, amount="20000", status="payment_uploaded")
    make_order(user, plan, amount="30000", status="cancelled")

    summary = orders.portfolio_summary(user.id, now=now)

    assert summary["totalInvested"] == Decimal("150000.00")
    assert summary["activeInvestments"] == 2
    assert summary["pendingOrders"] == 1
    # two whole months at 1% a month on the older deposit
    assert summary["currentValue"] == Decimal("152010.00")
    assert summary["totalProfit"] == Decimal("2010.00")


def test_portfolio_is_not_capped_by_the_listing_limit(ctx, monkeypatch):
    user = make_user()
    plan = make_plan()
    for _ in range(3):
        make_order(user, plan, amount="100000", status="paid")
    monkeypatch.setattr(orders, "LIST_LIMIT", 2)

    assert len(orders.list_orders(user_id=user.id)) == 2

    summary = orders.portfolio_summary(user.id)
    assert summary["activeInvestments"] == 3
    assert summary["totalInvested"] == Decimal("300000")
