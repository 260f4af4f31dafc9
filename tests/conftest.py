# tests/conftest.py
"""
Shared fixtures.

The app runs on in-memory SQLite (one shared connection). Service-level tests
use the ``ctx`` fixture; API tests talk to the app through ``client`` and only
open short app contexts to seed rows, so every request gets its own context
(and its own Flask-Login user).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from nitionz import create_app
from nitionz.extensions import db
from nitionz.models import BankDetail, InvestmentPlan, KYCRecord, Order, User
from nitionz.settings import TestConfig
from nitionz.utils.passwords import hash_password

PASSWORD = "Str0ng!Passw0rd"


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        UPLOAD_DIR = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.rollback()


@pytest.fixture
def client(app):
    return app.test_client()


# =========================================================
# Factories (call inside an app context)
# =========================================================
def make_user(email="investor@example.com", *, name="Asha Investor", role="user", status="active", password=PASSWORD):
    user = User(
        name=name,
        email=email,
        phone="+919876543210",
        password_hash=hash_password(password),
        role=role,
        status=status,
    )
    db.session.add(user)
    db.session.commit()
    return user


def make_plan(name="Gold FD", *, min_amount="10000", max_amount="1000000", roi="12", months=12, active=True):
    plan = InvestmentPlan(
        name=name,
        description=f"{name} fixed deposit",
        min_amount=Decimal(min_amount),
        max_amount=Decimal(max_amount),
        roi_percentage=Decimal(roi),
        duration_months=months,
        is_active=active,
    )
    db.session.add(plan)
    db.session.commit()
    return plan


def make_bank(name="HDFC Bank", *, default=False, active=True, account="50100123456789"):
    bank = BankDetail(
        bank_name=name,
        account_number=account,
        account_holder_name="Nitionz Pvt Ltd",
        ifsc_code="HDFC0001234",
        branch_name="Andheri East",
        upi_id="nitionz@hdfcbank",
        upi_enabled=True,
        is_default=default,
        is_active=active,
    )
    db.session.add(bank)
    db.session.commit()
    return bank


def make_order(user, plan, *, amount="500000", status="pending", transaction_id=None, created_at=None):
    order = Order(
        user_id=user.id,
        user_name=user.name,
        user_email=user.email,
        plan_id=plan.id,
        plan_name=plan.name,
        roi_percentage=plan.roi_percentage,
        duration_months=plan.duration_months,
        amount=Decimal(amount),
        status=status,
        transaction_id=transaction_id,
    )
    if created_at is not None:
        order.created_at = created_at
    db.session.add(order)
    db.session.commit()
    return order


def make_kyc(user, *, status="submitted", reason=None):
    record = KYCRecord(
        id=user.id,
        status=status,
        document_type="pan",
        document_number="ABCDE1234F",
        full_name=user.name,
        date_of_birth=date(1990, 5, 17),
        address="12 MG Road, Pune",
        document_url="https://files.example.com/kyc/pan.jpg",
        rejection_reason=reason,
    )
    db.session.add(record)
    db.session.commit()
    return record


def login(client, email, password=PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp
