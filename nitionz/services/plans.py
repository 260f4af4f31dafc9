# nitionz/services/plans.py
from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from flask import current_app

from nitionz.config.company import MAX_ORDER_AMOUNT
from nitionz.errors import ValidationError
from nitionz.extensions import db
from nitionz.models import InvestmentPlan, Order
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import parse_bool, parse_decimal, parse_int, sanitize_input


def get_plan(plan_id) -> InvestmentPlan:
    return get_or_raise(InvestmentPlan, parse_int(plan_id), "Investment plan")


def list_plans(*, active_only: bool = True):
    stmt = sa.select(InvestmentPlan)
    if active_only:
        stmt = stmt.where(InvestmentPlan.is_active.is_(True))
    return list(db.session.scalars(stmt.order_by(InvestmentPlan.min_amount, InvestmentPlan.id)))


def _apply(plan: InvestmentPlan, data: dict, *, partial: bool) -> None:
    if "name" in data or not partial:
        name = sanitize_input(data.get("name"), maxlen=120)
        if not name:
            raise ValidationError("Plan name is required.", field="name")
        plan.name = name

    if "description" in data:
        plan.description = sanitize_input(data.get("description"), maxlen=2000) or None

    for key, column in (("minAmount", "min_amount"), ("maxAmount", "max_amount")):
        if key in data or not partial:
            value = parse_decimal(data.get(key))
            if value is None or value <= 0:
                raise ValidationError(f"{key} must be a positive number.", field=key)
            setattr(plan, column, value.quantize(Decimal("0.01")))

    if "roiPercentage" in data or not partial:
        roi = parse_decimal(data.get("roiPercentage"))
        if roi is None or roi <= 0 or roi > 100:
            raise ValidationError("ROI must be between 0 and 100.", field="roiPercentage")
        plan.roi_percentage = roi

    if "durationMonths" in data or not partial:
        months = parse_int(data.get("durationMonths"))
        if months is None or months <= 0:
            raise ValidationError("Duration must be a positive number of months.", field="durationMonths")
        plan.duration_months = months

    if "isActive" in data:
        plan.is_active = parse_bool(data.get("isActive"), default=True)

    if plan.max_amount < plan.min_amount:
        raise ValidationError("Maximum amount must not be below the minimum.", field="maxAmount")
    if plan.max_amount > MAX_ORDER_AMOUNT:
        raise ValidationError("Maximum amount exceeds the platform limit.", field="maxAmount")


def create_plan(data: dict) -> InvestmentPlan:
    plan = InvestmentPlan(is_active=True)
    _apply(plan, data or {}, partial=False)
    db.session.add(plan)
    commit_or_raise("Create plan")
    return plan


def update_plan(plan_id, data: dict) -> InvestmentPlan:
    plan = get_plan(plan_id)
    try:
        _apply(plan, data or {}, partial=True)
    except ValidationError:
        # drop half-applied edits
        db.session.rollback()
        raise
    commit_or_raise("Update plan")
    return plan


def toggle_plan(plan_id) -> InvestmentPlan:
    plan = get_plan(plan_id)
    plan.is_active = not plan.is_active
    commit_or_raise("Toggle plan")
    return plan


def delete_plan(plan_id) -> bool:
    """
    Delete a plan nobody has ordered; a plan with orders is only deactivated.
    Returns True when the row was actually deleted.
    """
    plan = get_plan(plan_id)
    in_use = db.session.scalar(sa.select(sa.func.count(Order.id)).where(Order.plan_id == plan.id)) or 0
    if in_use:
        plan.is_active = False
        commit_or_raise("Deactivate plan")
        current_app.logger.info("Plan %s has %s orders; deactivated instead of deleted", plan.id, in_use)
        return False

    db.session.delete(plan)
    commit_or_raise("Delete plan")
    return True
