# nitionz/services/admin_settings.py
"""
Back-office notification settings, kept as one JSON document in
``admin_setting`` under the key ``notifications``. Reads merge the stored
document over DEFAULTS, so a fresh install returns sensible values without a
row.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from nitionz.config.company import MAX_ORDER_AMOUNT, format_inr
from nitionz.errors import ValidationError
from nitionz.extensions import db
from nitionz.models import AdminSetting
from nitionz.services.base import commit_or_raise
from nitionz.utils.validators import clean_str, parse_bool, parse_decimal, parse_int

NOTIFICATIONS_KEY = "notifications"

DEFAULTS = {
    "userNotificationDays": 7,
    "autoKycApproval": False,
    "maxInvestmentAmount": 10000000,
    "minInvestmentAmount": 100000,
    "emailNotifications": True,
    "smsNotifications": False,
}

_FLAGS = ("autoKycApproval", "emailNotifications", "smsNotifications")
_AMOUNTS = ("minInvestmentAmount", "maxInvestmentAmount")


def _amount(data: dict, name: str) -> int:
    value = parse_decimal(data.get(name))
    if value is None or value <= 0:
        raise ValidationError("Amount must be a positive number.", field=name)
    if value > MAX_ORDER_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {format_inr(MAX_ORDER_AMOUNT)}.", field=name)
    return int(value.to_integral_value())


def get_notification_settings() -> tuple[dict, AdminSetting | None]:
    row = db.session.get(AdminSetting, NOTIFICATIONS_KEY)
    stored = dict(row.value) if row is not None else {}
    return {**DEFAULTS, **{k: v for k, v in stored.items() if k in DEFAULTS}}, row


def save_notification_settings(data: dict, *, updated_by=None) -> tuple[dict, AdminSetting]:
    """Partial update: keys not in ``data`` keep their current value."""
    data = data or {}
    current, row = get_notification_settings()
    merged = dict(current)

    if "userNotificationDays" in data:
        days = parse_int(data.get("userNotificationDays"))
        if days is None or not 1 <= days <= 365:
            raise ValidationError("Notification days must be between 1 and 365.", field="userNotificationDays")
        merged["userNotificationDays"] = days

    for name in _FLAGS:
        if name in data:
            merged[name] = parse_bool(data.get(name))

    for name in _AMOUNTS:
        if name in data:
            merged[name] = _amount(data, name)

    if Decimal(merged["minInvestmentAmount"]) > Decimal(merged["maxInvestmentAmount"]):
        raise ValidationError(
            "Minimum investment cannot be above the maximum.",
            field="minInvestmentAmount",
        )

    if row is None:
        row = AdminSetting(key=NOTIFICATIONS_KEY)
        db.session.add(row)
    row.value = merged
    row.updated_by = clean_str(updated_by) or "admin"

    commit_or_raise("Save settings")
    current_app.logger.info("Admin settings '%s' saved by %s", NOTIFICATIONS_KEY, row.updated_by)
    return merged, row
