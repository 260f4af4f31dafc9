# nitionz/services/analytics.py
"""
Back-office dashboard numbers.

``compute_dashboard`` is a pure fold over snapshots of orders, users and KYC
records. It never touches the session, so calling it twice on the same
snapshot with the same ``now`` gives the same result. ``load_dashboard`` is
the thin wrapper the admin API uses to read the snapshots.

Timestamps on the rows are naive UTC; bucket boundaries (days, months,
years) are taken in the configured local time zone.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import sqlalchemy as sa
from flask import current_app

from nitionz.extensions import db
from nitionz.models import (
    ACTIVE_ORDER_STATUSES,
    KYC_APPROVED,
    KYC_PENDING,
    KYC_REJECTED,
    KYC_SUBMITTED,
    ORDER_CANCELLED,
    ORDER_PAID,
    ORDER_PAYMENT_UPLOADED,
    ORDER_STATUSES,
    KYCRecord,
    Order,
    User,
    utcnow_naive,
)

DAILY_POINTS = 30
MONTHLY_POINTS = 12
YEARLY_POINTS = 5


@dataclass
class DashboardStats:
    total_users: int = 0
    total_investments: int = 0
    total_revenue: Decimal = Decimal("0")
    active_investments: int = 0
    pending_orders: int = 0
    completed_orders: int = 0
    rejected_orders: int = 0
    status_counts: dict = field(default_factory=dict)
    kyc_approved: int = 0
    kyc_pending: int = 0
    kyc_rejected: int = 0
    plan_distribution: dict = field(default_factory=dict)
    monthly_revenue: list = field(default_factory=list)
    user_growth: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ======================
# Time bucketing
# ======================
def _local_date(ts: datetime | None, tz: ZoneInfo) -> date | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz).date()


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_keys(today: date, count: int) -> list[tuple[int, int]]:
    return [_shift_month(today.year, today.month, -i) for i in range(count - 1, -1, -1)]


# ======================
# Fold
# ======================
def compute_dashboard(orders, users, kycs, *, now: datetime, tz: ZoneInfo | str = "UTC") -> DashboardStats:
    if isinstance(tz, str):
        tz = ZoneInfo(tz)
    today = _local_date(now, tz)

    orders = list(orders)
    users = list(users)
    kycs = list(kycs)

    stats = DashboardStats(total_users=len(users), total_investments=len(orders))

    status_counts = Counter(o.status for o in orders)
    stats.status_counts = {s: status_counts.get(s, 0) for s in ORDER_STATUSES}

    active = [o for o in orders if o.status in ACTIVE_ORDER_STATUSES]
    stats.active_investments = len(active)
    stats.total_revenue = sum((Decimal(str(o.amount or 0)) for o in active), Decimal("0"))
    stats.pending_orders = stats.status_counts[ORDER_PAYMENT_UPLOADED]
    stats.completed_orders = stats.status_counts[ORDER_PAID]
    stats.rejected_orders = stats.status_counts[ORDER_CANCELLED]

    kyc_counts = Counter(k.status for k in kycs)
    stats.kyc_approved = kyc_counts.get(KYC_APPROVED, 0)
    stats.kyc_pending = kyc_counts.get(KYC_PENDING, 0) + kyc_counts.get(KYC_SUBMITTED, 0)
    stats.kyc_rejected = kyc_counts.get(KYC_REJECTED, 0)

    plans = Counter(o.plan_name for o in orders if o.plan_name)
    stats.plan_distribution = dict(sorted(plans.items()))

    # Revenue per local calendar month, oldest first.
    months = _month_keys(today, MONTHLY_POINTS)
    revenue_by_month: dict[tuple[int, int], Decimal] = {m: Decimal("0") for m in months}
    for o in active:
        d = _local_date(o.created_at, tz)
        if d is not None and (d.year, d.month) in revenue_by_month:
            revenue_by_month[(d.year, d.month)] += Decimal(str(o.amount or 0))
    stats.monthly_revenue = [
        {"month": f"{y:04d}-{m:02d}", "revenue": revenue_by_month[(y, m)]} for (y, m) in months
    ]

    # Registrations: last 30 days, 12 months, 5 years.
    joined = [d for d in (_local_date(u.created_at, tz) for u in users) if d is not None]
    per_day = Counter(joined)
    per_month = Counter((d.year, d.month) for d in joined)
    per_year = Counter(d.year for d in joined)

    days = [date.fromordinal(today.toordinal() - i) for i in range(DAILY_POINTS - 1, -1, -1)]
    years = [today.year - i for i in range(YEARLY_POINTS - 1, -1, -1)]
    stats.user_growth = {
        "daily": [per_day.get(d, 0) for d in days],
        "monthly": [per_month.get(m, 0) for m in _month_keys(today, MONTHLY_POINTS)],
        "yearly": [per_year.get(y, 0) for y in years],
    }
    return stats


def load_dashboard(now: datetime | None = None) -> DashboardStats:
    orders = db.session.scalars(sa.select(Order)).unique().all()
    users = db.session.scalars(sa.select(User).where(User.role == "user")).all()
    kycs = db.session.scalars(sa.select(KYCRecord)).unique().all()
    return compute_dashboard(
        orders,
        users,
        kycs,
        now=now or utcnow_naive(),
        tz=current_app.config.get("APP_TIMEZONE", "UTC"),
    )
