# nitionz/serializers.py
"""camelCase JSON shapes for the API."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from nitionz.models import (
    AdminSetting,
    BankDetail,
    Feedback,
    InvestmentPlan,
    KYCRecord,
    Notification,
    Order,
    SupportQuery,
    User,
    utcnow_naive,
)


def _iso(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _money(value):
    if value is None:
        return None
    return float(Decimal(str(value)))


def user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "status": user.status,
        "kycStatus": user.kyc_status,
        "preferences": user.settings,
        "createdAt": _iso(user.created_at),
        "lastLoginAt": _iso(user.last_login_at),
    }


def user_row_dict(row: dict) -> dict:
    out = user_dict(row["user"])
    out.update(
        {
            "kycStatus": row["kycStatus"],
            "totalOrders": row["totalOrders"],
            "totalInvested": _money(row["totalInvested"]),
            "activeInvestments": row["activeInvestments"],
        }
    )
    return out


def plan_dict(plan: InvestmentPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "minAmount": _money(plan.min_amount),
        "maxAmount": _money(plan.max_amount),
        "roiPercentage": _money(plan.roi_percentage),
        "durationMonths": plan.duration_months,
        "isActive": plan.is_active,
        "createdAt": _iso(plan.created_at),
        "updatedAt": _iso(plan.updated_at),
    }


def bank_dict(bank: BankDetail) -> dict:
    return {
        "id": bank.id,
        "bankName": bank.bank_name,
        "accountNumber": bank.account_number,
        "accountHolderName": bank.account_holder_name,
        "ifscCode": bank.ifsc_code,
        "branchName": bank.branch_name,
        "upiId": bank.upi_id,
        "upiEnabled": bank.upi_enabled,
        "isDefault": bank.is_default,
        "isActive": bank.is_active,
        "createdAt": _iso(bank.created_at),
    }


def order_dict(order: Order, *, current_value=None) -> dict:
    out = {
        "id": str(order.id),
        "userId": order.user_id,
        "userName": order.user_name,
        "userEmail": order.user_email,
        "planId": order.plan_id,
        "planName": order.plan_name,
        "roiPercentage": _money(order.roi_percentage),
        "durationMonths": order.duration_months,
        "amount": _money(order.amount),
        "status": order.status,
        "paymentProof": order.payment_proof,
        "paymentNote": order.payment_note,
        "transactionId": order.transaction_id,
        "bankDetails": dict(order.bank_details) if order.bank_details else None,
        "adminNote": order.admin_note,
        "certificate": dict(order.certificate) if order.certificate else None,
        "decidedAt": _iso(order.decided_at),
        "decidedBy": order.decided_by,
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }
    if current_value is not None:
        out["currentValue"] = _money(current_value)
    return out


def kyc_dict(record: KYCRecord, *, include_user: bool = False) -> dict:
    out = {
        "userId": record.id,
        "status": record.status,
        "documentType": record.document_type,
        "documentNumber": record.document_number,
        "fullName": record.full_name,
        "dateOfBirth": _iso(record.date_of_birth),
        "address": record.address,
        "documentUrl": record.document_url,
        "submittedAt": _iso(record.submitted_at),
        "resubmittedAt": _iso(record.resubmitted_at),
        "reviewedAt": _iso(record.reviewed_at),
        "reviewedBy": record.reviewed_by,
        "rejectionReason": record.rejection_reason,
    }
    if include_user and record.user is not None:
        out["userName"] = record.user.name
        out["userEmail"] = record.user.email
    return out


def query_dict(query: SupportQuery) -> dict:
    return {
        "id": str(query.id),
        "userId": query.user_id,
        "userEmail": query.user_email,
        "userName": query.user_name,
        "subject": query.subject,
        "type": query.type,
        "status": query.status,
        "messages": [
            {"sender": m.sender, "message": m.message, "timestamp": _iso(m.timestamp)}
            for m in query.messages
        ],
        "createdAt": _iso(query.created_at),
        "updatedAt": _iso(query.updated_at),
    }


def notification_dict(note: Notification, now=None) -> dict:
    return {
        "id": str(note.id),
        "title": note.title,
        "message": note.message,
        "type": note.type,
        "read": note.read,
        "isNew": note.is_new(now or utcnow_naive()),
        "createdAt": _iso(note.created_at),
    }


def feedback_dict(item: Feedback) -> dict:
    return {
        "id": item.id,
        "userId": item.user_id,
        "userEmail": item.user_email,
        "userName": item.user_name,
        "feedback": item.feedback,
        "rating": item.rating,
        "category": item.category,
        "status": item.status,
        "adminNote": item.admin_note,
        "reviewedAt": _iso(item.reviewed_at),
        "createdAt": _iso(item.created_at),
    }


def portfolio_dict(summary: dict) -> dict:
    return {
        "totalInvested": _money(summary["totalInvested"]),
        "currentValue": _money(summary["currentValue"]),
        "totalProfit": _money(summary["totalProfit"]),
        "activeInvestments": summary["activeInvestments"],
        "pendingOrders": summary["pendingOrders"],
        "investments": [order_dict(o, current_value=v) for o, v in summary["investments"]],
    }


def dashboard_dict(stats) -> dict:
    return {
        "totalUsers": stats.total_users,
        "totalInvestments": stats.total_investments,
        "totalRevenue": _money(stats.total_revenue),
        "activeInvestments": stats.active_investments,
        "pendingOrders": stats.pending_orders,
        "completedOrders": stats.completed_orders,
        "rejectedOrders": stats.rejected_orders,
        "statusCounts": dict(stats.status_counts),
        "kycApproved": stats.kyc_approved,
        "kycPending": stats.kyc_pending,
        "kycRejected": stats.kyc_rejected,
        "planDistribution": dict(stats.plan_distribution),
        "monthlyRevenue": [{"month": p["month"], "revenue": _money(p["revenue"])} for p in stats.monthly_revenue],
        "userGrowth": dict(stats.user_growth),
    }


def admin_settings_dict(settings: dict, row: AdminSetting | None) -> dict:
    return {
        **settings,
        "updatedAt": _iso(row.updated_at) if row is not None else None,
        "updatedBy": row.updated_by if row is not None else None,
    }
