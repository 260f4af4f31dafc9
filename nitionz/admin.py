# nitionz/admin.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from nitionz.errors import ValidationError
from nitionz.serializers import (
    admin_settings_dict,
    bank_dict,
    dashboard_dict,
    feedback_dict,
    kyc_dict,
    order_dict,
    plan_dict,
    query_dict,
    user_dict,
    user_row_dict,
)
from nitionz.services import (
    admin_settings,
    analytics,
    bank_details,
    feedback as feedback_service,
    kyc as kyc_service,
    orders as order_service,
    plans as plan_service,
    queries as query_service,
    storage,
    users as user_service,
)
from nitionz.utils.guards import enforce_admin
from nitionz.utils.validators import clean_str

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

# Single role gate for every endpoint below.
admin_bp.before_request(enforce_admin)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _actor() -> str:
    return getattr(current_user, "email", None) or "admin"


# -------------------------------------------------------------------
# Orders
# GET+PUT /api/admin/orders
# GET /api/admin/orders/<id>
# POST /api/admin/orders/<id>/decision
# POST /api/admin/orders/<id>/certificate
# -------------------------------------------------------------------
@admin_bp.route("/orders", methods=["GET"])
def orders_list():
    orders = order_service.list_orders(
        status=request.args.get("status"),
        search=request.args.get("q") or request.args.get("search"),
    )
    return jsonify({"success": True, "orders": [order_dict(o) for o in orders], "total": len(orders)}), 200


@admin_bp.route("/orders", methods=["PUT"])
def orders_update():
    data = _payload()
    order_id = data.get("orderId")
    if not clean_str(order_id):
        raise ValidationError("orderId is required.", field="orderId")

    if data.get("status"):
        order = order_service.set_status(order_id, data.get("status"), data.get("adminNote"), decided_by=_actor())
    elif "adminNote" in data:
        order = order_service.update_admin_note(order_id, data.get("adminNote"))
    else:
        raise ValidationError("Nothing to update.")
    return jsonify({"success": True, "order": order_dict(order)}), 200


@admin_bp.route("/orders/<order_id>", methods=["GET"])
def orders_detail(order_id):
    order = order_service.get_order(order_id)
    return jsonify({"success": True, "order": order_dict(order)}), 200


@admin_bp.route("/orders/<order_id>/decision", methods=["POST"])
def orders_decide(order_id):
    data = _payload()
    order = order_service.decide(order_id, data.get("decision"), data.get("adminNote"), decided_by=_actor())
    return jsonify({"success": True, "order": order_dict(order)}), 200


@admin_bp.route("/orders/<order_id>/certificate", methods=["POST"])
def orders_certificate(order_id):
    # state check first so a refused request stores nothing
    order = order_service.certifiable_order(order_id)

    if "file" in request.files:
        file_ref = storage.upload(request.files["file"], prefix=f"users/{order.user_id}/certificates").url
    else:
        file_ref = _payload().get("url")

    order = order_service.attach_certificate(order_id, file_ref, _actor())
    return jsonify({"success": True, "order": order_dict(order)}), 200


# -------------------------------------------------------------------
# Users
# GET /api/admin/users
# GET+POST+PUT+DELETE /api/admin/users/manage
# -------------------------------------------------------------------
@admin_bp.route("/users", methods=["GET"])
def users_list():
    rows = user_service.list_users_with_stats(
        search=request.args.get("q") or request.args.get("search"),
        status=request.args.get("status"),
    )
    return jsonify({"success": True, "users": [user_row_dict(r) for r in rows], "total": len(rows)}), 200


@admin_bp.route("/users/manage", methods=["GET"])
def users_manage_get():
    user_id = request.args.get("userId")
    if not user_id:
        raise ValidationError("userId is required.", field="userId")
    user = user_service.get_user(user_id)
    return (
        jsonify({"success": True, "user": user_dict(user), "userStatus": user_service.user_status(user.id)}),
        200,
    )


@admin_bp.route("/users/manage", methods=["POST"])
def users_manage_create():
    data = _payload()
    user = user_service.register_user(
        data.get("name"),
        data.get("email"),
        data.get("password"),
        data.get("phone"),
        role=clean_str(data.get("role")).lower() or "user",
    )
    return jsonify({"success": True, "user": user_dict(user)}), 201


@admin_bp.route("/users/manage", methods=["PUT"])
def users_manage_update():
    data = _payload()
    user_id = data.get("userId")
    if not user_id:
        raise ValidationError("userId is required.", field="userId")

    action = clean_str(data.get("action")).lower()
    if action in ("ban", "suspend", "unban", "activate"):
        status = {"ban": "banned", "suspend": "suspended"}.get(action, "active")
        user = user_service.set_user_status(user_id, status)
    else:
        user = user_service.update_user(user_id, data)
    return jsonify({"success": True, "user": user_dict(user)}), 200


@admin_bp.route("/users/manage", methods=["DELETE"])
def users_manage_delete():
    user_id = request.args.get("userId") or _payload().get("userId")
    if not user_id:
        raise ValidationError("userId is required.", field="userId")
    user_service.delete_user(user_id)
    return jsonify({"success": True}), 200


# -------------------------------------------------------------------
# Analytics
# -------------------------------------------------------------------
@admin_bp.route("/analytics", methods=["GET"])
def analytics_dashboard():
    stats = analytics.load_dashboard()
    return jsonify({"success": True, "analytics": dashboard_dict(stats)}), 200


# -------------------------------------------------------------------
# Settings
# GET+PUT /api/admin/settings
# -------------------------------------------------------------------
@admin_bp.route("/settings", methods=["GET"])
def settings_get():
    settings, row = admin_settings.get_notification_settings()
    return jsonify({"success": True, "settings": admin_settings_dict(settings, row)}), 200


@admin_bp.route("/settings", methods=["PUT"])
def settings_save():
    settings, row = admin_settings.save_notification_settings(_payload(), updated_by=_actor())
    return jsonify({"success": True, "settings": admin_settings_dict(settings, row)}), 200


# -------------------------------------------------------------------
# KYC
# GET /api/admin/kyc
# POST /api/admin/kyc/<user_id>/review
# PUT /api/admin/kyc/<user_id>
# POST /api/admin/kyc/<user_id>/reopen
# -------------------------------------------------------------------
@admin_bp.route("/kyc", methods=["GET"])
def kyc_list():
    records = kyc_service.list_records(
        status=request.args.get("status"),
        search=request.args.get("q") or request.args.get("search"),
    )
    return jsonify({"success": True, "kyc": [kyc_dict(r, include_user=True) for r in records]}), 200


@admin_bp.route("/kyc/<int:user_id>/review", methods=["POST"])
def kyc_review(user_id: int):
    data = _payload()
    record = kyc_service.review(user_id, data.get("decision"), data.get("reason"), reviewed_by=_actor())
    return jsonify({"success": True, "kyc": kyc_dict(record, include_user=True)}), 200


@admin_bp.route("/kyc/<int:user_id>", methods=["PUT"])
def kyc_edit(user_id: int):
    record = kyc_service.admin_edit(user_id, _payload())
    return jsonify({"success": True, "kyc": kyc_dict(record, include_user=True)}), 200


@admin_bp.route("/kyc/<int:user_id>/reopen", methods=["POST"])
def kyc_reopen(user_id: int):
    record = kyc_service.reopen(user_id)
    return jsonify({"success": True, "kyc": kyc_dict(record, include_user=True)}), 200


# -------------------------------------------------------------------
# Support queries
# -------------------------------------------------------------------
@admin_bp.route("/queries", methods=["GET"])
def queries_list():
    items = query_service.list_queries(
        status=request.args.get("status"),
        query_type=request.args.get("type"),
        search=request.args.get("q") or request.args.get("search"),
    )
    return jsonify({"success": True, "queries": [query_dict(q) for q in items], "total": len(items)}), 200


@admin_bp.route("/queries/<query_id>/reply", methods=["POST"])
def queries_reply(query_id):
    query = query_service.reply(query_id, "admin", _payload().get("message"))
    return jsonify({"success": True, "query": query_dict(query)}), 200


@admin_bp.route("/queries/<query_id>/resolve", methods=["POST"])
def queries_resolve(query_id):
    query = query_service.resolve(query_id)
    return jsonify({"success": True, "query": query_dict(query)}), 200


# -------------------------------------------------------------------
# Investment plans
# -------------------------------------------------------------------
@admin_bp.route("/plans", methods=["GET"])
def plans_list():
    items = plan_service.list_plans(active_only=False)
    return jsonify({"success": True, "plans": [plan_dict(p) for p in items]}), 200


@admin_bp.route("/plans", methods=["POST"])
def plans_create():
    plan = plan_service.create_plan(_payload())
    return jsonify({"success": True, "plan": plan_dict(plan)}), 201


@admin_bp.route("/plans/<int:plan_id>", methods=["PUT"])
def plans_update(plan_id: int):
    plan = plan_service.update_plan(plan_id, _payload())
    return jsonify({"success": True, "plan": plan_dict(plan)}), 200


@admin_bp.route("/plans/<int:plan_id>", methods=["DELETE"])
def plans_delete(plan_id: int):
    deleted = plan_service.delete_plan(plan_id)
    return jsonify({"success": True, "deleted": deleted, "deactivated": not deleted}), 200


@admin_bp.route("/plans/<int:plan_id>/toggle", methods=["POST"])
def plans_toggle(plan_id: int):
    plan = plan_service.toggle_plan(plan_id)
    return jsonify({"success": True, "plan": plan_dict(plan)}), 200


# -------------------------------------------------------------------
# Bank details
# -------------------------------------------------------------------
@admin_bp.route("/bank-details", methods=["GET"])
def banks_list():
    items = bank_details.list_banks()
    return jsonify({"success": True, "bankDetails": [bank_dict(b) for b in items]}), 200


@admin_bp.route("/bank-details", methods=["POST"])
def banks_create():
    bank = bank_details.create_bank(_payload())
    return jsonify({"success": True, "bankDetail": bank_dict(bank)}), 201


@admin_bp.route("/bank-details/<int:bank_id>", methods=["PUT"])
def banks_update(bank_id: int):
    bank = bank_details.update_bank(bank_id, _payload())
    return jsonify({"success": True, "bankDetail": bank_dict(bank)}), 200


@admin_bp.route("/bank-details/<int:bank_id>", methods=["DELETE"])
def banks_delete(bank_id: int):
    bank_details.delete_bank(bank_id)
    return jsonify({"success": True}), 200


@admin_bp.route("/bank-details/<int:bank_id>/default", methods=["POST"])
def banks_set_default(bank_id: int):
    bank = bank_details.set_as_default(bank_id)
    return jsonify({"success": True, "bankDetail": bank_dict(bank)}), 200


# -------------------------------------------------------------------
# Feedback
# -------------------------------------------------------------------
@admin_bp.route("/feedback", methods=["GET"])
def feedback_list():
    items = feedback_service.list_feedback(
        status=request.args.get("status"),
        category=request.args.get("category"),
    )
    return jsonify({"success": True, "feedback": [feedback_dict(f) for f in items]}), 200


@admin_bp.route("/feedback/<int:feedback_id>", methods=["PUT"])
def feedback_update(feedback_id: int):
    data = _payload()
    item = feedback_service.update_feedback(feedback_id, data.get("status"), data.get("adminNote"))
    return jsonify({"success": True, "feedback": feedback_dict(item)}), 200


@admin_bp.route("/feedback/<int:feedback_id>", methods=["DELETE"])
def feedback_delete(feedback_id: int):
    feedback_service.delete_feedback(feedback_id)
    return jsonify({"success": True}), 200
