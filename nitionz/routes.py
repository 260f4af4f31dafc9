# nitionz/routes.py
from __future__ import annotations

from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    jsonify,
    request,
    send_file,
    stream_with_context,
)
from flask_login import current_user, login_required

from nitionz.extensions import db, limiter
from nitionz.serializers import (
    bank_dict,
    feedback_dict,
    kyc_dict,
    notification_dict,
    order_dict,
    plan_dict,
    portfolio_dict,
    query_dict,
    user_dict,
)
from nitionz.services import (
    bank_details,
    feedback as feedback_service,
    kyc as kyc_service,
    notifications,
    orders as order_service,
    plans as plan_service,
    queries as query_service,
    storage,
    users as user_service,
)
from nitionz.services.subscriptions import Subscription, sse_event
from nitionz.utils.guards import is_admin
from nitionz.utils.validators import parse_bool, parse_uuid

main = Blueprint("main", __name__)


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


# =========================================================
# Account
# =========================================================
@main.route("/api/user/status", methods=["GET"])
@login_required
def user_status():
    return jsonify({"success": True, "userStatus": user_service.user_status(current_user.id)}), 200


@main.route("/api/user/profile", methods=["PUT"])
@login_required
def update_profile():
    user = user_service.update_profile(current_user._get_current_object(), _payload())
    return jsonify({"success": True, "user": user_dict(user)}), 200


# =========================================================
# Catalog (signed-in view)
# =========================================================
@main.route("/api/plans", methods=["GET"])
@login_required
def plans_list():
    plans = plan_service.list_plans(active_only=True)
    return jsonify({"success": True, "plans": [plan_dict(p) for p in plans]}), 200


@main.route("/api/bank-details", methods=["GET"])
@login_required
def bank_details_list():
    banks = bank_details.list_banks(active_only=True)
    return jsonify({"success": True, "bankDetails": [bank_dict(b) for b in banks]}), 200


# =========================================================
# Orders
# =========================================================
@main.route("/api/orders", methods=["GET"])
@login_required
def orders_list():
    orders = order_service.list_orders(user_id=current_user.id, status=request.args.get("status"))
    return jsonify({"success": True, "orders": [order_dict(o) for o in orders]}), 200


@main.route("/api/orders", methods=["POST"])
@login_required
def orders_create():
    data = _payload()
    order = order_service.create_order(
        current_user._get_current_object(),
        data.get("planId"),
        data.get("amount"),
        bank_detail_id=data.get("bankDetailId"),
    )
    return jsonify({"success": True, "order": order_dict(order)}), 201


@main.route("/api/orders/<order_id>", methods=["GET"])
@login_required
def orders_detail(order_id):
    order = order_service.get_order_for_user(order_id, current_user.id)
    return jsonify({"success": True, "order": order_dict(order)}), 200


@main.route("/api/orders/<order_id>/payment", methods=["POST"])
@login_required
def orders_submit_payment(order_id):
    data = _payload()
    proof_url = data.get("paymentProof")

    # Proof may come as a file in the same multipart request; it is stored
    # only once the submission itself would be accepted.
    order_service.payable_order(order_id, data.get("transactionId"), user_id=current_user.id)
    if "file" in request.files:
        proof_url = storage.upload(request.files["file"], prefix=f"users/{current_user.id}/payments").url

    order = order_service.submit_payment(
        order_id,
        data.get("transactionId"),
        proof_url,
        user_id=current_user.id,
        payment_note=data.get("paymentNote"),
    )
    return jsonify({"success": True, "order": order_dict(order)}), 200


@main.route("/api/orders/<order_id>/cancel", methods=["POST"])
@login_required
def orders_cancel(order_id):
    order = order_service.cancel_unpaid(order_id, user_id=current_user.id)
    return jsonify({"success": True, "order": order_dict(order)}), 200


@main.route("/api/portfolio", methods=["GET"])
@login_required
def portfolio():
    summary = order_service.portfolio_summary(current_user.id)
    return jsonify({"success": True, "portfolio": portfolio_dict(summary)}), 200


# =========================================================
# KYC
# =========================================================
@main.route("/api/kyc", methods=["GET"])
@login_required
def kyc_get():
    record = kyc_service.get_record(current_user.id)
    return (
        jsonify(
            {
                "success": True,
                "status": record.status if record else kyc_service.get_status(current_user.id),
                "kyc": kyc_dict(record) if record else None,
            }
        ),
        200,
    )


@main.route("/api/kyc", methods=["POST"])
@login_required
def kyc_submit():
    data = _payload()
    file_ref = data.get("documentUrl")
    if "file" in request.files:
        kyc_service.check_submission(current_user.id, data)
        file_ref = storage.upload(request.files["file"], prefix=f"users/{current_user.id}/kyc").url

    record = kyc_service.submit(current_user.id, data, file_ref)
    return jsonify({"success": True, "kyc": kyc_dict(record)}), 200


# =========================================================
# Notifications
# =========================================================
@main.route("/api/notifications", methods=["GET"])
@login_required
def notifications_list():
    unread_only = parse_bool(request.args.get("unread"))
    items = notifications.list_for_user(current_user.id, unread_only=unread_only)
    return (
        jsonify(
            {
                "success": True,
                "notifications": [notification_dict(n) for n in items],
                "badgeCount": notifications.unread_badge_count(current_user.id),
            }
        ),
        200,
    )


@main.route("/api/notifications/stream", methods=["GET"])
@login_required
def notifications_stream():
    """Server-sent events: pushes the unread list whenever it changes."""
    user_id = current_user.id
    interval = float(current_app.config.get("NOTIFICATION_STREAM_INTERVAL", 5))
    max_polls = request.args.get("polls", type=int)

    def fetch():
        try:
            items = notifications.list_for_user(user_id, unread_only=True)
            return {
                "notifications": [notification_dict(n) for n in items],
                "badgeCount": notifications.unread_badge_count(user_id),
            }
        finally:
            # no transaction (or pooled connection) held while the stream sleeps
            db.session.rollback()

    sub = Subscription(
        fetch,
        interval=interval,
        key=lambda snap: [(n["id"], n["read"]) for n in snap["notifications"]],
        max_polls=max_polls,
    )

    def generate():
        try:
            for snapshot in sub:
                yield sse_event(snapshot, event="notifications")
        finally:
            sub.close()

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@main.route("/api/notifications/<notification_id>/read", methods=["POST"])
@login_required
def notifications_mark_read(notification_id):
    note = notifications.mark_read(parse_uuid(notification_id), current_user.id)
    return jsonify({"success": True, "notification": notification_dict(note)}), 200


@main.route("/api/notifications/read-all", methods=["POST"])
@login_required
def notifications_mark_all_read():
    count = notifications.mark_all_read(current_user.id)
    return jsonify({"success": True, "updated": count}), 200


# =========================================================
# Support queries
# =========================================================
@main.route("/api/queries", methods=["GET"])
@login_required
def queries_list():
    items = query_service.list_queries(user_id=current_user.id, status=request.args.get("status"))
    return jsonify({"success": True, "queries": [query_dict(q) for q in items]}), 200


@main.route("/api/queries", methods=["POST"])
@login_required
def queries_create():
    data = _payload()
    query = query_service.open_query(
        data.get("subject"),
        data.get("message"),
        user=current_user._get_current_object(),
        query_type=data.get("type") or "priority",
    )
    return jsonify({"success": True, "query": query_dict(query)}), 201


@main.route("/api/queries/<query_id>", methods=["GET"])
@login_required
def queries_detail(query_id):
    query = query_service.get_query_for_user(query_id, current_user.id)
    return jsonify({"success": True, "query": query_dict(query)}), 200


@main.route("/api/queries/<query_id>/messages", methods=["POST"])
@login_required
def queries_follow_up(query_id):
    data = _payload()
    query = query_service.reply(query_id, "user", data.get("message"), user_id=current_user.id)
    return jsonify({"success": True, "query": query_dict(query)}), 200


# =========================================================
# Feedback
# =========================================================
@main.route("/api/feedback", methods=["POST"])
@login_required
def feedback_submit():
    data = _payload()
    item = feedback_service.submit_feedback(
        current_user._get_current_object(),
        data.get("feedback"),
        data.get("rating"),
        data.get("category") or "general",
    )
    return jsonify({"success": True, "feedback": feedback_dict(item)}), 201


# =========================================================
# Uploads
# =========================================================
@main.route("/api/upload", methods=["POST"])
@login_required
@limiter.limit("30 per hour")
def upload():
    blob = storage.upload(request.files.get("file"), prefix=f"users/{current_user.id}")
    return jsonify({"success": True, **blob.to_dict()}), 201


@main.route("/uploads/<path:storage_key>", methods=["GET"])
@login_required
def serve_upload(storage_key):
    # Users see their own files; admins see everything. The ownership check
    # runs on the normalised key so "users/<me>/../<other>/..." is refused.
    key = storage.normalize_key(storage_key)
    if not is_admin(current_user) and not key.startswith(f"users/{current_user.id}/"):
        abort(404)
    path = storage.LocalBlobStore().open(key)
    return send_file(path, conditional=True)
