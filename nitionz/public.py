# nitionz/public.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from .config import company_context
from .extensions import limiter
from .serializers import plan_dict
from .services import plans as plan_service
from .services import queries as query_service


public = Blueprint("public", __name__)


# =========================================================
# Client metadata helpers
# =========================================================
def _client_ip() -> str:
    """Prefer X-Forwarded-For if present (when behind proxy/LB)."""
    xff = (request.headers.get("X-Forwarded-For") or "").strip()
    if xff:
        return xff.split(",")[0].strip()
    return (request.remote_addr or "").strip()


# =========================================================
# Catalog + company identity
# =========================================================
@public.route("/api/public/plans", methods=["GET"])
def plans():
    items = plan_service.list_plans(active_only=True)
    return jsonify({"success": True, "plans": [plan_dict(p) for p in items]}), 200


@public.route("/api/public/company", methods=["GET"])
def company():
    return jsonify({"success": True, "company": company_context()}), 200


# =========================================================
# Contact form (guests and signed-in users)
# =========================================================
@public.route("/api/contact", methods=["POST"])
@limiter.limit("5 per hour")
def contact():
    data = request.get_json(silent=True) or request.form.to_dict()

    if getattr(current_user, "is_authenticated", False):
        query = query_service.open_query(
            data.get("subject"),
            data.get("message"),
            user=current_user._get_current_object(),
            query_type="priority",
        )
    else:
        query = query_service.open_query(
            data.get("subject"),
            data.get("message"),
            email=data.get("email"),
            name=data.get("name"),
            query_type="general",
        )

    current_app.logger.info("Contact form query %s from %s", query.id, _client_ip())
    return jsonify({"success": True, "queryId": str(query.id)}), 201
