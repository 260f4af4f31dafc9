# nitionz/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from .extensions import limiter
from .serializers import user_dict
from .services import users as user_service
from .utils.guards import BLOCKED_STATUSES

auth = Blueprint("auth", __name__, url_prefix="/auth")


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


# =========================================================
# Register
# =========================================================
@auth.route("/register", methods=["POST"])
@limiter.limit("10 per hour")
def register():
    data = _payload()
    user = user_service.register_user(
        data.get("name"),
        data.get("email"),
        data.get("password"),
        data.get("phone"),
    )
    login_user(user)
    user_service.touch_last_login(user)
    return jsonify({"success": True, "user": user_dict(user)}), 201


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    data = _payload()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"success": False, "error": "Email and password are required."}), 400

    user = user_service.authenticate(email, password)
    if user is None:
        current_app.logger.info("Failed login for %s", email)
        return jsonify({"success": False, "error": "Invalid email or password."}), 401

    if user.status in BLOCKED_STATUSES:
        return (
            jsonify(
                {
                    "success": False,
                    "error": f"Your account has been {user.status}. Contact support for help.",
                    "status": user.status,
                }
            ),
            403,
        )

    login_user(user, remember=bool(data.get("remember")))
    user_service.touch_last_login(user)
    return jsonify({"success": True, "user": user_dict(user)}), 200


@auth.route("/logout", methods=["POST"])
def logout():
    # Not login_required: logging out twice is harmless.
    logout_user()
    return jsonify({"success": True}), 200


@auth.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": user_dict(current_user)}), 200


# =========================================================
# Change Password (Logged-in users)
# =========================================================
@auth.route("/change-password", methods=["POST"])
@login_required
def change_password():
    data = _payload()
    user_service.change_password(current_user, data.get("currentPassword"), data.get("newPassword"))
    return jsonify({"success": True}), 200
