# nitionz/utils/guards.py

from __future__ import annotations

from flask import abort, jsonify, request
from flask_login import current_user, logout_user


# Account statuses that lose their session on the next request.
BLOCKED_STATUSES = {"banned", "suspended"}


def is_admin(user) -> bool:
    if not user or not getattr(user, "is_authenticated", False):
        return False
    return (getattr(user, "role", "") or "").strip().lower() == "admin"


def enforce_admin():
    """
    before_request hook for the admin blueprint.

    Every /api/admin/* endpoint passes through here, so individual views do
    not re-check the role.
    """
    if request.method == "OPTIONS":
        return None
    if not getattr(current_user, "is_authenticated", False):
        return jsonify({"success": False, "error": "Authentication required"}), 401
    if not is_admin(current_user):
        abort(403)
    return None


def sign_out_blocked_user():
    """
    App-wide before_request hook: a banned/suspended user is signed out
    and told why, instead of carrying on with a stale session.
    """
    if not getattr(current_user, "is_authenticated", False):
        return None

    status = (getattr(current_user, "status", "") or "active").strip().lower()
    if status not in BLOCKED_STATUSES:
        return None

    endpoint = request.endpoint or ""
    if endpoint.startswith("static"):
        return None

    logout_user()
    return (
        jsonify(
            {
                "success": False,
                "error": f"Your account has been {status}. Contact support for help.",
                "status": status,
                "signedOut": True,
            }
        ),
        403,
    )
