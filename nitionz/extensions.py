from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ======================
# Database
# ======================
db = SQLAlchemy()
migrate = Migrate()

# ======================
# Login Manager
# ======================
login_manager = LoginManager()

from nitionz.models import User  # noqa: E402  (models import db from here)


@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    # JSON-only API: no login_view redirect
    return jsonify({"success": False, "error": "Authentication required"}), 401


# ======================
# Rate Limiter
# ======================
# Storage comes from RATELIMIT_STORAGE_URI in settings (Redis in production,
# memory:// locally and in tests).
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limits by default
)
