# nitionz/__init__.py
from __future__ import annotations

from flask import Flask

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Errors as JSON
    # ======================
    from .errors import register_error_handlers

    register_error_handlers(app)

    # ======================
    # Register Blueprints
    # ======================
    from .routes import main
    from .auth import auth
    from .admin import admin_bp
    from .public import public

    app.register_blueprint(main)
    app.register_blueprint(auth)
    app.register_blueprint(admin_bp)
    app.register_blueprint(public)

    # ======================
    # Banned / suspended accounts lose their session
    # ======================
    from .utils.guards import sign_out_blocked_user

    app.before_request(sign_out_blocked_user)

    return app
