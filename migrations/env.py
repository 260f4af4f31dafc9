# migrations/env.py
from __future__ import annotations

import logging
import os
import sys
from logging.config import fileConfig

from alembic import context

# -----------------------------------------------------------------------------
# Project root on sys.path so "import nitionz" works from any cwd
# (this file lives at <project_root>/migrations/env.py)
# -----------------------------------------------------------------------------
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

# -----------------------------------------------------------------------------
# Two ways in:
# - `flask db upgrade` (Flask-Migrate): engine + metadata from current_app.
# - plain `alembic -c migrations/alembic.ini upgrade head` in CI/containers:
#   DATABASE_URL is required and metadata is imported directly.
# -----------------------------------------------------------------------------
def _flask_app():
    from flask import current_app

    try:
        current_app.extensions["migrate"]
    except (RuntimeError, KeyError):
        return None
    return current_app


APP = _flask_app()


def _normalized_env_url() -> str | None:
    from nitionz.settings import _normalize_db_url

    return _normalize_db_url(os.getenv("DATABASE_URL"))


def get_metadata():
    if APP is not None:
        target_db = APP.extensions["migrate"].db
        return target_db.metadatas[None] if hasattr(target_db, "metadatas") else target_db.metadata

    from nitionz.extensions import db
    import nitionz.models  # noqa: F401  (registers tables on db.metadata)

    return db.metadata


def get_url() -> str:
    if APP is not None:
        url = APP.extensions["migrate"].db.engine.url
        return url.render_as_string(hide_password=False)

    url = _normalized_env_url()
    if not url:
        raise RuntimeError("DATABASE_URL is not set and no Flask app context is available.")
    return url


# -----------------------------------------------------------------------------
# Prevent empty autogenerate migrations (keeps history clean)
# -----------------------------------------------------------------------------
def process_revision_directives(ctx, revision, directives):
    cmd_opts = getattr(config, "cmd_opts", None)
    if cmd_opts and getattr(cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No changes in schema detected.")


def run_migrations_offline():
    """Emit SQL to stdout instead of touching a database."""
    context.configure(
        url=get_url(),
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    if APP is not None:
        conf_args = dict(APP.extensions["migrate"].configure_args or {})
        connectable = APP.extensions["migrate"].db.engine
    else:
        from sqlalchemy import create_engine

        conf_args = {}
        connectable = create_engine(get_url())

    conf_args.setdefault("process_revision_directives", process_revision_directives)
    conf_args.setdefault("compare_type", True)
    # SQLite needs batch mode for ALTERs (local dev databases)
    conf_args.setdefault("render_as_batch", connectable.dialect.name == "sqlite")

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=get_metadata(), **conf_args)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
