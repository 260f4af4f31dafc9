# nitionz/services/base.py
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from nitionz.errors import NotFoundError, UpstreamError
from nitionz.extensions import db


def commit_or_raise(action: str) -> None:
    """Commit session; rollback + log + UpstreamError on failure."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise UpstreamError(f"{action} failed. Please try again.") from exc


def get_or_raise(model, ident, label: str | None = None):
    if ident is None:
        raise NotFoundError(f"{label or model.__name__} not found.")
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(f"{label or model.__name__} not found.")
    return obj
