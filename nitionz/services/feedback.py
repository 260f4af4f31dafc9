# nitionz/services/feedback.py
from __future__ import annotations

import sqlalchemy as sa

from nitionz.errors import ValidationError
from nitionz.extensions import db
from nitionz.models import FEEDBACK_CATEGORIES, FEEDBACK_STATUSES, Feedback, utcnow_naive
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import clean_str, parse_int, sanitize_input


def submit_feedback(user, text, rating, category="general") -> Feedback:
    body = sanitize_input(text, maxlen=2000)
    if not body:
        raise ValidationError("Feedback cannot be empty.", field="feedback")

    score = parse_int(rating)
    if score is None or not 1 <= score <= 5:
        raise ValidationError("Rating must be between 1 and 5.", field="rating")

    category = clean_str(category).lower() or "general"
    if category not in FEEDBACK_CATEGORIES:
        raise ValidationError("Unknown feedback category.", field="category")

    item = Feedback(
        user_id=user.id,
        user_email=user.email,
        user_name=user.name,
        feedback=body,
        rating=score,
        category=category,
        status="new",
    )
    db.session.add(item)
    commit_or_raise("Submit feedback")
    return item


def list_feedback(*, status=None, category=None, limit: int = 500):
    stmt = sa.select(Feedback)
    if status and status != "all":
        stmt = stmt.where(Feedback.status == status)
    if category and category != "all":
        stmt = stmt.where(Feedback.category == category)
    return list(db.session.scalars(stmt.order_by(Feedback.created_at.desc()).limit(limit)))


def update_feedback(feedback_id, status=None, admin_note=None) -> Feedback:
    item = get_or_raise(Feedback, parse_int(feedback_id), "Feedback")

    if status is not None:
        status = clean_str(status).lower()
        if status not in FEEDBACK_STATUSES:
            raise ValidationError("Invalid status.", field="status")
        item.status = status
        if status != "new":
            item.reviewed_at = utcnow_naive()

    if admin_note is not None:
        item.admin_note = sanitize_input(admin_note, maxlen=2000) or None

    commit_or_raise("Update feedback")
    return item


def delete_feedback(feedback_id) -> None:
    item = get_or_raise(Feedback, parse_int(feedback_id), "Feedback")
    db.session.delete(item)
    commit_or_raise("Delete feedback")
