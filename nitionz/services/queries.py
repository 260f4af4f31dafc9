# nitionz/services/queries.py
"""Support tickets and their message threads."""

from __future__ import annotations

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.orm import selectinload

from nitionz.errors import InvalidStateError, NotFoundError, ValidationError
from nitionz.extensions import db
from nitionz.models import (
    MESSAGE_SENDERS,
    QUERY_STATUSES,
    QUERY_TYPES,
    QueryMessage,
    SupportQuery,
    utcnow_naive,
)
from nitionz.services import notifications
from nitionz.services.base import commit_or_raise, get_or_raise
from nitionz.utils.validators import clean_str, parse_uuid, sanitize_input, validate_email

SUBJECT_MAXLEN = 200
MESSAGE_MAXLEN = 5000


def _clean_message(message) -> str:
    text = sanitize_input(message, maxlen=MESSAGE_MAXLEN)
    if not text:
        raise ValidationError("Message cannot be empty.", field="message")
    return text


def get_query(query_id) -> SupportQuery:
    return get_or_raise(SupportQuery, parse_uuid(query_id), "Query")


def get_query_for_user(query_id, user_id) -> SupportQuery:
    query = get_query(query_id)
    if query.user_id != user_id:
        raise NotFoundError("Query not found.")
    return query


def list_queries(*, status=None, query_type=None, user_id=None, search=None, limit: int = 500):
    stmt = sa.select(SupportQuery).options(selectinload(SupportQuery.messages))

    if status and status != "all":
        if status not in QUERY_STATUSES:
            raise ValidationError("Invalid status filter.", field="status")
        stmt = stmt.where(SupportQuery.status == status)
    if query_type and query_type != "all":
        if query_type not in QUERY_TYPES:
            raise ValidationError("Invalid type filter.", field="type")
        stmt = stmt.where(SupportQuery.type == query_type)
    if user_id is not None:
        stmt = stmt.where(SupportQuery.user_id == user_id)

    q = clean_str(search)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(
            sa.or_(
                SupportQuery.subject.ilike(like),
                SupportQuery.user_email.ilike(like),
                SupportQuery.user_name.ilike(like),
            )
        )

    stmt = stmt.order_by(SupportQuery.updated_at.desc()).limit(limit)
    return list(db.session.scalars(stmt))


# =========================================================
# Writes
# =========================================================
def open_query(subject, message, *, user=None, email=None, name=None, query_type="general") -> SupportQuery:
    """
    Registered users may open 'priority' tickets (they get follow-ups);
    guests from the contact form always land in 'general'.
    """
    query_type = clean_str(query_type).lower() or "general"
    if query_type not in QUERY_TYPES:
        raise ValidationError("Invalid query type.", field="type")
    if query_type == "priority" and user is None:
        raise ValidationError("Priority support is only available to signed-in users.", field="type")

    subject = sanitize_input(subject, maxlen=SUBJECT_MAXLEN)
    if not subject:
        raise ValidationError("Subject is required.", field="subject")
    text = _clean_message(message)

    if user is not None:
        user_id, user_email, user_name = user.id, user.email, user.name
    else:
        user_id = None
        user_email = clean_str(email).lower()
        user_name = sanitize_input(name, maxlen=120)
        if not user_name:
            raise ValidationError("Name is required.", field="name")
        if not validate_email(user_email):
            raise ValidationError("A valid email is required.", field="email")

    now = utcnow_naive()
    query = SupportQuery(
        user_id=user_id,
        user_email=user_email,
        user_name=user_name,
        subject=subject,
        type=query_type,
        status="open",
        created_at=now,
        updated_at=now,
    )
    query.messages.append(QueryMessage(sender="user", message=text, timestamp=now))
    db.session.add(query)
    commit_or_raise("Submit query")
    current_app.logger.info("Query %s opened (%s) by %s", query.id, query_type, user_email)
    return query


def reply(query_id, sender, message, *, user_id=None) -> SupportQuery:
    sender = clean_str(sender).lower()
    if sender not in MESSAGE_SENDERS:
        raise ValidationError("Invalid sender.", field="sender")
    text = _clean_message(message)

    query = get_query_for_user(query_id, user_id) if sender == "user" else get_query(query_id)
    if query.status == "resolved":
        raise InvalidStateError("This query has been resolved.")
    if sender == "user" and query.type != "priority":
        raise InvalidStateError("Follow-ups are only available on priority queries.")

    now = utcnow_naive()
    query.messages.append(QueryMessage(sender=sender, message=text, timestamp=now))
    query.status = "replied" if sender == "admin" else "open"
    query.updated_at = now
    commit_or_raise("Reply to query")

    if sender == "admin" and query.user_id is not None:
        notifications.notify_query_response(query.user_id, query.subject, query.type)
    return query


def resolve(query_id) -> SupportQuery:
    query = get_query(query_id)
    if query.status != "resolved":
        query.status = "resolved"
        query.updated_at = utcnow_naive()
        commit_or_raise("Resolve query")
    return query
