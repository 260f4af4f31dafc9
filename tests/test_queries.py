# tests/test_queries.py
from __future__ import annotations

import pytest
import sqlalchemy as sa

from conftest import make_user
from nitionz.errors import InvalidStateError, NotFoundError, ValidationError
from nitionz.extensions import db
from nitionz.models import Notification
from nitionz.services import queries


def test_guest_query_needs_contact_details(ctx):
    with pytest.raises(ValidationError):
        queries.open_query("Rates", "What is the FD rate?", email="not-an-email", name="Guest")
    with pytest.raises(ValidationError):
        queries.open_query("Rates", "What is the FD rate?", email="guest@example.com", name="")

    query = queries.open_query("Rates", "What is the FD rate?", email="Guest@Example.com", name="Guest")
    assert query.user_id is None
    assert query.user_email == "guest@example.com"
    assert query.type == "general"
    assert query.status == "open"
    assert [m.sender for m in query.messages] == ["user"]


def test_priority_only_for_signed_in_users(ctx):
    with pytest.raises(ValidationError):
        queries.open_query("Urgent", "Help", email="guest@example.com", name="Guest", query_type="priority")

    user = make_user()
    query = queries.open_query("Urgent", "Help", user=user, query_type="priority")
    assert query.type == "priority"
    assert query.user_id == user.id


def test_admin_reply_appends_and_notifies_owner(ctx):
    user = make_user()
    query = queries.open_query("Withdrawal", "When is maturity?", user=user, query_type="priority")

    updated = queries.reply(query.id, "admin", "Your FD matures on 1 Jan.")

    assert updated.status == "replied"
    assert [(m.sender, m.message) for m in updated.messages] == [
        ("user", "When is maturity?"),
        ("admin", "Your FD matures on 1 Jan."),
    ]
    note = db.session.scalars(sa.select(Notification).where(Notification.user_id == user.id)).one()
    assert note.title == "Query Response"
    assert note.type == "success"


def test_admin_reply_to_guest_sends_no_notification(ctx):
    query = queries.open_query("Rates", "Rates?", email="guest@example.com", name="Guest")
    queries.reply(query.id, "admin", "12% p.a.")
    assert db.session.scalar(sa.select(sa.func.count(Notification.id))) == 0


def test_user_follow_up_only_on_priority(ctx):
    user = make_user()
    priority = queries.open_query("Help", "First", user=user, query_type="priority")
    general = queries.open_query("Info", "First", user=user, query_type="general")

    queries.reply(priority.id, "admin", "Answer")
    updated = queries.reply(priority.id, "user", "Thanks, one more thing", user_id=user.id)
    assert updated.status == "open"
    assert len(updated.messages) == 3

    with pytest.raises(InvalidStateError):
        queries.reply(general.id, "user", "Follow up", user_id=user.id)


def test_user_cannot_reply_on_someone_elses_query(ctx):
    owner = make_user()
    other = make_user("other@example.com")
    query = queries.open_query("Help", "First", user=owner, query_type="priority")
    with pytest.raises(NotFoundError):
        queries.reply(query.id, "user", "Hijack", user_id=other.id)


def test_resolved_query_is_closed(ctx):
    user = make_user()
    query = queries.open_query("Help", "First", user=user, query_type="priority")
    queries.resolve(query.id)

    with pytest.raises(InvalidStateError):
        queries.reply(query.id, "admin", "Late answer")
    with pytest.raises(ValidationError):
        queries.reply(query.id, "admin", "   ")


def test_list_queries_filters(ctx):
    user = make_user()
    queries.open_query("Help", "First", user=user, query_type="priority")
    guest = queries.open_query("Rates", "Rates?", email="guest@example.com", name="Guest")
    queries.resolve(guest.id)

    assert len(queries.list_queries()) == 2
    assert [q.type for q in queries.list_queries(query_type="priority")] == ["priority"]
    assert [q.subject for q in queries.list_queries(status="resolved")] == ["Rates"]
    assert [q.subject for q in queries.list_queries(user_id=user.id)] == ["Help"]
