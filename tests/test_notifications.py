# tests/test_notifications.py
from __future__ import annotations

import uuid
from datetime import timedelta
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import make_user
from nitionz.errors import NotFoundError
from nitionz.extensions import db
from nitionz.models import Notification, utcnow_naive
from nitionz.services import notifications


def test_emit_writes_one_unread_notification(ctx):
    user = make_user()

    result = notifications.emit(user.id, "Hello", "Welcome aboard", "success")

    assert result.ok
    note = db.session.get(Notification, uuid.UUID(result.notification_id))
    assert note.title == "Hello"
    assert note.type == "success"
    assert note.read is False


def test_emit_unknown_severity_falls_back_to_info(ctx):
    user = make_user()
    notifications.emit(user.id, "Hello", "Body", "critical")
    assert notifications.list_for_user(user.id)[0].type == "info"


def test_emit_failure_is_reported_not_raised(ctx, caplog):
    user = make_user()

    with mock.patch.object(Session, "commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
        result = notifications.emit(user.id, "Hello", "Body")

    assert result.ok is False
    assert "locked" in result.error
    assert notifications.list_for_user(user.id) == []
    assert "Creating notification" in caplog.text


def test_emit_without_recipient(ctx):
    assert notifications.emit(None, "t", "m").ok is False


def test_badge_counts_only_recent_unread(ctx):
    user = make_user()
    now = utcnow_naive()
    for age_hours, read in ((1, False), (5, False), (30, False), (2, True)):
        db.session.add(
            Notification(
                user_id=user.id,
                title=f"{age_hours}h",
                message="m",
                type="info",
                read=read,
                created_at=now - timedelta(hours=age_hours),
            )
        )
    db.session.commit()

    assert notifications.unread_badge_count(user.id, now=now) == 2
    assert len(notifications.list_for_user(user.id, unread_only=True)) == 3


def test_is_new_window(ctx):
    now = utcnow_naive()
    fresh = Notification(read=False, created_at=now - timedelta(hours=23))
    stale = Notification(read=False, created_at=now - timedelta(hours=25))
    seen = Notification(read=True, created_at=now)
    assert fresh.is_new(now)
    assert not stale.is_new(now)
    assert not seen.is_new(now)


def test_mark_read_is_scoped_to_owner(ctx):
    owner = make_user()
    other = make_user("other@example.com")
    result = notifications.emit(owner.id, "t", "m")
    note_id = uuid.UUID(result.notification_id)

    with pytest.raises(NotFoundError):
        notifications.mark_read(note_id, other.id)

    assert notifications.mark_read(note_id, owner.id).read is True


def test_mark_all_read(ctx):
    user = make_user()
    for i in range(3):
        notifications.emit(user.id, f"n{i}", "m")

    assert notifications.mark_all_read(user.id) == 3
    assert notifications.unread_badge_count(user.id) == 0


def test_query_response_severity_depends_on_type(ctx):
    user = make_user()
    notifications.notify_query_response(user.id, "Withdrawal", "priority")
    notifications.notify_query_response(user.id, "Rates", "general")
    types = sorted(n.type for n in notifications.list_for_user(user.id))
    assert types == ["info", "success"]
