# tests/test_subscriptions.py
from __future__ import annotations

import json

import pytest

from nitionz.services.subscriptions import Subscription, sse_event


def _fetcher(snapshots):
    it = iter(snapshots)
    return lambda: next(it)


def test_yields_first_snapshot_then_only_changes():
    sub = Subscription(_fetcher([1, 1, 2, 2, 2, 3]), interval=0, max_polls=6)
    assert list(sub) == [1, 2, 3]


def test_key_controls_change_detection():
    snapshots = [{"n": 1, "at": "a"}, {"n": 1, "at": "b"}, {"n": 2, "at": "c"}]
    sub = Subscription(_fetcher(snapshots), interval=0, key=lambda s: s["n"], max_polls=3)
    assert [s["at"] for s in sub] == ["a", "c"]


def test_close_stops_the_iterator():
    calls = []

    def fetch():
        calls.append(1)
        return len(calls)

    sub = Subscription(fetch, interval=0)
    seen = []
    for snapshot in sub:
        seen.append(snapshot)
        if snapshot == 3:
            sub.close()

    assert seen == [1, 2, 3]
    assert sub.closed
    assert list(sub) == []


def test_context_manager_closes():
    with Subscription(lambda: 1, interval=0, max_polls=1) as sub:
        assert list(sub) == [1]
    assert sub.closed


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        Subscription(lambda: 1, interval=-1)


def test_sse_event_frame():
    frame = sse_event({"unread": 2}, event="notifications")
    assert frame.endswith("\n\n")
    lines = frame.strip().split("\n")
    assert lines[0] == "event: notifications"
    assert json.loads(lines[1][len("data: "):]) == {"unread": 2}

    assert sse_event([]) == "data: []\n\n"
