# nitionz/services/subscriptions.py
"""
Polling subscriptions.

A ``Subscription`` re-runs ``fetch`` every ``interval`` seconds and yields a
snapshot only when it differs from the previous one (compared through
``key``). The first snapshot is yielded immediately. Iterating again after the
iterator is exhausted starts a fresh subscription unless ``close()`` was
called.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Iterator


def _default_key(snapshot: Any) -> Any:
    return snapshot


class Subscription:
    def __init__(
        self,
        fetch: Callable[[], Any],
        interval: float = 5.0,
        key: Callable[[Any], Any] | None = None,
        *,
        max_polls: int | None = None,
    ):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.fetch = fetch
        self.interval = interval
        self.key = key or _default_key
        self.max_polls = max_polls
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def __iter__(self) -> Iterator[Any]:
        polls = 0
        marker = object()
        last = marker

        while not self._closed.is_set():
            snapshot = self.fetch()
            polls += 1
            current = self.key(snapshot)
            if last is marker or current != last:
                last = current
                yield snapshot

            if self.max_polls is not None and polls >= self.max_polls:
                return
            # Event.wait returns early when close() is called.
            if self._closed.wait(self.interval):
                return

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def sse_event(data: Any, event: str | None = None) -> str:
    """Format one server-sent event frame."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    for line in json.dumps(data, default=str).splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"
