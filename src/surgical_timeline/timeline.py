# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Timeline Store: the ordered event log consumed by the presentation layer.

Order is newest-first by insertion, not by ``timestamp``; feed messages can
arrive out of order. Use ``chronological()`` for a timestamp-sorted view.

The store is bounded. When full, appending evicts the oldest event.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from itertools import islice

from surgical_timeline.models import TimelineEvent

logger = logging.getLogger(__name__)

TimelineListener = Callable[[tuple[TimelineEvent, ...]], None]


class TimelineStore:
    """Bounded, newest-first log of timeline events.

    Args:
        max_events: Capacity. Oldest events are evicted beyond it.
    """

    def __init__(self, max_events: int = 5000) -> None:
        if max_events < 1:
            raise ValueError("max_events must be >= 1")
        self._events: deque[TimelineEvent] = deque(maxlen=max_events)
        self._listeners: list[TimelineListener] = []

    @property
    def max_events(self) -> int:
        return self._events.maxlen or 0

    @property
    def events(self) -> tuple[TimelineEvent, ...]:
        """Snapshot of all events, newest first."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: TimelineEvent) -> None:
        """Prepend ``event``; it becomes the newest entry."""
        if len(self._events) == self._events.maxlen:
            logger.debug("Timeline full, evicting oldest event id=%s", self._events[-1].id)
        self._events.appendleft(event)
        self._notify()

    def extend(self, events: Iterable[TimelineEvent]) -> None:
        """Append several events in emission order (last one ends up newest)."""
        added = False
        for event in events:
            self._events.appendleft(event)
            added = True
        if added:
            self._notify()

    def replace_all(self, events: Iterable[TimelineEvent]) -> None:
        """Replace the log with ``events``, given newest first."""
        self._events.clear()
        self._events.extend(islice(events, self._events.maxlen))
        self._notify()

    def clear(self) -> None:
        self._events.clear()
        self._notify()

    def for_operation(self, operation_id: str) -> tuple[TimelineEvent, ...]:
        """Events belonging to ``operation_id``, newest first."""
        return tuple(e for e in self._events if e.operation_id == operation_id)

    def chronological(self) -> list[TimelineEvent]:
        """Events sorted by ``timestamp`` ascending (stable for ties)."""
        return sorted(reversed(self._events), key=lambda e: e.timestamp)

    # -- listeners ----------------------------------------------------------

    def add_listener(self, listener: TimelineListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TimelineListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self.events
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Timeline listener failed")


__all__ = ["TimelineListener", "TimelineStore"]
