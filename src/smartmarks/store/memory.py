"""Thread-safe in-process bookmark store with push notifications."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from smartmarks.collection.models import Bookmark, ChangeEvent, Deleted, Inserted

from .protocol import EventCallback, SubscriptionHandle

Clock = Callable[[], datetime]


class MemoryStore:
    """Owner-partitioned store keeping rows in memory.

    Timestamps are strictly increasing so rows created in quick succession
    still order newest first. Subscribers receive events synchronously on the
    writing thread while the store lock is held, so delivery follows commit
    order.
    """

    def __init__(self, *, clock: Optional[Clock] = None) -> None:
        """Initialize an empty store.

        Args:
            clock: Optional callable returning the current UTC time.
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rows: dict[str, Bookmark] = {}
        self._subscribers: dict[str, tuple[str, EventCallback]] = {}
        self._last_created_at: Optional[datetime] = None
        self._lock = threading.RLock()

    def list(self, owner_id: str) -> list[Bookmark]:
        with self._lock:
            rows = [row for row in self._rows.values() if row.owner_id == owner_id]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    def create(self, owner_id: str, title: str, url: str) -> Bookmark:
        with self._lock:
            item = Bookmark(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                title=title,
                url=url,
                created_at=self._next_timestamp(),
            )
            self._rows[item.id] = item
            self._publish(owner_id, Inserted(item=item))
        return item

    def delete(self, owner_id: str, item_id: str) -> None:
        with self._lock:
            row = self._rows.get(item_id)
            if row is None or row.owner_id != owner_id:
                return
            del self._rows[item_id]
            self._publish(owner_id, Deleted(item_id=item_id))

    def subscribe(self, owner_id: str, callback: EventCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(key=uuid.uuid4().hex, owner_id=owner_id)
        with self._lock:
            self._subscribers[handle.key] = (owner_id, callback)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        with self._lock:
            self._subscribers.pop(handle.key, None)

    @property
    def subscriber_count(self) -> int:
        """Return the number of live subscriptions."""
        with self._lock:
            return len(self._subscribers)

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    def _publish(self, owner_id: str, event: ChangeEvent) -> None:
        callbacks = [
            callback for owner, callback in self._subscribers.values() if owner == owner_id
        ]
        for callback in callbacks:
            callback(event)


__all__ = ["MemoryStore"]
