"""In-memory ordered bookmark collection for a single owner."""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator

from .models import Bookmark

LOGGER = logging.getLogger(__name__)

Snapshot = tuple[Bookmark, ...]
ChangeListener = Callable[[Snapshot], None]


class CollectionState:
    """Ordered set of bookmarks, newest first, unique by id.

    All reads and writes are serialized by a re-entrant lock so the mutation
    gateway and the subscription dispatcher can both apply changes. Snapshots
    are queued under that lock and handed to listeners in commit order by
    whichever thread is currently delivering; listeners never run while the
    lock is held by the collection itself.
    """

    def __init__(self, owner_id: str, items: Iterable[Bookmark] = ()) -> None:
        """Initialize the collection for ``owner_id``.

        Args:
            owner_id: Identity whose bookmarks the collection holds.
            items: Optional initial snapshot, newest first.
        """
        self._owner_id = owner_id
        self._items: list[Bookmark] = []
        self._ids: set[str] = set()
        self._lock = threading.RLock()
        self._listeners: list[ChangeListener] = []
        self._outbox: deque[Snapshot] = deque()
        self._delivering = False
        if items:
            self.reset(items)

    @property
    def owner_id(self) -> str:
        """Return the owner scope of the collection."""
        return self._owner_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._ids

    @contextmanager
    def locked(self) -> Iterator["CollectionState"]:
        """Hold the collection lock for the duration of the block."""
        with self._lock:
            yield self

    def snapshot(self) -> Snapshot:
        """Return the current bookmarks, newest first."""
        with self._lock:
            return tuple(self._items)

    def reset(self, items: Iterable[Bookmark]) -> None:
        """Replace the contents with a store snapshot.

        The store's order is kept; repeated ids keep their first occurrence.

        Args:
            items: Bookmarks ordered newest first.
        """
        with self._lock:
            self._items = []
            self._ids = set()
            for item in items:
                if item.id in self._ids:
                    continue
                self._items.append(item)
                self._ids.add(item.id)
            self._outbox.append(tuple(self._items))
        self._deliver()

    def clear(self) -> None:
        """Discard every bookmark and listener."""
        with self._lock:
            self._items = []
            self._ids = set()
            self._listeners = []
            self._outbox.clear()

    def apply_insert(self, item: Bookmark) -> bool:
        """Insert ``item`` in ``created_at`` descending order.

        Among equal timestamps the new arrival is placed first.

        Args:
            item: Bookmark to insert.

        Returns:
            bool: ``False`` when a bookmark with the same id already exists.
        """
        with self._lock:
            if item.id in self._ids:
                return False
            position = len(self._items)
            for index, existing in enumerate(self._items):
                if existing.created_at <= item.created_at:
                    position = index
                    break
            self._items.insert(position, item)
            self._ids.add(item.id)
            self._outbox.append(tuple(self._items))
        self._deliver()
        return True

    def apply_delete(self, item_id: str) -> bool:
        """Remove the bookmark with ``item_id`` wherever it sits.

        Args:
            item_id: Identifier of the bookmark to remove.

        Returns:
            bool: ``False`` when no bookmark with that id exists.
        """
        with self._lock:
            if item_id not in self._ids:
                return False
            self._items = [item for item in self._items if item.id != item_id]
            self._ids.discard(item_id)
            self._outbox.append(tuple(self._items))
        self._deliver()
        return True

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` for snapshots produced by effective changes.

        Args:
            listener: Callable receiving the new snapshot.

        Returns:
            Callable[[], None]: Function that unregisters the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def _deliver(self) -> None:
        with self._lock:
            if self._delivering:
                return
            self._delivering = True
        try:
            while True:
                with self._lock:
                    if not self._outbox:
                        self._delivering = False
                        return
                    snapshot = self._outbox.popleft()
                    listeners = list(self._listeners)
                for listener in listeners:
                    try:
                        listener(snapshot)
                    except Exception:  # pragma: no cover - listener failures are only logged
                        LOGGER.exception("Collection listener %r failed.", listener)
        except BaseException:
            with self._lock:
                self._delivering = False
            raise


__all__ = ["CollectionState", "ChangeListener", "Snapshot"]
