"""Signed-in bookmark session wiring state, writes, and the change stream."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Callable, Optional

from smartmarks.collection.applier import apply_event
from smartmarks.collection.errors import SessionClosedError, StoreError
from smartmarks.collection.models import Bookmark, ChangeEvent, PendingMutation
from smartmarks.collection.state import ChangeListener, CollectionState, Snapshot
from smartmarks.store.protocol import RemoteStoreClient

from .gateway import MutationGateway
from .subscription import SubscriptionManager

LOGGER = logging.getLogger(__name__)


class BookmarkSession:
    """Live view of one owner's bookmarks.

    ``open`` subscribes before loading the snapshot while holding the
    collection lock, so events committed during the load are applied after
    it and resolved by idempotence. ``close`` corresponds to signing out: the
    subscription is released and the collection discarded.
    """

    def __init__(
        self,
        store: RemoteStoreClient,
        owner_id: str,
        *,
        stop_timeout: float = 5.0,
    ) -> None:
        """Initialize the session without contacting the store.

        Args:
            store: Store client shared by writes and the subscription.
            owner_id: Authenticated identity whose bookmarks are shown.
            stop_timeout: Seconds to wait for the dispatcher on teardown.
        """
        if not owner_id:
            raise ValueError("owner_id is required to open a bookmark session.")
        self._store = store
        self._listeners: list[ChangeListener] = []
        self._subscriptions = SubscriptionManager(store, stop_timeout=stop_timeout)
        self._opened = False
        self._closed = False
        self._bind(owner_id)

    @property
    def owner_id(self) -> str:
        """Return the owner scope of the session."""
        return self._state.owner_id

    @property
    def state(self) -> CollectionState:
        """Return the collection backing the session."""
        return self._state

    @property
    def subscriptions(self) -> SubscriptionManager:
        """Return the subscription manager owned by the session."""
        return self._subscriptions

    @property
    def is_open(self) -> bool:
        """Return whether the session is live."""
        return self._opened

    @property
    def busy(self) -> bool:
        """Return whether an add is outstanding."""
        return self._gateway.busy

    @property
    def pending(self) -> tuple[PendingMutation, ...]:
        """Return the mutations currently in flight."""
        return self._gateway.pending

    def open(self) -> "BookmarkSession":
        """Start the change stream and load the initial snapshot.

        Returns:
            BookmarkSession: The session itself, for chaining.

        Raises:
            SubscriptionError: If the change stream cannot be established.
            StoreError: If the snapshot cannot be loaded.
            SessionClosedError: If the session was already closed.
        """
        if self._closed:
            raise SessionClosedError("A closed bookmark session cannot be reopened.")
        if self._opened:
            return self
        owner_id = self.owner_id
        failure: Exception | None = None
        with self._state.locked():
            self._subscriptions.start(owner_id, self._on_event)
            try:
                items = self._store.list(owner_id)
            except Exception as exc:
                failure = exc
            else:
                self._state.reset(items)
        if failure is not None:
            # The dispatcher may be blocked on the collection lock; stop after releasing it.
            self._subscriptions.stop()
            raise StoreError(f"Failed to load bookmarks: {failure}", cause=failure) from failure
        self._opened = True
        LOGGER.info("Opened bookmark session for %s with %d item(s).", owner_id, len(items))
        return self

    def close(self) -> None:
        """End the session; outstanding writes finish but are not applied."""
        self._gateway.close()
        self._subscriptions.stop()
        self._state.clear()
        self._listeners.clear()
        if self._opened:
            LOGGER.info("Closed bookmark session for %s.", self.owner_id)
        self._opened = False
        self._closed = True

    def switch_owner(self, owner_id: str) -> None:
        """Rebind the session to another identity.

        The previous subscription is released and its collection discarded
        before anything is loaded for the new owner.

        Args:
            owner_id: Newly authenticated identity.
        """
        if owner_id == self.owner_id:
            return
        if self._closed:
            raise SessionClosedError("A closed bookmark session cannot switch owners.")
        was_open = self._opened
        self._gateway.close()
        self._subscriptions.stop()
        self._state.clear()
        self._bind(owner_id)
        self._opened = False
        if was_open:
            self.open()

    # Presentation-facing API ------------------------------------------

    def snapshot(self) -> Snapshot:
        """Return the bookmarks, newest first."""
        return self._state.snapshot()

    def add_item(self, title: str, url: str) -> Bookmark:
        """Add a bookmark; see :meth:`MutationGateway.add_item`."""
        return self._gateway.add_item(title, url)

    def delete_item(self, item_id: str) -> None:
        """Delete a bookmark; see :meth:`MutationGateway.delete_item`."""
        self._gateway.delete_item(item_id)

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` for collection changes.

        Listeners survive owner switches and are dropped on close.

        Args:
            listener: Callable receiving each new snapshot.

        Returns:
            Callable[[], None]: Function that unregisters the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until queued remote events have been applied."""
        return self._subscriptions.flush(timeout)

    def __enter__(self) -> "BookmarkSession":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _bind(self, owner_id: str) -> None:
        self._state = CollectionState(owner_id)
        self._state.add_listener(self._notify)
        self._gateway = MutationGateway(self._store, self._state)

    def _notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            listener(snapshot)

    def _on_event(self, event: ChangeEvent) -> None:
        apply_event(self._state, event)


__all__ = ["BookmarkSession"]
