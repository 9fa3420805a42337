"""User-initiated bookmark mutations and their pending lifecycle."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from smartmarks.collection.applier import apply_event
from smartmarks.collection.errors import (
    BusyError,
    SessionClosedError,
    StoreError,
    ValidationError,
)
from smartmarks.collection.models import (
    Bookmark,
    ChangeEvent,
    Deleted,
    Inserted,
    MutationKind,
    PendingMutation,
)
from smartmarks.collection.state import CollectionState
from smartmarks.store.protocol import RemoteStoreClient

LOGGER = logging.getLogger(__name__)


class MutationGateway:
    """Validate and issue writes, then apply their outcome locally.

    Successful writes are applied to the collection right away through the
    same applier used for remote events, so the collection converges even if
    the echo of the write never arrives; a later echo is a no-op.
    Only one add may be outstanding at a time. Deletes of different ids run
    independently.
    """

    def __init__(self, store: RemoteStoreClient, state: CollectionState) -> None:
        """Initialize the gateway.

        Args:
            store: Store client receiving writes.
            state: Collection updated after successful writes.
        """
        self._store = store
        self._state = state
        self._lock = threading.RLock()
        self._adding = False
        self._closed = False
        self._pending: list[PendingMutation] = []

    @property
    def owner_id(self) -> str:
        """Return the owner scope used for writes."""
        return self._state.owner_id

    @property
    def busy(self) -> bool:
        """Return whether an add is currently outstanding."""
        with self._lock:
            return self._adding

    @property
    def closed(self) -> bool:
        """Return whether the gateway stopped applying results."""
        with self._lock:
            return self._closed

    @property
    def pending(self) -> tuple[PendingMutation, ...]:
        """Return the mutations currently in flight."""
        with self._lock:
            return tuple(self._pending)

    def add_item(self, title: str, url: str) -> Bookmark:
        """Create a bookmark for the current owner.

        Args:
            title: Bookmark title; surrounding whitespace is ignored.
            url: Bookmark URL; surrounding whitespace is ignored.

        Returns:
            Bookmark: Stored bookmark including its id and timestamp.

        Raises:
            ValidationError: If either field is empty after trimming.
            SessionClosedError: If the gateway has been closed.
            BusyError: If another add is still outstanding.
            StoreError: If the store fails the write.
        """
        title = (title or "").strip()
        url = (url or "").strip()
        if not title or not url:
            raise ValidationError("Please enter both a title and a URL.")

        with self._lock:
            self._ensure_open()
            if self._adding:
                raise BusyError("Another bookmark is still being added.")
            self._adding = True
            mutation = self._begin("add", {"title": title, "url": url})

        try:
            item = self._call_store(mutation, lambda: self._store.create(self.owner_id, title, url))
        finally:
            with self._lock:
                self._adding = False

        self._apply(Inserted(item=item, source="local"))
        return item

    def delete_item(self, item_id: str) -> None:
        """Delete the current owner's bookmark with ``item_id``.

        Args:
            item_id: Identifier of the bookmark to remove.

        Raises:
            ValidationError: If ``item_id`` is empty.
            SessionClosedError: If the gateway has been closed.
            StoreError: If the store fails the delete.
        """
        if not isinstance(item_id, str) or not item_id.strip():
            raise ValidationError("A bookmark id is required.")

        with self._lock:
            self._ensure_open()
            mutation = self._begin("delete", {"id": item_id})

        self._call_store(mutation, lambda: self._store.delete(self.owner_id, item_id))
        self._apply(Deleted(item_id=item_id, source="local"))

    def close(self) -> None:
        """Stop applying write results; outstanding writes still complete."""
        with self._lock:
            self._closed = True

    # Internal helpers -------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("The bookmark session has ended.")

    def _begin(self, kind: MutationKind, payload: dict[str, Any]) -> PendingMutation:
        mutation = PendingMutation(kind=kind, payload=payload)
        self._pending.append(mutation)
        return mutation

    def _call_store(self, mutation: PendingMutation, call: Callable[[], Any]) -> Any:
        try:
            result = call()
        except Exception as exc:
            self._finish(mutation, succeeded=False)
            LOGGER.warning("Failed to %s bookmark %s: %s", mutation.kind, mutation.payload, exc)
            raise StoreError(f"Failed to {mutation.kind} bookmark: {exc}", cause=exc) from exc
        self._finish(mutation, succeeded=True)
        return result

    def _finish(self, mutation: PendingMutation, *, succeeded: bool) -> None:
        with self._lock:
            mutation.resolve(succeeded)
            self._pending = [entry for entry in self._pending if entry is not mutation]

    def _apply(self, event: ChangeEvent) -> None:
        # Listeners run outside the gateway lock; a close racing this check only
        # touches a collection the session is discarding.
        with self._lock:
            closed = self._closed
        if closed:
            LOGGER.debug("Session closed; discarding local %s event.", event.kind)
            return
        apply_event(self._state, event)


__all__ = ["MutationGateway"]
