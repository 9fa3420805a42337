"""Lifetime management for the owner-scoped remote change stream."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional

from smartmarks.collection.errors import SubscriptionError
from smartmarks.collection.models import ChangeEvent
from smartmarks.store.protocol import RemoteStoreClient, SubscriptionHandle

LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], None]
_QueueEntry = Optional[tuple[object, ChangeEvent]]


class SubscriptionManager:
    """Own at most one store subscription and dispatch its events in order.

    Store callbacks only enqueue; a dedicated dispatcher thread hands events
    to the handler. Each subscription is tagged with a token, and the token is
    cleared before teardown, so events delivered late to an old callback are
    dropped instead of reaching a discarded collection.
    """

    def __init__(self, store: RemoteStoreClient, *, stop_timeout: float = 5.0) -> None:
        """Initialize the manager.

        Args:
            store: Store client providing ``subscribe``/``unsubscribe``.
            stop_timeout: Seconds to wait for the dispatcher thread on stop.
        """
        self._store = store
        self._stop_timeout = stop_timeout
        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._delivery_lock = threading.RLock()
        self._token: object | None = None
        self._owner_id: str | None = None
        self._handle: SubscriptionHandle | None = None
        self._queue: queue.Queue[_QueueEntry] | None = None
        self._thread: threading.Thread | None = None

    @property
    def owner_id(self) -> str | None:
        """Return the owner of the active subscription, if any."""
        return self._owner_id

    @property
    def active(self) -> bool:
        """Return whether a subscription is currently established."""
        return self._handle is not None

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def start(self, owner_id: str, on_event: EventHandler) -> None:
        """Subscribe to ``owner_id`` changes and route them to ``on_event``.

        Repeated calls for the active owner are ignored. A different owner
        tears down the current subscription first. Concurrent calls are
        serialized, so at most one store subscription exists at any time.

        Args:
            owner_id: Owner scope used to filter the stream server-side.
            on_event: Handler invoked on the dispatcher thread per event.

        Raises:
            SubscriptionError: If the store refuses the subscription.
        """
        with self._start_lock:
            self._start(owner_id, on_event)

    def _start(self, owner_id: str, on_event: EventHandler) -> None:
        with self._lock:
            if self._handle is not None and self._owner_id == owner_id:
                LOGGER.debug("Subscription for %s already active.", owner_id)
                return
            switching = self._handle is not None

        if switching:
            LOGGER.info("Switching subscription from %s to %s.", self._owner_id, owner_id)
            self.stop()

        token = object()
        events: queue.Queue[_QueueEntry] = queue.Queue()

        def _receive(event: ChangeEvent) -> None:
            if self._token is not token:
                return
            events.put((token, event))

        with self._lock:
            self._token = token
            try:
                handle = self._store.subscribe(owner_id, _receive)
            except Exception as exc:
                self._token = None
                raise SubscriptionError(
                    f"Unable to subscribe to changes for {owner_id}: {exc}"
                ) from exc

            thread = threading.Thread(
                target=self._run,
                args=(token, events, on_event),
                name=f"smartmarks-subscription-{owner_id}",
                daemon=True,
            )
            self._owner_id = owner_id
            self._handle = handle
            self._queue = events
            self._thread = thread
            thread.start()
        LOGGER.info("Subscribed to bookmark changes for %s.", owner_id)

    def stop(self) -> None:
        """Release the subscription; no handler call happens after return.

        Safe to call repeatedly, while writes are outstanding, and from the
        handler itself.
        """
        with self._lock:
            handle, events, thread = self._handle, self._queue, self._thread
            owner_id = self._owner_id
            self._token = None
            self._handle = None
            self._queue = None
            self._thread = None
            self._owner_id = None

        if handle is not None:
            try:
                self._store.unsubscribe(handle)
            except Exception as exc:  # pragma: no cover - store teardown is best effort
                LOGGER.warning("Failed to unsubscribe %s: %s", handle.key, exc)

        if events is not None:
            # Unblock the dispatcher so it can exit.
            events.put(None)

        # Wait out a delivery already in progress on another thread.
        with self._delivery_lock:
            pass

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._stop_timeout)
            if thread.is_alive():  # pragma: no cover - handler stuck past timeout
                LOGGER.warning(
                    "Dispatcher for %s did not exit within %.1fs.", owner_id, self._stop_timeout
                )

        if handle is not None:
            LOGGER.info("Stopped bookmark subscription for %s.", owner_id)

    def flush(self, timeout: float | None = None) -> bool:
        """Block until every event queued so far has been dispatched.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits indefinitely.

        Returns:
            bool: ``False`` when the timeout expired first.
        """
        events, thread = self._queue, self._thread
        if events is None or thread is threading.current_thread():
            return True

        deadline = None if timeout is None else time.monotonic() + timeout
        with events.all_tasks_done:
            while events.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                events.all_tasks_done.wait(remaining)
        return True

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _run(
        self,
        token: object,
        events: queue.Queue[_QueueEntry],
        on_event: EventHandler,
    ) -> None:
        while True:
            entry = events.get()
            try:
                if entry is None:
                    return
                entry_token, event = entry
                with self._delivery_lock:
                    if self._token is not token or entry_token is not token:
                        continue
                    try:
                        on_event(event)
                    except Exception:
                        LOGGER.exception("Change handler failed for %s event.", event.kind)
            finally:
                events.task_done()


__all__ = ["EventHandler", "SubscriptionManager"]
