"""JSON file backed bookmark store with filesystem change notifications."""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from smartmarks.collection.errors import SmartmarksError
from smartmarks.collection.models import Bookmark, ChangeEvent, Deleted, Inserted

from .protocol import EventCallback, SubscriptionHandle

LOGGER = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path("~/.smartmarks/bookmarks.json")
_FORMAT_VERSION = 1


class StoreFileError(SmartmarksError):
    """Raised when the store file cannot be read or written."""


@dataclass(slots=True)
class _Subscriber:
    owner_id: str
    callback: EventCallback
    known: dict[str, Bookmark] = field(default_factory=dict)


class JsonFileStore:
    """Owner-partitioned store persisted to a single JSON document.

    Every process sharing the file sees the others' writes: subscriptions
    watch the file with ``watchdog`` and diff the owner's rows against the
    rows each subscriber has already been told about. Writes from this
    process are announced immediately; the later filesystem notification of
    the same write produces no events.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: Location of the JSON document; created on first write.
        """
        self._path = (path or DEFAULT_STORE_PATH).expanduser().resolve()
        self._lock = threading.RLock()
        self._subscribers: dict[str, _Subscriber] = {}
        self._observer: Any | None = None

    @property
    def path(self) -> Path:
        """Return the resolved store file path."""
        return self._path

    # ------------------------------------------------------------------ #
    # RemoteStoreClient                                                  #
    # ------------------------------------------------------------------ #

    def list(self, owner_id: str) -> list[Bookmark]:
        with self._lock:
            rows = self._read_rows()
        owned = [row for row in rows.values() if row.owner_id == owner_id]
        return sorted(owned, key=lambda row: row.created_at, reverse=True)

    def create(self, owner_id: str, title: str, url: str) -> Bookmark:
        with self._lock:
            rows = self._read_rows()
            created_at = datetime.now(timezone.utc)
            latest = max((row.created_at for row in rows.values()), default=None)
            if latest is not None and created_at <= latest:
                created_at = latest + timedelta(microseconds=1)
            item = Bookmark(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                title=title,
                url=url,
                created_at=created_at,
            )
            rows[item.id] = item
            self._write_rows(rows)
            self._dispatch(rows)
        return item

    def delete(self, owner_id: str, item_id: str) -> None:
        with self._lock:
            rows = self._read_rows()
            row = rows.get(item_id)
            if row is None or row.owner_id != owner_id:
                return
            del rows[item_id]
            self._write_rows(rows)
            self._dispatch(rows)

    def subscribe(self, owner_id: str, callback: EventCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(key=uuid.uuid4().hex, owner_id=owner_id)
        with self._lock:
            rows = self._read_rows()
            known = {key: row for key, row in rows.items() if row.owner_id == owner_id}
            self._subscribers[handle.key] = _Subscriber(owner_id, callback, known)
            self._ensure_observer()
        LOGGER.debug("Subscribed %s to %s for owner %s.", handle.key, self._path, owner_id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        with self._lock:
            self._subscribers.pop(handle.key, None)
            observer = None if self._subscribers else self._detach_observer()
        _stop_observer(observer)

    def close(self) -> None:
        """Drop every subscription and stop watching the store file."""
        with self._lock:
            self._subscribers.clear()
            observer = self._detach_observer()
        _stop_observer(observer)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def refresh(self) -> None:
        """Re-read the store file and notify subscribers of differences."""
        with self._lock:
            if not self._subscribers:
                return
            try:
                rows = self._read_rows()
            except StoreFileError as exc:
                # Another process may be mid-write; the next notification retries.
                LOGGER.warning("Skipping refresh of %s: %s", self._path, exc)
                return
            self._dispatch(rows)

    def _dispatch(self, rows: dict[str, Bookmark]) -> None:
        for subscriber in list(self._subscribers.values()):
            current = {key: row for key, row in rows.items() if row.owner_id == subscriber.owner_id}
            events: list[ChangeEvent] = []
            added = [row for key, row in current.items() if key not in subscriber.known]
            for row in sorted(added, key=lambda row: row.created_at):
                events.append(Inserted(item=row))
            for key in subscriber.known:
                if key not in current:
                    events.append(Deleted(item_id=key))
            subscriber.known = current
            for event in events:
                subscriber.callback(event)

    def _read_rows(self) -> dict[str, Bookmark]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreFileError(f"Invalid bookmark store data: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreFileError("Bookmark store must contain a mapping at the top level.")

        rows: dict[str, Bookmark] = {}
        try:
            for entry in payload.get("bookmarks", []):
                row = Bookmark.model_validate(entry)
                rows[row.id] = row
        except PydanticValidationError as exc:
            raise StoreFileError(f"Invalid bookmark entry: {exc}") from exc
        return rows

    def _write_rows(self, rows: dict[str, Bookmark]) -> None:
        payload = {
            "version": _FORMAT_VERSION,
            "bookmarks": [row.model_dump(mode="json") for row in rows.values()],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(f".{self._path.name}.{uuid.uuid4().hex}.tmp")
        try:
            temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(temp_path, self._path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise StoreFileError(f"Unable to write bookmark store: {exc}") from exc

    def _ensure_observer(self) -> None:
        if self._observer is not None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        observer = Observer()
        observer.schedule(_StoreFileHandler(self), str(self._path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def _detach_observer(self) -> Any | None:
        observer, self._observer = self._observer, None
        return observer


def _stop_observer(observer: Any | None) -> None:
    # Joined outside the store lock; the observer thread may be waiting on it in refresh.
    if observer is None:
        return
    observer.stop()
    if observer is not threading.current_thread():
        observer.join(timeout=5)


class _StoreFileHandler(FileSystemEventHandler):
    """Forward filesystem events touching the store file to a refresh."""

    def __init__(self, store: JsonFileStore) -> None:
        self._store = store

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle a filesystem create event."""
        self._maybe_refresh(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle a filesystem modify event."""
        self._maybe_refresh(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - watchdog-specific
        """Handle a filesystem move event (atomic replace of the store file)."""
        self._maybe_refresh(getattr(event, "dest_path", event.src_path))

    def _maybe_refresh(self, raw_path: Optional[str | bytes]) -> None:
        if not raw_path:
            return
        path = Path(os.fsdecode(raw_path)).expanduser()
        if path.resolve() != self._store.path:
            return
        self._store.refresh()


__all__ = ["DEFAULT_STORE_PATH", "JsonFileStore", "StoreFileError"]
