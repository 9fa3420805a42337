"""Tests for the bundled memory and JSON file stores."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from smartmarks.collection import ChangeEvent, Deleted, Inserted
from smartmarks.store import JsonFileStore, MemoryStore, StoreFileError, build_store


def _fixed_clock() -> datetime:
    return datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_memory_store_timestamps_increase_under_a_frozen_clock() -> None:
    store = MemoryStore(clock=_fixed_clock)

    first = store.create("owner-1", "First", "https://1.example")
    second = store.create("owner-1", "Second", "https://2.example")

    assert second.created_at > first.created_at
    assert store.list("owner-1") == [second, first]


def test_memory_store_notifies_only_matching_owner() -> None:
    store = MemoryStore()
    mine: list[ChangeEvent] = []
    theirs: list[ChangeEvent] = []
    store.subscribe("owner-1", mine.append)
    handle = store.subscribe("owner-2", theirs.append)

    item = store.create("owner-1", "Mine", "https://mine.example")
    store.delete("owner-2", item.id)
    store.delete("owner-1", item.id)
    store.unsubscribe(handle)
    store.create("owner-2", "Unheard", "https://unheard.example")

    assert [event.kind for event in mine] == ["inserted", "deleted"]
    assert theirs == []


def test_file_store_persists_rows_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "bookmarks.json"
    writer = JsonFileStore(path)

    created = writer.create("owner-1", "Docs", "https://docs.example")
    reader = JsonFileStore(path)

    assert reader.list("owner-1") == [created]
    assert reader.list("owner-2") == []
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert payload["bookmarks"][0]["id"] == created.id


def test_file_store_refresh_reports_changes_from_other_writers(tmp_path: Path) -> None:
    path = tmp_path / "bookmarks.json"
    watcher = JsonFileStore(path)
    other = JsonFileStore(path)
    received: list[ChangeEvent] = []
    watcher.subscribe("owner-1", received.append)
    try:
        item = other.create("owner-1", "Remote", "https://remote.example")
        watcher.refresh()
        other.delete("owner-1", item.id)
        watcher.refresh()
        watcher.refresh()
    finally:
        watcher.close()

    assert received == [Inserted(item=item), Deleted(item_id=item.id)]


def test_file_store_announces_own_writes_once(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "bookmarks.json")
    received: list[ChangeEvent] = []
    store.subscribe("owner-1", received.append)
    try:
        item = store.create("owner-1", "Local", "https://local.example")
        store.refresh()
    finally:
        store.close()

    assert received == [Inserted(item=item)]


def test_file_store_rejects_corrupt_document(tmp_path: Path) -> None:
    path = tmp_path / "bookmarks.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreFileError):
        JsonFileStore(path).list("owner-1")


def test_file_store_delete_ignores_other_owners(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "bookmarks.json")
    item = store.create("owner-1", "Kept", "https://kept.example")

    store.delete("owner-2", item.id)

    assert store.list("owner-1") == [item]


def test_build_store_selects_backend(tmp_path: Path) -> None:
    assert isinstance(build_store("memory"), MemoryStore)
    assert isinstance(build_store("file", tmp_path / "b.json"), JsonFileStore)
    with pytest.raises(ValueError):
        build_store("postgres")


def test_file_store_accepts_rows_with_naive_timestamps(tmp_path: Path) -> None:
    path = tmp_path / "bookmarks.json"
    legacy = {
        "id": "legacy",
        "owner_id": "owner-1",
        "title": "Legacy",
        "url": "https://legacy.example",
        "created_at": "2024-01-01T00:00:00",
    }
    path.write_text(json.dumps({"version": 1, "bookmarks": [legacy]}), encoding="utf-8")
    store = JsonFileStore(path)

    created = store.create("owner-1", "Fresh", "https://fresh.example")

    assert [item.id for item in store.list("owner-1")] == [created.id, "legacy"]
