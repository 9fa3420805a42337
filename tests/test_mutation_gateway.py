"""Mutation gateway tests."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from smartmarks.collection import (
    Bookmark,
    BusyError,
    CollectionState,
    Deleted,
    PendingMutation,
    SessionClosedError,
    StoreError,
    ValidationError,
    apply_event,
)
from smartmarks.store import MemoryStore
from smartmarks.sync import MutationGateway

OWNER = "owner-1"


class RecordingStore(MemoryStore):
    """Memory store that records write calls and can fail or block them."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_with: Exception | None = None
        self.release = threading.Event()
        self.release.set()
        self.entered = threading.Event()

    def create(self, owner_id: str, title: str, url: str) -> Bookmark:
        self.calls.append(("create", (owner_id, title, url)))
        self.entered.set()
        self.release.wait(timeout=5)
        if self.fail_with is not None:
            raise self.fail_with
        return super().create(owner_id, title, url)

    def delete(self, owner_id: str, item_id: str) -> None:
        self.calls.append(("delete", (owner_id, item_id)))
        if self.fail_with is not None:
            raise self.fail_with
        super().delete(owner_id, item_id)


def _gateway() -> tuple[RecordingStore, CollectionState, MutationGateway]:
    store = RecordingStore()
    state = CollectionState(OWNER)
    return store, state, MutationGateway(store, state)


@pytest.mark.parametrize(
    ("title", "url"),
    [("", "https://x.com"), ("title", ""), ("   ", "https://x.com"), ("title", "  \t")],
)
def test_add_item_rejects_blank_fields_without_store_call(title: str, url: str) -> None:
    store, state, gateway = _gateway()

    with pytest.raises(ValidationError):
        gateway.add_item(title, url)

    assert store.calls == []
    assert state.snapshot() == ()
    assert gateway.pending == ()


def test_add_item_trims_and_applies_locally() -> None:
    store, state, gateway = _gateway()

    item = gateway.add_item("  Example ", " https://example.com  ")

    assert store.calls == [("create", (OWNER, "Example", "https://example.com"))]
    assert item.title == "Example"
    assert item.url == "https://example.com"
    assert item.owner_id == OWNER
    assert state.snapshot() == (item,)
    assert gateway.busy is False
    assert gateway.pending == ()


def test_second_add_while_pending_raises_busy_without_store_call() -> None:
    store, state, gateway = _gateway()
    store.release.clear()
    results: list[Bookmark] = []

    def _add() -> None:
        results.append(gateway.add_item("First", "https://a.com"))

    worker = threading.Thread(target=_add)
    worker.start()
    assert store.entered.wait(timeout=5)

    assert gateway.busy is True
    assert [mutation.kind for mutation in gateway.pending] == ["add"]
    assert gateway.pending[0].status == "pending"

    with pytest.raises(BusyError):
        gateway.add_item("Second", "https://b.com")
    assert len(store.calls) == 1

    store.release.set()
    worker.join(timeout=5)

    assert [item.title for item in results] == ["First"]
    assert gateway.busy is False
    assert [item.title for item in state.snapshot()] == ["First"]


def test_failed_add_raises_store_error_and_leaves_state_untouched() -> None:
    store, state, gateway = _gateway()
    existing = gateway.add_item("Keep", "https://keep.example")
    cause = ConnectionError("network down")
    store.fail_with = cause

    with pytest.raises(StoreError) as excinfo:
        gateway.add_item("Lost", "https://lost.example")

    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause
    assert state.snapshot() == (existing,)
    assert gateway.busy is False
    assert gateway.pending == ()


def test_delete_converges_once_with_duplicate_echo() -> None:
    store, state, gateway = _gateway()
    first = gateway.add_item("First", "https://a.com")
    second = gateway.add_item("Second", "https://b.com")
    changes: list[int] = []
    state.add_listener(lambda snapshot: changes.append(len(snapshot)))

    gateway.delete_item(first.id)
    echoed = apply_event(state, Deleted(item_id=first.id, source="remote"))

    assert echoed is False
    assert changes == [1]
    assert state.snapshot() == (second,)
    assert store.list(OWNER) == [second]


def test_delete_requires_an_id() -> None:
    store, _, gateway = _gateway()

    with pytest.raises(ValidationError):
        gateway.delete_item("  ")

    assert store.calls == []


def test_failed_delete_keeps_item() -> None:
    store, state, gateway = _gateway()
    item = gateway.add_item("Keep", "https://keep.example")
    store.fail_with = TimeoutError("slow")

    with pytest.raises(StoreError):
        gateway.delete_item(item.id)

    assert state.snapshot() == (item,)
    assert gateway.pending == ()


def test_concurrent_deletes_are_independent() -> None:
    store, state, gateway = _gateway()
    items = [gateway.add_item(f"Item {index}", f"https://{index}.example") for index in range(4)]

    workers = [threading.Thread(target=gateway.delete_item, args=(item.id,)) for item in items[:3]]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=5)

    assert state.snapshot() == (items[3],)


def test_closed_gateway_discards_outstanding_result_and_rejects_new_writes() -> None:
    store, state, gateway = _gateway()
    store.release.clear()
    results: list[Bookmark] = []

    def _add() -> None:
        results.append(gateway.add_item("Late", "https://late.example"))

    worker = threading.Thread(target=_add)
    worker.start()
    assert store.entered.wait(timeout=5)
    gateway.close()
    store.release.set()
    worker.join(timeout=5)

    assert len(results) == 1
    assert state.snapshot() == ()
    assert store.list(OWNER) == results
    with pytest.raises(SessionClosedError):
        gateway.add_item("Another", "https://another.example")
    with pytest.raises(SessionClosedError):
        gateway.delete_item(results[0].id)


def test_pending_mutation_lifecycle_is_terminal() -> None:
    succeeded = PendingMutation(kind="add", payload={"title": "t", "url": "u"})
    failed = PendingMutation(kind="delete", payload={"id": "x"})

    succeeded.resolve(True)
    failed.resolve(False)

    assert (succeeded.status, failed.status) == ("succeeded", "failed")
    assert succeeded.resolved and failed.resolved
    with pytest.raises(RuntimeError):
        failed.resolve(True)


def test_slow_listener_does_not_block_gateway_status() -> None:
    _, state, gateway = _gateway()
    in_listener = threading.Event()
    release = threading.Event()

    def _slow(snapshot: tuple[Bookmark, ...]) -> None:
        in_listener.set()
        release.wait(timeout=5)

    state.add_listener(_slow)
    writer = threading.Thread(target=gateway.add_item, args=("Slow", "https://slow.example"))
    writer.start()
    assert in_listener.wait(timeout=5)

    statuses: list[tuple[bool, int]] = []
    reader = threading.Thread(target=lambda: statuses.append((gateway.busy, len(gateway.pending))))
    reader.start()
    reader.join(timeout=1)
    reader_finished = not reader.is_alive()
    release.set()
    writer.join(timeout=5)

    assert reader_finished
    assert statuses == [(False, 0)]
    assert [item.title for item in state.snapshot()] == ["Slow"]
