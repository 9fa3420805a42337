"""Collection state and change applier tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from smartmarks.collection import (
    Bookmark,
    CollectionState,
    Deleted,
    Inserted,
    apply_event,
    apply_events,
)

OWNER = "owner-1"
EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _bookmark(item_id: str, seconds: int, *, owner: str = OWNER) -> Bookmark:
    """Return a bookmark created ``seconds`` after a fixed epoch.

    Args:
        item_id: Identifier for the bookmark.
        seconds: Offset applied to the creation timestamp.
        owner: Owner scope of the bookmark.

    Returns:
        Bookmark: Bookmark suitable for inserting into a collection.
    """
    return Bookmark(
        id=item_id,
        owner_id=owner,
        title=f"Title {item_id}",
        url=f"https://example.com/{item_id}",
        created_at=EPOCH + timedelta(seconds=seconds),
    )


def _ids(state: CollectionState) -> list[str]:
    return [item.id for item in state.snapshot()]


def test_insert_is_idempotent() -> None:
    state = CollectionState(OWNER)
    item = _bookmark("a", 1)

    assert apply_event(state, Inserted(item=item)) is True
    assert apply_event(state, Inserted(item=item, source="local")) is False

    assert _ids(state) == ["a"]


def test_delete_is_idempotent() -> None:
    state = CollectionState(OWNER, [_bookmark("b", 2), _bookmark("a", 1)])

    assert apply_event(state, Deleted(item_id="a")) is True
    assert apply_event(state, Deleted(item_id="a")) is False
    assert apply_event(state, Deleted(item_id="missing")) is False

    assert _ids(state) == ["b"]


@pytest.mark.parametrize("arrival", [["a", "b"], ["b", "a"]])
def test_inserts_order_newest_first_regardless_of_arrival(arrival: list[str]) -> None:
    items = {"a": _bookmark("a", 1), "b": _bookmark("b", 2)}
    state = CollectionState(OWNER)

    apply_events(state, [Inserted(item=items[key]) for key in arrival])

    assert _ids(state) == ["b", "a"]


def test_equal_timestamps_put_later_arrival_first() -> None:
    state = CollectionState(OWNER)

    state.apply_insert(_bookmark("first", 5))
    state.apply_insert(_bookmark("second", 5))

    assert _ids(state) == ["second", "first"]


def test_delete_keeps_remaining_order() -> None:
    state = CollectionState(OWNER, [_bookmark("c", 3), _bookmark("b", 2), _bookmark("a", 1)])

    state.apply_delete("b")

    assert _ids(state) == ["c", "a"]


def test_reset_keeps_store_order_and_drops_duplicate_ids() -> None:
    state = CollectionState(OWNER)

    state.reset([_bookmark("b", 2), _bookmark("a", 1), _bookmark("b", 2)])

    assert _ids(state) == ["b", "a"]
    assert "a" in state
    assert len(state) == 2


def test_foreign_owner_insert_is_dropped() -> None:
    state = CollectionState(OWNER)

    changed = apply_event(state, Inserted(item=_bookmark("x", 1, owner="someone-else")))

    assert changed is False
    assert state.snapshot() == ()


def test_apply_events_counts_effective_changes() -> None:
    state = CollectionState(OWNER)
    item = _bookmark("a", 1)

    changed = apply_events(
        state,
        [Inserted(item=item), Inserted(item=item), Deleted(item_id="a"), Deleted(item_id="a")],
    )

    assert changed == 2
    assert state.snapshot() == ()


def test_apply_event_rejects_unknown_events() -> None:
    with pytest.raises(TypeError):
        apply_event(CollectionState(OWNER), object())  # type: ignore[arg-type]


def test_listeners_receive_snapshots_for_effective_changes_only() -> None:
    state = CollectionState(OWNER)
    seen: list[list[str]] = []
    remove = state.add_listener(lambda snapshot: seen.append([item.id for item in snapshot]))

    state.apply_insert(_bookmark("a", 1))
    state.apply_insert(_bookmark("a", 1))
    state.apply_delete("missing")
    state.apply_insert(_bookmark("b", 2))
    remove()
    state.apply_delete("a")

    assert seen == [["a"], ["b", "a"]]


def test_clear_discards_items_and_listeners() -> None:
    state = CollectionState(OWNER, [_bookmark("a", 1)])
    seen: list[int] = []
    state.add_listener(lambda snapshot: seen.append(len(snapshot)))

    state.clear()
    state.apply_insert(_bookmark("b", 2))

    assert seen == []
    assert _ids(state) == ["b"]


def test_bookmarks_are_immutable_and_require_text() -> None:
    item = _bookmark("a", 1)

    with pytest.raises(PydanticValidationError):
        item.title = "changed"  # type: ignore[misc]
    with pytest.raises(PydanticValidationError):
        Bookmark(id="z", owner_id=OWNER, title="", url="https://x.com", created_at=EPOCH)


def test_naive_timestamps_are_read_as_utc() -> None:
    naive = Bookmark(
        id="n",
        owner_id=OWNER,
        title="Naive",
        url="https://naive.example",
        created_at=datetime(2024, 1, 1, 0, 0, 5),
    )
    state = CollectionState(OWNER, [_bookmark("a", 1)])

    assert naive.created_at.tzinfo is timezone.utc
    assert state.apply_insert(naive) is True
    assert _ids(state) == ["n", "a"]


def test_listeners_see_snapshots_in_commit_order_across_threads() -> None:
    state = CollectionState(OWNER)
    seen: list[tuple[str, ...]] = []
    first_delivery = threading.Event()
    release = threading.Event()

    def _slow_listener(snapshot: tuple[Bookmark, ...]) -> None:
        seen.append(tuple(item.id for item in snapshot))
        if len(seen) == 1:
            first_delivery.set()
            release.wait(timeout=5)

    state.add_listener(_slow_listener)
    writer = threading.Thread(target=state.apply_insert, args=(_bookmark("x", 1),))
    writer.start()
    assert first_delivery.wait(timeout=5)

    assert state.apply_insert(_bookmark("y", 2)) is True
    release.set()
    writer.join(timeout=5)

    assert not writer.is_alive()
    assert seen == [("x",), ("y", "x")]
    assert seen[-1] == tuple(_ids(state))
