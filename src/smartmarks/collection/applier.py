"""Fold change events into a collection state."""

from __future__ import annotations

import logging
from typing import Iterable

from .models import ChangeEvent, Deleted, Inserted
from .state import CollectionState

LOGGER = logging.getLogger(__name__)


def apply_event(state: CollectionState, event: ChangeEvent) -> bool:
    """Apply a single change event to ``state``.

    Inserts and deletes are idempotent, so a local apply followed by the
    remote echo of the same write changes the collection only once.

    Args:
        state: Collection to update.
        event: Inserted or deleted event from either source.

    Returns:
        bool: Whether the collection changed.

    Raises:
        TypeError: If ``event`` is not a known change event.
    """
    if isinstance(event, Inserted):
        if event.item.owner_id != state.owner_id:
            LOGGER.warning(
                "Dropping %s insert of %s for owner %s (collection owner is %s).",
                event.source,
                event.item.id,
                event.item.owner_id,
                state.owner_id,
            )
            return False
        changed = state.apply_insert(event.item)
        item_id = event.item.id
    elif isinstance(event, Deleted):
        changed = state.apply_delete(event.item_id)
        item_id = event.item_id
    else:
        raise TypeError(f"Unsupported change event: {event!r}")

    LOGGER.debug(
        "%s %s event for %s (%s).",
        "Applied" if changed else "Ignored",
        event.kind,
        item_id,
        event.source,
    )
    return changed


def apply_events(state: CollectionState, events: Iterable[ChangeEvent]) -> int:
    """Apply events in order and return how many changed the collection."""
    return sum(1 for event in events if apply_event(state, event))


__all__ = ["apply_event", "apply_events"]
