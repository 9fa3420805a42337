"""Collection state, change events, and the event applier."""

from .applier import apply_event, apply_events
from .errors import (
    BusyError,
    MutationError,
    SessionClosedError,
    SmartmarksError,
    StoreError,
    SubscriptionError,
    ValidationError,
)
from .models import Bookmark, ChangeEvent, Deleted, Inserted, PendingMutation
from .state import ChangeListener, CollectionState, Snapshot

__all__ = [
    "apply_event",
    "apply_events",
    "Bookmark",
    "BusyError",
    "ChangeEvent",
    "ChangeListener",
    "CollectionState",
    "Deleted",
    "Inserted",
    "MutationError",
    "PendingMutation",
    "SessionClosedError",
    "SmartmarksError",
    "Snapshot",
    "StoreError",
    "SubscriptionError",
    "ValidationError",
]
