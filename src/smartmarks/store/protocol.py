"""Contract consumed from the remote bookmark store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from smartmarks.collection.models import Bookmark, ChangeEvent

EventCallback = Callable[[ChangeEvent], None]


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Opaque token returned by :meth:`RemoteStoreClient.subscribe`.

    Attributes:
        key: Store-specific identifier of the subscription.
        owner_id: Owner scope the subscription is filtered to.
    """

    key: str
    owner_id: str


class RemoteStoreClient(Protocol):
    """Behavioral contract for owner-partitioned bookmark storage.

    Implementations raise any exception on failure; callers wrap them.
    Notifications for one owner must be delivered in commit order.
    """

    def list(self, owner_id: str) -> list[Bookmark]:
        """Return the owner's bookmarks, newest first."""
        ...

    def create(self, owner_id: str, title: str, url: str) -> Bookmark:
        """Persist a bookmark and return it with its id and timestamp."""
        ...

    def delete(self, owner_id: str, item_id: str) -> None:
        """Remove the owner's bookmark with ``item_id``."""
        ...

    def subscribe(self, owner_id: str, callback: EventCallback) -> SubscriptionHandle:
        """Deliver change events for ``owner_id`` rows to ``callback``."""
        ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery for ``handle``."""
        ...


__all__ = ["EventCallback", "RemoteStoreClient", "SubscriptionHandle"]
