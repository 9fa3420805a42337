"""Remote store contract and bundled store implementations."""

from __future__ import annotations

from pathlib import Path

from .file import DEFAULT_STORE_PATH, JsonFileStore, StoreFileError
from .memory import MemoryStore
from .protocol import EventCallback, RemoteStoreClient, SubscriptionHandle


def build_store(backend: str, path: Path | None = None) -> RemoteStoreClient:
    """Construct the store client named by ``backend``.

    Args:
        backend: Either ``file`` or ``memory``.
        path: Store file location for the ``file`` backend.

    Returns:
        RemoteStoreClient: Newly constructed store client.

    Raises:
        ValueError: If ``backend`` is not recognized.
    """
    if backend == "file":
        return JsonFileStore(path)
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown store backend: {backend!r}")


__all__ = [
    "build_store",
    "DEFAULT_STORE_PATH",
    "EventCallback",
    "JsonFileStore",
    "MemoryStore",
    "RemoteStoreClient",
    "StoreFileError",
    "SubscriptionHandle",
]
