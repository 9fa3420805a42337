"""Error taxonomy for collection synchronization."""

from __future__ import annotations


class SmartmarksError(Exception):
    """Base exception for Smartmarks operations."""


class MutationError(SmartmarksError):
    """Base exception for failed user-initiated mutations."""


class ValidationError(MutationError):
    """Raised when a mutation is rejected before reaching the store."""


class BusyError(MutationError):
    """Raised when an add is requested while another add is in flight."""


class StoreError(MutationError):
    """Raised when the remote store rejects or fails a write.

    Attributes:
        cause: Exception reported by the store client.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class SessionClosedError(MutationError):
    """Raised when a mutation is requested on a closed session."""


class SubscriptionError(SmartmarksError):
    """Raised when the remote change stream cannot be established."""
