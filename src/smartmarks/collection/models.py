"""Data models for bookmarks, change events, and pending mutations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

EventSource = Literal["local", "remote"]
MutationKind = Literal["add", "delete"]
MutationStatus = Literal["pending", "succeeded", "failed"]


class Bookmark(BaseModel):
    """A bookmark row as assigned by the remote store.

    Attributes:
        id: Store-assigned identifier, never reused.
        owner_id: Identity owning the row.
        title: Display title.
        url: Target address; only required to be non-empty.
        created_at: Store-assigned creation timestamp; naive values are read as UTC.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Inserted(BaseModel):
    """Change event announcing a new bookmark."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["inserted"] = "inserted"
    item: Bookmark
    source: EventSource = "remote"


class Deleted(BaseModel):
    """Change event announcing a removed bookmark."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["deleted"] = "deleted"
    item_id: str
    source: EventSource = "remote"


ChangeEvent = Union[Inserted, Deleted]


class PendingMutation(BaseModel):
    """In-flight user write tracked by the mutation gateway.

    Attributes:
        kind: Mutation type.
        payload: Values submitted to the store.
        status: Lifecycle status; ``succeeded`` and ``failed`` are terminal.
    """

    kind: MutationKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: MutationStatus = "pending"

    @property
    def resolved(self) -> bool:
        """Return whether the mutation reached a terminal status."""
        return self.status != "pending"

    def resolve(self, succeeded: bool) -> None:
        """Move the mutation into its terminal status.

        Args:
            succeeded: Whether the store accepted the write.

        Raises:
            RuntimeError: If the mutation was already resolved.
        """
        if self.resolved:
            raise RuntimeError(f"Mutation already resolved as {self.status}.")
        self.status = "succeeded" if succeeded else "failed"


__all__ = [
    "Bookmark",
    "Inserted",
    "Deleted",
    "ChangeEvent",
    "EventSource",
    "MutationKind",
    "MutationStatus",
    "PendingMutation",
]
