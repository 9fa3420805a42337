"""Mutation gateway, subscription manager, and session wiring."""

from .gateway import MutationGateway
from .session import BookmarkSession
from .subscription import EventHandler, SubscriptionManager

__all__ = ["BookmarkSession", "EventHandler", "MutationGateway", "SubscriptionManager"]
