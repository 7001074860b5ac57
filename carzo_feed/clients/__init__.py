"""Shared external API clients."""

from carzo_feed.clients.feed import FeedClient

__all__ = [
    "FeedClient",
]
