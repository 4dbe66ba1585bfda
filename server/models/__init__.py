"""Models package for the Spiller server."""

from .events import EventType

__all__ = [
    "EventType",
]
