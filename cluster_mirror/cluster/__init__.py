"""Clients for the remote cluster consumed by the mirror."""

from .api import ClusterApi, EventType, ListResult, WatchEvent

__all__ = [
    "ClusterApi",
    "EventType",
    "ListResult",
    "WatchEvent",
]
