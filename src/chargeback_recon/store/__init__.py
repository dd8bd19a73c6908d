"""Dispute event store."""

from .base import (
    EventStore,
    StoreUnavailableError,
    DisputeNotFoundError,
    DEFAULT_CAPACITY,
    apply_capacity,
    sort_newest_first,
)
from .memory import InMemoryEventStore
from .file_store import JsonFileEventStore
from .fallback import FallbackEventStore, merge_newest

__all__ = [
    "EventStore",
    "StoreUnavailableError",
    "DisputeNotFoundError",
    "DEFAULT_CAPACITY",
    "apply_capacity",
    "sort_newest_first",
    "InMemoryEventStore",
    "JsonFileEventStore",
    "FallbackEventStore",
    "merge_newest",
]


def create_event_store(path: str, capacity: int = DEFAULT_CAPACITY) -> EventStore:
    """Durable JSON store with in-memory fallback, as used by the service."""
    return FallbackEventStore(JsonFileEventStore(path, capacity=capacity))
