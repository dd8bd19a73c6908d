"""Event store interface for dispute records.

The store holds a bounded collection of ``DisputeEvent`` keyed by ``id``.
Backends only know how to read and write the whole collection; upsert,
eviction, ordering and write serialisation live here so every backend
behaves the same way.

Merge discipline: callers that change an existing dispute must go through
``update()`` (or ``put(..., merge=...)``), which reads the current record,
applies the caller's changes and writes back the full record while holding
the store's write lock. Writing a whole record built from a stale read would
silently drop fields another request has set since.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

from ..models import DisputeEvent, utcnow

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100

Mutator = Callable[[DisputeEvent], DisputeEvent]
Merger = Callable[[DisputeEvent, DisputeEvent], DisputeEvent]


class StoreUnavailableError(Exception):
    """The backing medium could not be read or written."""


class DisputeNotFoundError(LookupError):
    """No dispute with the given ID is stored."""

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"Dispute not found: {dispute_id}")


def sort_newest_first(records: Iterable[DisputeEvent]) -> List[DisputeEvent]:
    """Reverse-chronological order by ``created_at``."""
    return sorted(records, key=lambda r: r.created_at, reverse=True)


def apply_capacity(
    records: List[DisputeEvent],
    capacity: int,
    keep_id: Optional[str] = None,
) -> List[DisputeEvent]:
    """Evict the oldest records (by ``created_at``) beyond ``capacity``.

    The record identified by ``keep_id`` is never evicted, so a freshly
    written record survives even when it carries the oldest timestamp.
    """
    ordered = sort_newest_first(records)
    if len(ordered) <= capacity:
        return ordered

    overflow = len(ordered) - capacity
    evicted: List[str] = []
    for record in reversed(ordered):
        if overflow == 0:
            break
        if record.id == keep_id:
            continue
        evicted.append(record.id)
        overflow -= 1

    if evicted:
        logger.info(f"Evicting {len(evicted)} dispute(s) over capacity: {', '.join(evicted)}")
    evicted_ids = set(evicted)
    return [r for r in ordered if r.id not in evicted_ids]


class EventStore(ABC):
    """Bounded, concurrency-safe upsert log of dispute records."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = asyncio.Lock()

    @abstractmethod
    async def read_records(self) -> List[DisputeEvent]:
        """Read the whole collection from the backing medium.

        Raises:
            StoreUnavailableError: If the medium cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    async def write_records(self, records: List[DisputeEvent]) -> None:
        """Replace the whole collection on the backing medium.

        Raises:
            StoreUnavailableError: If the medium cannot be written.
        """
        raise NotImplementedError

    async def get_all(self) -> List[DisputeEvent]:
        """All stored disputes, newest first."""
        async with self._lock:
            records = await self.read_records()
        return sort_newest_first(records)

    async def get(self, dispute_id: str) -> Optional[DisputeEvent]:
        for record in await self.get_all():
            if record.id == dispute_id:
                return record
        return None

    async def put(
        self,
        record: DisputeEvent,
        merge: Optional[Merger] = None,
    ) -> DisputeEvent:
        """Insert or replace a dispute keyed by ``id``.

        Args:
            record: The incoming record.
            merge: Optional ``(existing, incoming) -> stored`` function applied
                when a record with the same ID already exists. Without it the
                incoming record replaces the existing one outright.

        Returns:
            The record as stored.
        """
        async with self._lock:
            records = await self.read_records()
            by_id: Dict[str, DisputeEvent] = {r.id: r for r in records}
            existing = by_id.get(record.id)

            stored = record
            if existing is not None and merge is not None:
                stored = merge(existing.model_copy(deep=True), record)
            by_id[stored.id] = stored

            await self.write_records(
                apply_capacity(list(by_id.values()), self.capacity, keep_id=stored.id)
            )

        action = "Replaced" if existing is not None else "Stored"
        logger.info(f"{action} dispute {stored.id}")
        return stored

    async def update(self, dispute_id: str, mutate: Mutator) -> DisputeEvent:
        """Read-merge-write a single dispute under the write lock.

        ``mutate`` receives a deep copy of the current record and returns the
        record to store; it should change only the fields it owns.

        Raises:
            DisputeNotFoundError: If no dispute with ``dispute_id`` exists.
        """
        async with self._lock:
            records = await self.read_records()
            by_id: Dict[str, DisputeEvent] = {r.id: r for r in records}
            current = by_id.get(dispute_id)
            if current is None:
                raise DisputeNotFoundError(dispute_id)

            updated = mutate(current.model_copy(deep=True))
            if updated.id != dispute_id:
                raise ValueError("update() must not change the dispute ID")
            updated.updated_at = utcnow()
            by_id[dispute_id] = updated

            await self.write_records(
                apply_capacity(list(by_id.values()), self.capacity, keep_id=dispute_id)
            )

        logger.debug(f"Updated dispute {dispute_id}")
        return updated
