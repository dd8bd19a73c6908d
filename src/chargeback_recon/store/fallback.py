"""Two-tier event store: durable primary with an in-process fallback.

Durability under a failing primary is best-effort. While the primary is
unavailable, writes land only in the in-process cache and are lost if the
process exits before the primary recovers. The next successful write flushes
the merged state (primary contents plus everything cached meanwhile).
"""

import logging
from typing import Dict, List, Optional

from ..models import DisputeEvent
from .base import EventStore, StoreUnavailableError, apply_capacity
from .memory import InMemoryEventStore

logger = logging.getLogger(__name__)


def merge_newest(
    primary: List[DisputeEvent],
    cached: List[DisputeEvent],
) -> List[DisputeEvent]:
    """Union of two collections by ID, keeping the most recently updated copy."""
    merged: Dict[str, DisputeEvent] = {r.id: r for r in primary}
    for record in cached:
        current = merged.get(record.id)
        if current is None or record.updated_at >= current.updated_at:
            merged[record.id] = record
    return list(merged.values())


class FallbackEventStore(EventStore):
    """Decorates a durable store with an in-memory cache tier."""

    def __init__(
        self,
        primary: EventStore,
        cache: Optional[InMemoryEventStore] = None,
    ):
        super().__init__(capacity=primary.capacity)
        self.primary = primary
        self.cache = cache or InMemoryEventStore(capacity=primary.capacity)
        self._dirty = False
        self._unread = False

    @property
    def degraded(self) -> bool:
        """True while the cache holds writes the primary has not seen."""
        return self._dirty

    async def read_records(self) -> List[DisputeEvent]:
        try:
            records = await self.primary.read_records()
        except StoreUnavailableError as e:
            logger.warning(f"Primary event store unreadable, serving cached records: {e}")
            self._unread = True
            return await self.cache.read_records()

        self._unread = False
        if self._dirty:
            cached = await self.cache.read_records()
            records = apply_capacity(merge_newest(records, cached), self.capacity)

        await self.cache.write_records(records)
        return records

    async def write_records(self, records: List[DisputeEvent]) -> None:
        await self.cache.write_records(records)
        try:
            if self._unread:
                # Never overwrite a primary whose contents were not read.
                on_disk = await self.primary.read_records()
                records = apply_capacity(merge_newest(on_disk, records), self.capacity)
                await self.cache.write_records(records)
                self._unread = False
            await self.primary.write_records(records)
        except StoreUnavailableError as e:
            if not self._dirty:
                logger.warning(
                    f"Primary event store unwritable, keeping {len(records)} "
                    f"record(s) in process memory only: {e}"
                )
            self._dirty = True
            return

        if self._dirty:
            logger.info("Primary event store recovered; cached records flushed")
            self._dirty = False
