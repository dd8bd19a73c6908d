"""In-process event store."""

from typing import List, Optional

from ..models import DisputeEvent
from .base import EventStore, DEFAULT_CAPACITY


class InMemoryEventStore(EventStore):
    """Event store kept in process memory.

    Used on its own for tests and local runs, and as the cache tier behind
    ``FallbackEventStore``. Nothing survives a restart.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        records: Optional[List[DisputeEvent]] = None,
    ):
        super().__init__(capacity=capacity)
        self._records: List[DisputeEvent] = [
            r.model_copy(deep=True) for r in (records or [])
        ]

    async def read_records(self) -> List[DisputeEvent]:
        return [r.model_copy(deep=True) for r in self._records]

    async def write_records(self, records: List[DisputeEvent]) -> None:
        self._records = [r.model_copy(deep=True) for r in records]
