"""Durable event store backed by a single JSON document on disk."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List

from filelock import FileLock, Timeout
from pydantic import ValidationError

from ..models import DisputeEvent
from .base import EventStore, StoreUnavailableError, DEFAULT_CAPACITY

logger = logging.getLogger(__name__)


class JsonFileEventStore(EventStore):
    """Event store persisted as one JSON array, rewritten atomically.

    A ``FileLock`` next to the document serialises readers and writers across
    processes; within a process the base class lock serialises writers. Writes
    go to a temporary file in the same directory and are moved into place
    with ``os.replace``.
    """

    def __init__(
        self,
        path: str,
        capacity: int = DEFAULT_CAPACITY,
        lock_timeout: float = 5.0,
    ):
        super().__init__(capacity=capacity)
        self.path = Path(path)
        self.lock_timeout = lock_timeout

    @property
    def lock_path(self) -> str:
        return f"{self.path}.lock"

    def _read_sync(self) -> List[DisputeEvent]:
        lock = FileLock(self.lock_path, timeout=self.lock_timeout)
        with lock:
            if not self.path.exists():
                return []
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        if not isinstance(raw, list):
            raise StoreUnavailableError(f"{self.path} does not contain a JSON array")
        return [DisputeEvent.model_validate(item) for item in raw]

    def _write_sync(self, records: List[DisputeEvent]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        lock = FileLock(self.lock_path, timeout=self.lock_timeout)
        with lock:
            fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp, self.path)
            except Exception:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise

    async def read_records(self) -> List[DisputeEvent]:
        try:
            return await asyncio.to_thread(self._read_sync)
        except (OSError, Timeout, json.JSONDecodeError, ValidationError) as e:
            raise StoreUnavailableError(f"Failed to read {self.path}: {e}") from e

    async def write_records(self, records: List[DisputeEvent]) -> None:
        try:
            await asyncio.to_thread(self._write_sync, records)
        except (OSError, Timeout) as e:
            raise StoreUnavailableError(f"Failed to write {self.path}: {e}") from e
        logger.debug(f"Wrote {len(records)} dispute(s) to {self.path}")
