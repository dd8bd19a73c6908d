"""Tests for the dispute event store backends."""

import asyncio
import json
from typing import List

import pytest

from chargeback_recon.models import DisputeStatus
from chargeback_recon.store import (
    DisputeNotFoundError,
    FallbackEventStore,
    InMemoryEventStore,
    JsonFileEventStore,
    StoreUnavailableError,
    apply_capacity,
    merge_newest,
)

from helpers import make_dispute


class FlakyStore(InMemoryEventStore):
    """In-memory store whose medium can be switched off."""

    def __init__(self, capacity: int = 100):
        super().__init__(capacity=capacity)
        self.readable = True
        self.writable = True

    async def read_records(self):
        if not self.readable:
            raise StoreUnavailableError("read failed")
        return await super().read_records()

    async def write_records(self, records):
        if not self.writable:
            raise StoreUnavailableError("write failed")
        await super().write_records(records)


def ids(records) -> List[str]:
    return [r.id for r in records]


class TestInMemoryEventStore:
    """Tests for upsert, ordering and capacity."""

    async def test_put_and_get(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1"))

        stored = await store.get("cb_1")
        assert stored is not None
        assert stored.amount_minor_units == 15000
        assert await store.get("missing") is None

    async def test_same_id_replaces(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1", amount_minor_units=100))
        await store.put(make_dispute("cb_1", amount_minor_units=200))

        records = await store.get_all()
        assert len(records) == 1
        assert records[0].amount_minor_units == 200

    async def test_put_with_merge(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1", reason_code="first"))

        def keep_reason(existing, incoming):
            incoming.reason_code = existing.reason_code
            return incoming

        stored = await store.put(make_dispute("cb_1", reason_code="second"), merge=keep_reason)
        assert stored.reason_code == "first"

    async def test_newest_first(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("old", minutes=0))
        await store.put(make_dispute("new", minutes=10))
        await store.put(make_dispute("mid", minutes=5))

        assert ids(await store.get_all()) == ["new", "mid", "old"]

    async def test_capacity_evicts_exactly_the_oldest(self):
        store = InMemoryEventStore(capacity=3)
        for i in range(4):
            await store.put(make_dispute(f"cb_{i}", minutes=i))

        records = await store.get_all()
        assert ids(records) == ["cb_3", "cb_2", "cb_1"]

    async def test_just_written_record_survives_eviction(self):
        """A record older than everything else still survives its own write."""
        store = InMemoryEventStore(capacity=2)
        await store.put(make_dispute("a", minutes=10))
        await store.put(make_dispute("b", minutes=20))
        await store.put(make_dispute("ancient", minutes=-100))

        assert set(ids(await store.get_all())) == {"ancient", "b"}

    async def test_concurrent_puts_evict_one(self):
        store = InMemoryEventStore(capacity=2)
        await store.put(make_dispute("a", minutes=0))
        await store.put(make_dispute("b", minutes=1))

        await asyncio.gather(
            store.put(make_dispute("c", minutes=2)),
            store.put(make_dispute("c", minutes=2)),
        )

        assert ids(await store.get_all()) == ["c", "b"]

    async def test_concurrent_distinct_puts_are_all_applied(self):
        store = InMemoryEventStore(capacity=50)
        await asyncio.gather(*(
            store.put(make_dispute(f"cb_{i}", minutes=i)) for i in range(20)
        ))
        assert len(await store.get_all()) == 20

    async def test_update_merges_under_lock(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1"))

        def add_error(record):
            record.processing_errors.append("x")
            return record

        await asyncio.gather(*(store.update("cb_1", add_error) for _ in range(5)))

        stored = await store.get("cb_1")
        assert stored.processing_errors == ["x"] * 5

    async def test_update_refreshes_updated_at(self):
        store = InMemoryEventStore()
        original = await store.put(make_dispute("cb_1"))

        def advance(record):
            record.status = DisputeStatus.SUBMITTED
            return record

        updated = await store.update("cb_1", advance)
        assert updated.status == DisputeStatus.SUBMITTED
        assert updated.updated_at > original.updated_at

    async def test_update_unknown_raises(self):
        store = InMemoryEventStore()
        with pytest.raises(DisputeNotFoundError):
            await store.update("missing", lambda r: r)

    async def test_update_cannot_change_id(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1"))

        def rename(record):
            record.id = "cb_2"
            return record

        with pytest.raises(ValueError):
            await store.update("cb_1", rename)

    async def test_returned_records_are_copies(self):
        store = InMemoryEventStore()
        await store.put(make_dispute("cb_1"))

        record = await store.get("cb_1")
        record.processing_errors.append("mutated")

        assert (await store.get("cb_1")).processing_errors == []

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryEventStore(capacity=0)


class TestApplyCapacity:
    """Tests for the eviction helper."""

    def test_under_capacity_keeps_everything(self):
        records = [make_dispute(f"cb_{i}", minutes=i) for i in range(3)]
        assert len(apply_capacity(records, 5)) == 3

    def test_keep_id_skips_to_next_oldest(self):
        records = [make_dispute(f"cb_{i}", minutes=i) for i in range(4)]
        kept = apply_capacity(records, 3, keep_id="cb_0")
        assert ids(kept) == ["cb_3", "cb_2", "cb_0"]


class TestJsonFileEventStore:
    """Tests for the durable JSON file backend."""

    async def test_missing_file_reads_empty(self, tmp_path):
        store = JsonFileEventStore(str(tmp_path / "disputes.json"))
        assert await store.get_all() == []

    async def test_survives_new_instance(self, tmp_path):
        path = str(tmp_path / "data" / "disputes.json")
        await JsonFileEventStore(path).put(make_dispute("cb_1", metadata={"pedido": "1001"}))

        reopened = JsonFileEventStore(path)
        stored = await reopened.get("cb_1")
        assert stored is not None
        assert stored.metadata == {"pedido": "1001"}
        assert stored.created_at.tzinfo is not None

    async def test_writes_a_json_array(self, tmp_path):
        path = tmp_path / "disputes.json"
        store = JsonFileEventStore(str(path))
        await store.put(make_dispute("cb_1"))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert isinstance(raw, list)
        assert raw[0]["id"] == "cb_1"

    async def test_capacity_applies_on_disk(self, tmp_path):
        path = tmp_path / "disputes.json"
        store = JsonFileEventStore(str(path), capacity=2)
        for i in range(3):
            await store.put(make_dispute(f"cb_{i}", minutes=i))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert sorted(r["id"] for r in raw) == ["cb_1", "cb_2"]

    async def test_corrupt_file_raises_unavailable(self, tmp_path):
        path = tmp_path / "disputes.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreUnavailableError):
            await JsonFileEventStore(str(path)).get_all()

    async def test_non_array_raises_unavailable(self, tmp_path):
        path = tmp_path / "disputes.json"
        path.write_text('{"id": "cb_1"}', encoding="utf-8")

        with pytest.raises(StoreUnavailableError):
            await JsonFileEventStore(str(path)).get_all()


class TestFallbackEventStore:
    """Tests for degraded operation over a failing primary."""

    async def test_healthy_primary_receives_writes(self):
        primary = FlakyStore()
        store = FallbackEventStore(primary)
        await store.put(make_dispute("cb_1"))

        assert ids(await primary.read_records()) == ["cb_1"]
        assert store.degraded is False

    async def test_unwritable_primary_degrades_to_cache(self):
        primary = FlakyStore()
        store = FallbackEventStore(primary)
        primary.writable = False

        await store.put(make_dispute("cb_1"))

        assert store.degraded is True
        assert (await store.get("cb_1")) is not None
        assert await primary.read_records() == []

    async def test_recovery_flushes_cached_records(self):
        primary = FlakyStore()
        store = FallbackEventStore(primary)
        primary.writable = False
        await store.put(make_dispute("cb_1", minutes=0))

        primary.writable = True
        await store.put(make_dispute("cb_2", minutes=1))

        assert store.degraded is False
        assert sorted(ids(await primary.read_records())) == ["cb_1", "cb_2"]

    async def test_unreadable_primary_serves_cache(self):
        primary = FlakyStore()
        store = FallbackEventStore(primary)
        await store.put(make_dispute("cb_1"))

        primary.readable = False
        assert ids(await store.get_all()) == ["cb_1"]

    async def test_unread_primary_is_merged_not_overwritten(self):
        primary = FlakyStore()
        await primary.write_records([make_dispute("on_disk", minutes=0)])
        store = FallbackEventStore(primary)

        primary.readable = False
        await store.get_all()
        primary.readable = True
        await store.put(make_dispute("cb_new", minutes=5))

        assert sorted(ids(await primary.read_records())) == ["cb_new", "on_disk"]


class TestMergeNewest:
    def test_most_recently_updated_copy_wins(self):
        older = make_dispute("cb_1", reason_code="old")
        newer = make_dispute("cb_1", reason_code="new")
        newer.updated_at = older.updated_at.replace(year=older.updated_at.year + 1)

        merged = merge_newest([newer], [older])
        assert merged[0].reason_code == "new"
