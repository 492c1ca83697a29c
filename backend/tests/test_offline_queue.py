"""
Tests for the Offline Mutation Queue — durable FIFO buffering and replay.

Covers:
  - Enqueue persistence and FIFO drain order
  - Partial failure: failed entries stay pending, synced ones never replay
  - Restart durability (reopen the same SQLite file)
  - Connectivity transitions
"""

import asyncio
from datetime import timedelta

import pytest

from core.exceptions import InvalidMutationError
from offline.mutations import AddMutation, RemoveMutation
from offline.queue import OfflineMutationQueue
from offline.store import QueueStore
from tests.conftest import NOW


class Recorder:
    """apply_fn that records calls and fails for chosen item ids."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.fail_ids = fail_ids or set()
        self.applied: list[str] = []

    async def __call__(self, mutation):
        key = _key(mutation)
        if key in self.fail_ids:
            raise ConnectionError(f"server rejected {key}")
        self.applied.append(key)


def _key(mutation) -> str:
    payload = mutation.payload
    return payload.item_id if isinstance(payload, RemoveMutation) else payload.item.name


# ── Enqueue ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestEnqueue:
    async def test_returns_pending_count(self, offline_queue):
        assert await offline_queue.enqueue("add", {"name": "Milk", "expiry": "2026-03-12"}) == 1
        assert await offline_queue.enqueue("remove", {"item_id": "42"}) == 2

    async def test_payload_validated(self, offline_queue):
        with pytest.raises(InvalidMutationError):
            await offline_queue.enqueue("add", {"quantity": 3})
        with pytest.raises(InvalidMutationError):
            await offline_queue.enqueue("archive", {"item_id": "1"})
        with pytest.raises(InvalidMutationError):
            await offline_queue.enqueue("update", {"name": "Bread"})
        assert await offline_queue.store.count_pending() == 0

    async def test_persisted_fields(self, offline_queue):
        await offline_queue.enqueue("update", {"item": {"id": "7", "name": "Bread", "quantity": 2}})
        [queued] = await offline_queue.store.list_pending()
        assert queued.action == "update"
        assert queued.payload.item.id == "7"
        assert queued.synced is False
        assert queued.enqueued_at.tzinfo is not None

    async def test_concurrent_enqueues_all_kept(self, offline_queue):
        await asyncio.gather(*(offline_queue.enqueue("remove", {"item_id": str(i)}) for i in range(20)))
        assert await offline_queue.store.count_pending() == 20


# ── Drain ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestDrain:
    async def test_fifo_order(self, offline_queue):
        for name in ("first", "second", "third"):
            await offline_queue.enqueue("add", {"name": name})
        recorder = Recorder()
        result = await offline_queue.drain(recorder)
        assert result.success
        assert result.synced_count == 3
        assert recorder.applied == ["first", "second", "third"]
        assert await offline_queue.store.count_pending() == 0

    async def test_partial_failure_keeps_failed_pending(self, offline_queue):
        for name in ("a", "b", "c", "d"):
            await offline_queue.enqueue("add", {"name": name})
        result = await offline_queue.drain(Recorder(fail_ids={"b", "d"}))

        assert not result.success
        assert result.synced_count == 2
        assert result.failed_count == 2
        assert await offline_queue.store.count_pending() == result.failed_count
        assert [e.mutation.action for e in result.errors] == ["add", "add"]
        assert "server rejected b" in result.errors[0].error

    async def test_synced_never_replayed(self, offline_queue):
        for name in ("a", "b"):
            await offline_queue.enqueue("add", {"name": name})
        await offline_queue.drain(Recorder(fail_ids={"b"}))

        retry = Recorder()
        result = await offline_queue.drain(retry)
        assert retry.applied == ["b"]
        assert result.success

    async def test_synced_rows_pruned(self, offline_queue):
        await offline_queue.enqueue("remove", {"item_id": "1"})
        await offline_queue.drain(Recorder())
        assert await offline_queue.store.count_all() == 0

    async def test_empty_queue(self, offline_queue):
        result = await offline_queue.drain(Recorder())
        assert result.success
        assert result.reason == "empty"
        assert result.synced_count == 0

    async def test_offline_drain_refused(self, queue_store):
        queue = OfflineMutationQueue(queue_store, Recorder(), online=False)
        await queue.enqueue("remove", {"item_id": "1"})
        result = await queue.drain()
        assert not result.success
        assert result.reason == "offline"
        assert await queue_store.count_pending() == 1

    async def test_no_apply_fn(self, offline_queue):
        with pytest.raises(ValueError):
            await offline_queue.drain()

    async def test_sync_apply_fn_supported(self, offline_queue):
        seen = []
        await offline_queue.enqueue("remove", {"item_id": "9"})
        result = await offline_queue.drain(lambda m: seen.append(m.payload.item_id))
        assert result.success
        assert seen == ["9"]

    async def test_last_sync_time_recorded(self, queue_store):
        queue = OfflineMutationQueue(queue_store, now_fn=lambda: NOW)
        await queue.enqueue("remove", {"item_id": "1"})
        await queue.drain(Recorder())
        assert await queue_store.get_last_sync_time() == NOW

    async def test_last_sync_untouched_when_all_fail(self, queue_store):
        queue = OfflineMutationQueue(queue_store, now_fn=lambda: NOW)
        await queue.enqueue("remove", {"item_id": "1"})
        await queue.drain(Recorder(fail_ids={"1"}))
        assert await queue_store.get_last_sync_time() is None


# ── Durability ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestDurability:
    async def test_pending_survives_restart(self, queue_db_url):
        store = await QueueStore.open(queue_db_url, queue_name="store-001")
        queue = OfflineMutationQueue(store)
        await queue.enqueue("add", AddMutation(item={"name": "Eggs", "quantity": 12}))
        await queue.enqueue("remove", {"item_id": "3", "removed_at": (NOW - timedelta(minutes=5)).isoformat()})
        await store.close()

        reopened = await QueueStore.open(queue_db_url, queue_name="store-001")
        try:
            recorder = Recorder()
            result = await OfflineMutationQueue(reopened, recorder).drain()
            assert recorder.applied == ["Eggs", "3"]
            assert result.synced_count == 2
        finally:
            await reopened.close()

    async def test_failed_entry_retried_after_restart(self, queue_db_url):
        store = await QueueStore.open(queue_db_url, queue_name="store-001")
        queue = OfflineMutationQueue(store)
        await queue.enqueue("add", {"name": "Yogurt"})
        await queue.enqueue("update", {"id": "yog-1", "name": "Yogurt v2"})
        first = await queue.drain(Recorder(fail_ids={"Yogurt"}))
        assert first.failed_count == 1
        await store.close()

        # The failed add is retried after restart; the synced update never replays
        reopened = await QueueStore.open(queue_db_url, queue_name="store-001")
        try:
            recorder = Recorder()
            await OfflineMutationQueue(reopened, recorder).drain()
            assert recorder.applied == ["Yogurt"]
        finally:
            await reopened.close()

    async def test_add_then_update_replayed_in_order_across_restarts(self, queue_db_url):
        store = await QueueStore.open(queue_db_url, queue_name="store-002")
        try:
            queue = OfflineMutationQueue(store)
            await queue.enqueue("add", {"name": "Kefir"})
            await queue.enqueue("update", {"id": "kef-1", "name": "Kefir v2"})
        finally:
            await store.close()
        reopened = await QueueStore.open(queue_db_url, queue_name="store-002")
        try:
            actions = []
            await OfflineMutationQueue(reopened).drain(lambda m: actions.append(m.action))
            assert actions == ["add", "update"]
        finally:
            await reopened.close()

    async def test_queues_isolated_by_name(self, queue_db_url, queue_store):
        other = await QueueStore.open(queue_db_url, queue_name="store-002")
        try:
            await OfflineMutationQueue(queue_store).enqueue("remove", {"item_id": "1"})
            assert await other.count_pending() == 0
        finally:
            await other.close()


# ── Connectivity ───────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestConnectivity:
    async def test_reconnect_triggers_drain(self, queue_store):
        recorder = Recorder()
        queue = OfflineMutationQueue(queue_store, recorder, online=False)
        await queue.enqueue("add", {"name": "Cheese"})
        assert await queue.set_online(False) is None

        result = await queue.set_online(True)
        assert result is not None and result.synced_count == 1
        assert recorder.applied == ["Cheese"]

    async def test_repeated_online_signal_no_drain(self, queue_store):
        recorder = Recorder()
        queue = OfflineMutationQueue(queue_store, recorder, online=True)
        await queue.enqueue("add", {"name": "Cheese"})
        assert await queue.set_online(True) is None
        assert recorder.applied == []

    async def test_reconnect_without_apply_fn(self, queue_store):
        queue = OfflineMutationQueue(queue_store, online=False)
        await queue.enqueue("remove", {"item_id": "1"})
        assert await queue.set_online(True) is None
        assert queue.is_online

    async def test_status(self, queue_store):
        queue = OfflineMutationQueue(queue_store, online=False, now_fn=lambda: NOW)
        await queue.enqueue("remove", {"item_id": "1"})
        status = await queue.status()
        assert status == {"is_online": False, "pending_count": 1, "last_sync_time": None}

        queue.apply_fn = Recorder()
        await queue.set_online(True)
        status = await queue.status()
        assert status["pending_count"] == 0
        assert status["last_sync_time"] == NOW.isoformat()
