"""
Test Configuration — Fixtures for a fixed clock, item factories and a
file-backed offline queue store.

The queue store uses a real SQLite file per test so restart durability can be
exercised by reopening the same path.
"""

from datetime import datetime, timedelta, timezone

import pytest

from compliance.models import AuditEntry, EngineSettings, Item
from core.clock import Clock
from offline.queue import OfflineMutationQueue
from offline.store import QueueStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str = "item-1", *, expiry=None, days: float | None = None, **kwargs) -> Item:
    """Item whose expiry is ``days`` from NOW (or an explicit ``expiry``)."""
    if expiry is None and days is not None:
        expiry = NOW + timedelta(days=days)
    kwargs.setdefault("name", f"Product {item_id}")
    kwargs.setdefault("quantity", 10)
    return Item(id=item_id, expiry=expiry, **kwargs)


def removal(item_id: str, at: datetime) -> AuditEntry:
    return AuditEntry(item_id=item_id, action="removed", timestamp=at)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fixed_clock() -> Clock:
    return Clock("UTC", now_fn=lambda: NOW)


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(warning_days=3, timezone="UTC", sla_threshold_minutes=30)


@pytest.fixture
def queue_db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'offline_queue.db'}"


@pytest.fixture
async def queue_store(queue_db_url):
    store = await QueueStore.open(queue_db_url, queue_name="store-001")
    yield store
    await store.close()


@pytest.fixture
async def offline_queue(queue_store):
    return OfflineMutationQueue(queue_store)
