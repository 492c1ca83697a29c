"""
Tests for the per-tenant ComplianceEngine facade.
"""

import pytest

from compliance.engine import ComplianceEngine
from compliance.models import EngineSettings
from offline.queue import OfflineMutationQueue
from tests.conftest import make_item


@pytest.mark.asyncio
class TestComplianceEngine:
    async def test_instances_are_independent(self, fixed_clock):
        strict = ComplianceEngine.from_snapshot(
            [make_item(days=5)], EngineSettings(warning_days=7), account_id="a", interval_minutes=15, clock=fixed_clock
        )
        relaxed = ComplianceEngine.from_snapshot(
            [make_item(days=5)], EngineSettings(warning_days=3), account_id="b", interval_minutes=15, clock=fixed_clock
        )
        try:
            first = await strict.start()
            second = await relaxed.start()
            assert len(first.alerts) == 1
            assert second.alerts == []
            strict.stop()
            assert relaxed.scheduler.is_running
        finally:
            strict.stop()
            relaxed.stop()

    async def test_status_without_queue(self, fixed_clock):
        engine = ComplianceEngine.from_snapshot([], account_id="acme", interval_minutes=15, clock=fixed_clock)
        status = await engine.status()
        assert status["account_id"] == "acme"
        assert status["queue"] is None
        assert status["scheduler"]["state"] == "stopped"

    async def test_enqueue_requires_queue(self, fixed_clock):
        engine = ComplianceEngine.from_snapshot([], interval_minutes=15, clock=fixed_clock)
        with pytest.raises(RuntimeError):
            await engine.enqueue("remove", {"item_id": "1"})
        assert await engine.set_online(True) is None

    async def test_queue_passthrough(self, queue_store, fixed_clock):
        applied = []
        queue = OfflineMutationQueue(queue_store, lambda m: applied.append(m.action), online=False)
        engine = ComplianceEngine.from_snapshot([], queue=queue, interval_minutes=15, clock=fixed_clock)

        assert await engine.enqueue("remove", {"item_id": "1"}) == 1
        result = await engine.set_online(True)
        assert result.synced_count == 1
        assert applied == ["remove"]
        assert (await engine.status())["queue"]["pending_count"] == 0
