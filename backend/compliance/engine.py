"""
Compliance Engine — one instance per tenant.

Owns its scheduler (timer, last/next check) and its offline queue; nothing is
held in module-level state, so several engines can run side by side.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from compliance.models import AuditEntry, EngineSettings, Item, ResultBundle
from compliance.source import ComplianceSource, StaticSource
from core.clock import Clock
from offline.queue import DrainResult, OfflineMutationQueue
from workers.scheduler import ComplianceScheduler, ErrorCallback, ResultCallback


class ComplianceEngine:
    def __init__(
        self,
        source: ComplianceSource,
        queue: OfflineMutationQueue | None = None,
        *,
        account_id: str = "default",
        interval_minutes: float | None = None,
        clock: Clock | None = None,
    ):
        self.account_id = account_id
        self.source = source
        self.queue = queue
        self.scheduler = ComplianceScheduler(source, interval_minutes=interval_minutes, clock=clock)

    @classmethod
    def from_snapshot(
        cls,
        items: Iterable[Item | Mapping[str, Any]],
        settings: EngineSettings | Mapping[str, Any] | None = None,
        audit_entries: Iterable[AuditEntry | Mapping[str, Any]] = (),
        **kwargs,
    ) -> ComplianceEngine:
        return cls(StaticSource(items, settings, audit_entries), **kwargs)

    @property
    def latest_result(self) -> ResultBundle | None:
        return self.scheduler.latest_result

    async def start(
        self,
        on_result: ResultCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> ResultBundle | None:
        return await self.scheduler.start(on_result, on_error)

    def stop(self) -> None:
        self.scheduler.stop()

    async def enqueue(self, action: str, payload: Any) -> int:
        if self.queue is None:
            raise RuntimeError("engine has no offline queue")
        return await self.queue.enqueue(action, payload)

    async def set_online(self, online: bool) -> DrainResult | None:
        if self.queue is None:
            return None
        return await self.queue.set_online(online)

    async def status(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "scheduler": self.scheduler.status(),
            "queue": await self.queue.status() if self.queue is not None else None,
        }
