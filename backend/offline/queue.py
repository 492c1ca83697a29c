"""
Offline Mutation Queue — buffer actions taken while disconnected, replay on reconnect.

Per mutation: enqueued → synced (terminal), retried on every drain until it succeeds.

  - enqueue(): validated, persisted immediately, FIFO sequence assigned by the store
  - drain():   online only; replays unsynced entries in enqueue order, marks each
               success synced, records failures and keeps going; prunes synced rows
  - set_online(): offline → online transition triggers a drain

Delivery is at-least-once: a drain can fail after the remote call succeeded but
before the synced flag is written, so ``apply_fn`` must tolerate replays.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from offline.mutations import QueuedMutation, parse_payload
from offline.store import QueueStore

logger = structlog.get_logger()

ApplyFn = Callable[[QueuedMutation], Any]


@dataclass
class DrainError:
    mutation: QueuedMutation
    error: str


@dataclass
class DrainResult:
    success: bool
    synced_count: int = 0
    errors: list[DrainError] = field(default_factory=list)
    reason: str | None = None

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "synced_count": self.synced_count,
            "failed_count": self.failed_count,
            "errors": [
                {"mutation_id": str(e.mutation.id), "action": e.mutation.action, "error": e.error}
                for e in self.errors
            ],
            "reason": self.reason,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OfflineMutationQueue:
    """
    Enqueue and drain are serialized by one asyncio.Lock per queue.
    """

    def __init__(
        self,
        store: QueueStore,
        apply_fn: ApplyFn | None = None,
        *,
        online: bool = True,
        now_fn: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.apply_fn = apply_fn
        self.is_online = online
        self._now = now_fn
        self._lock = asyncio.Lock()

    async def enqueue(self, action: str, payload: Any) -> int:
        """Persist a new mutation. Returns the number of unsynced mutations."""
        mutation = parse_payload(action, payload)
        async with self._lock:
            queued = await self.store.append(action, mutation.model_dump(mode="json"), self._now())
            pending = await self.store.count_pending()
        logger.info(
            "offline_queue.enqueued",
            queue=self.store.queue_name,
            mutation_id=str(queued.id),
            action=action,
            pending=pending,
        )
        return pending

    async def drain(self, apply_fn: ApplyFn | None = None) -> DrainResult:
        """Replay every unsynced mutation in FIFO order through ``apply_fn``."""
        apply_fn = apply_fn or self.apply_fn
        if apply_fn is None:
            raise ValueError("drain() needs an apply_fn")
        if not self.is_online:
            return DrainResult(success=False, reason="offline")

        async with self._lock:
            pending = await self.store.list_pending()
            if not pending:
                return DrainResult(success=True, reason="empty")

            synced = 0
            errors: list[DrainError] = []
            for mutation in pending:
                try:
                    outcome = apply_fn(mutation)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as exc:  # noqa: BLE001
                    errors.append(DrainError(mutation=mutation, error=str(exc)))
                    logger.warning(
                        "offline_queue.sync_failed",
                        queue=self.store.queue_name,
                        mutation_id=str(mutation.id),
                        action=mutation.action,
                        error=str(exc),
                    )
                    continue
                try:
                    await self.store.mark_synced(mutation, self._now())
                except SQLAlchemyError as exc:
                    # Applied remotely but still unsynced locally; replayed next drain
                    errors.append(DrainError(mutation=mutation, error=f"mark_synced failed: {exc}"))
                    logger.error("offline_queue.mark_synced_failed", mutation_id=str(mutation.id), error=str(exc))
                    continue
                synced += 1

            pruned = await self.store.prune_synced()
            if synced:
                await self.store.set_last_sync_time(self._now())

        result = DrainResult(success=not errors, synced_count=synced, errors=errors)
        logger.info(
            "offline_queue.drain_complete",
            queue=self.store.queue_name,
            synced=synced,
            failed=len(errors),
            pruned=pruned,
        )
        return result

    async def set_online(self, online: bool) -> DrainResult | None:
        """
        Record a connectivity signal. Going online drains (when an apply_fn is
        configured) and returns the result; going offline only flips the flag.
        """
        was_online = self.is_online
        self.is_online = online
        if online == was_online:
            return None

        logger.info("offline_queue.connectivity_changed", queue=self.store.queue_name, online=online)
        if online and self.apply_fn is not None:
            return await self.drain()
        return None

    async def status(self) -> dict[str, Any]:
        last_sync = await self.store.get_last_sync_time()
        return {
            "is_online": self.is_online,
            "pending_count": await self.store.count_pending(),
            "last_sync_time": last_sync.isoformat() if last_sync else None,
        }
