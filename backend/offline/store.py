"""
Offline Queue Store — durable persistence for queued mutations.

Every write commits immediately so that queue state survives a process
restart between enqueue and drain. Rows are scoped by ``queue_name`` so several
tenants can share one database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from db.models import OfflineMutation, OfflineSyncState
from db.session import build_engine, build_session_factory, get_engine, init_models
from offline.mutations import QueuedMutation, load_payload


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; everything is written as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_domain(row: OfflineMutation) -> QueuedMutation:
    return QueuedMutation(
        id=row.mutation_id,
        sequence=row.sequence,
        action=row.action,
        payload=load_payload(row.payload),
        enqueued_at=_aware(row.enqueued_at),
        synced=bool(row.synced),
        synced_at=_aware(row.synced_at),
    )


class QueueStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_name: str = "default",
        engine: AsyncEngine | None = None,
    ):
        self._session_factory = session_factory
        self.queue_name = queue_name
        self._engine = engine

    @classmethod
    async def open(
        cls,
        database_url: str | None = None,
        queue_name: str = "default",
    ) -> QueueStore:
        """Connect (creating tables if needed). Uses the configured database when no URL is given."""
        engine = build_engine(database_url) if database_url else get_engine()
        await init_models(engine)
        owned = engine if database_url else None
        return cls(build_session_factory(engine), queue_name=queue_name, engine=owned)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # ── Writes ─────────────────────────────────────────────────────────

    async def append(self, action: str, payload: dict[str, Any], enqueued_at: datetime) -> QueuedMutation:
        async with self._session_factory() as db:
            row = OfflineMutation(
                queue_name=self.queue_name,
                action=action,
                payload=payload,
                enqueued_at=enqueued_at,
                synced=False,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _to_domain(row)

    async def mark_synced(self, mutation: QueuedMutation, synced_at: datetime) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(OfflineMutation)
                .where(
                    OfflineMutation.queue_name == self.queue_name,
                    OfflineMutation.mutation_id == mutation.id,
                )
                .values(synced=True, synced_at=synced_at)
            )
            await db.commit()

    async def prune_synced(self) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(OfflineMutation).where(
                    OfflineMutation.queue_name == self.queue_name,
                    OfflineMutation.synced.is_(True),
                )
            )
            await db.commit()
            return int(result.rowcount or 0)

    async def set_last_sync_time(self, value: datetime) -> None:
        async with self._session_factory() as db:
            state = await db.get(OfflineSyncState, self.queue_name)
            if state is None:
                db.add(OfflineSyncState(queue_name=self.queue_name, last_sync_time=value))
            else:
                state.last_sync_time = value
            await db.commit()

    # ── Reads ──────────────────────────────────────────────────────────

    async def list_pending(self) -> list[QueuedMutation]:
        """Unsynced mutations in enqueue order."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(OfflineMutation)
                .where(
                    OfflineMutation.queue_name == self.queue_name,
                    OfflineMutation.synced.is_(False),
                )
                .order_by(OfflineMutation.sequence)
            )
            return [_to_domain(row) for row in result.scalars().all()]

    async def count_pending(self) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count(OfflineMutation.sequence)).where(
                    OfflineMutation.queue_name == self.queue_name,
                    OfflineMutation.synced.is_(False),
                )
            )
            return int(result.scalar() or 0)

    async def count_all(self) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count(OfflineMutation.sequence)).where(OfflineMutation.queue_name == self.queue_name)
            )
            return int(result.scalar() or 0)

    async def get_last_sync_time(self) -> datetime | None:
        async with self._session_factory() as db:
            state = await db.get(OfflineSyncState, self.queue_name)
            return _aware(state.last_sync_time) if state else None
