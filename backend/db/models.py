"""
ShelfGuard Database Models

Durable state for the offline mutation queue. Item data itself lives with the
host application; the engine only persists what it must replay.

Tables:
  1. offline_mutations   - Buffered user actions awaiting replay (FIFO by sequence)
  2. offline_sync_state  - Last successful drain per queue
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── 1. Offline Mutations ──────────────────────────────────────────────────


class OfflineMutation(Base):
    __tablename__ = "offline_mutations"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    mutation_id = Column(GUID(), nullable=False, unique=True, default=uuid.uuid4)
    queue_name = Column(String(64), nullable=False, default="default")
    action = Column(String(16), nullable=False)
    payload = Column(JSON, nullable=False)
    enqueued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    synced = Column(Boolean, nullable=False, default=False)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("action IN ('add', 'update', 'remove')", name="ck_offline_mutation_action"),
        Index("ix_offline_mutations_queue_pending", "queue_name", "synced", "sequence"),
    )


# ─── 2. Sync State ─────────────────────────────────────────────────────────


class OfflineSyncState(Base):
    __tablename__ = "offline_sync_state"

    queue_name = Column(String(64), primary_key=True)
    last_sync_time = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
