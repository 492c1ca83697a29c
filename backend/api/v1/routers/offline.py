"""
Offline Router — queue status, mutation intake and connectivity signals.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_queue
from core.exceptions import InvalidMutationError
from offline.queue import OfflineMutationQueue

router = APIRouter(prefix="/api/v1/offline", tags=["offline"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class QueueStatus(BaseModel):
    is_online: bool
    pending_count: int
    last_sync_time: str | None


class MutationCreate(BaseModel):
    action: str
    payload: dict[str, Any]


class MutationAccepted(BaseModel):
    queue_length: int


class ConnectivityUpdate(BaseModel):
    online: bool


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/status", response_model=QueueStatus)
async def get_queue_status(queue: OfflineMutationQueue = Depends(get_queue)):
    return await queue.status()


@router.post("/mutations", response_model=MutationAccepted, status_code=201)
async def enqueue_mutation(body: MutationCreate, queue: OfflineMutationQueue = Depends(get_queue)):
    try:
        length = await queue.enqueue(body.action, body.payload)
    except InvalidMutationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"queue_length": length}


@router.post("/connectivity")
async def update_connectivity(body: ConnectivityUpdate, queue: OfflineMutationQueue = Depends(get_queue)):
    """Record an online/offline transition; returns the drain result when one ran."""
    result = await queue.set_online(body.online)
    return {
        "is_online": queue.is_online,
        "drain": result.to_dict() if result is not None else None,
    }
