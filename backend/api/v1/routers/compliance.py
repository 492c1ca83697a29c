"""
Compliance Router — scheduler status and the latest tick result.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_engine
from compliance.engine import ComplianceEngine

router = APIRouter(prefix="/api/v1/compliance", tags=["compliance"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class SchedulerStatus(BaseModel):
    state: str
    last_check_time: str | None
    next_check_time: str | None
    interval_minutes: float
    tick_count: int
    error_count: int
    last_error: str | None
    dropped_results: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/status", response_model=SchedulerStatus)
async def get_scheduler_status(engine: ComplianceEngine = Depends(get_engine)):
    """Last/next check time and tick counters for dashboard display."""
    return engine.scheduler.status()


@router.get("/latest")
async def get_latest_result(engine: ComplianceEngine = Depends(get_engine)):
    """Most recent tick bundle."""
    bundle = engine.latest_result
    if bundle is None:
        raise HTTPException(status_code=404, detail="No compliance check has completed yet")
    return bundle.to_dict()
