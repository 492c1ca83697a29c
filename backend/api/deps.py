"""
ShelfGuard API Dependencies

The app is built around one engine instance, stored on ``app.state``.
"""

from fastapi import HTTPException, Request, status

from compliance.engine import ComplianceEngine
from offline.queue import OfflineMutationQueue


def get_engine(request: Request) -> ComplianceEngine:
    return request.app.state.engine


def get_queue(request: Request) -> OfflineMutationQueue:
    engine: ComplianceEngine = request.app.state.engine
    if engine.queue is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Offline queue not configured",
        )
    return engine.queue
