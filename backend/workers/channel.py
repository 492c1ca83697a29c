"""Bounded drop-oldest channel between the scheduler timer and the result consumer."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class ResultChannel(Generic[T]):
    """
    ``publish`` never blocks: when the consumer falls behind, the oldest
    undelivered value is dropped to make room.
    """

    def __init__(self, maxsize: int = 16):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, value: T) -> None:
        while True:
            try:
                self._queue.put_nowait(value)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                self._queue.task_done()
                self.dropped += 1
                logger.warning("scheduler.result_dropped", dropped_total=self.dropped)

    async def receive(self) -> T:
        value = await self._queue.get()
        self._queue.task_done()
        return value

    def qsize(self) -> int:
        return self._queue.qsize()
