"""
Compliance Scheduler — periodic re-evaluation of every tracked item.

State machine: stopped → running → stopped.

  - start(): restart semantics; one immediate evaluation delivered to the
    consumer before the periodic timer is armed.
  - Each tick runs classify → alerts → SLA → risk and publishes the bundle on a
    bounded drop-oldest channel; a dispatcher task hands it to ``on_result`` so
    a slow consumer never delays the timer.
  - Fires on a fixed grid (start + k × interval). A tick that overruns skips
    the missed slots rather than shifting the grid.
  - A failing tick is logged, counted and reported to ``on_error``; the loop
    keeps firing.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from compliance.evaluation import evaluate_tick
from compliance.models import EngineSettings, ResultBundle
from compliance.source import ComplianceSource, coerce_settings, resolve
from core.clock import Clock
from core.config import get_settings
from core.exceptions import ConfigurationError
from workers.channel import ResultChannel

logger = structlog.get_logger()

STOPPED = "stopped"
RUNNING = "running"

ResultCallback = Callable[[ResultBundle], Any]
ErrorCallback = Callable[[BaseException], Any]


class ComplianceScheduler:
    def __init__(
        self,
        source: ComplianceSource,
        *,
        interval_minutes: float | None = None,
        clock: Clock | None = None,
        channel_size: int | None = None,
    ):
        app_settings = get_settings()
        self.source = source
        self.interval_minutes = app_settings.check_interval_minutes if interval_minutes is None else interval_minutes
        self.clock = clock or Clock(app_settings.default_timezone)
        self._channel_size = channel_size or app_settings.result_channel_size

        self.state = STOPPED
        self.last_check_time: datetime | None = None
        self.latest_result: ResultBundle | None = None
        self.tick_count = 0
        self.error_count = 0
        self.last_error: str | None = None

        self._on_result: ResultCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._channel: ResultChannel[ResultBundle] | None = None
        self._timer_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None
        self._evaluating = False
        self._cancelled: list[asyncio.Task] = []

    # ── Status ─────────────────────────────────────────────────────────

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    def next_check_time(self) -> datetime | None:
        if self.last_check_time is None:
            return None
        # Added on the UTC timeline; wall-clock addition shifts across DST
        last = self.last_check_time
        return (last.astimezone(timezone.utc) + self.interval).astimezone(last.tzinfo)

    def status(self) -> dict[str, Any]:
        next_check = self.next_check_time()
        return {
            "state": self.state,
            "last_check_time": self.last_check_time.isoformat() if self.last_check_time else None,
            "next_check_time": next_check.isoformat() if next_check else None,
            "interval_minutes": self.interval_minutes,
            "tick_count": self.tick_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "dropped_results": self._channel.dropped if self._channel else 0,
        }

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(
        self,
        on_result: ResultCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> ResultBundle | None:
        """
        Validate configuration, evaluate once, deliver, then arm the timer.

        Raises ConfigurationError for a non-positive interval or invalid
        account settings. Returns the initial bundle (None if that tick failed).
        """
        if not self.interval_minutes or self.interval_minutes <= 0:
            raise ConfigurationError(f"check interval must be positive, got {self.interval_minutes!r}")

        if self.is_running:
            logger.info("scheduler.restart")
            self.stop()
        await self._await_cancelled()

        settings = await self._load_settings()

        self._on_result = on_result
        self._on_error = on_error
        self._channel = ResultChannel(self._channel_size)

        bundle = await self.run_once(settings)
        if bundle is not None:
            await self._deliver(bundle)

        self.state = RUNNING
        self._timer_task = asyncio.create_task(self._run_timer(), name="compliance-scheduler-timer")
        self._dispatch_task = asyncio.create_task(self._run_dispatcher(), name="compliance-scheduler-dispatch")
        logger.info("scheduler.started", interval_minutes=self.interval_minutes, timezone=settings.timezone)
        return bundle

    def stop(self) -> None:
        """Cancel future fires. Idempotent."""
        if self.state == STOPPED and self._timer_task is None:
            return
        self.state = STOPPED
        for task in (self._timer_task, self._dispatch_task):
            if task is not None and not task.done():
                task.cancel()
                self._cancelled.append(task)
        self._timer_task = None
        self._dispatch_task = None
        logger.info("scheduler.stopped", tick_count=self.tick_count)

    async def _await_cancelled(self) -> None:
        """Let cancelled tasks unwind so an interrupted tick releases the in-flight guard."""
        pending, self._cancelled = self._cancelled, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Evaluation ─────────────────────────────────────────────────────

    async def _load_settings(self) -> EngineSettings:
        try:
            raw = await resolve(self.source.get_settings())
            return coerce_settings(raw).validate()
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid engine settings: {exc}") from exc

    async def run_once(self, settings: EngineSettings | None = None) -> ResultBundle | None:
        """
        Evaluate one tick. Never raises for evaluation failures; returns None
        instead. Overlapping calls are skipped.
        """
        if self._evaluating:
            logger.warning("scheduler.tick_skipped", reason="evaluation_in_flight")
            return None

        self._evaluating = True
        started = time.perf_counter()
        self.last_check_time = self.clock.now()
        try:
            if settings is None:
                settings = await self._load_settings()
            now = self.clock.with_timezone(settings.timezone).now()
            items = await resolve(self.source.get_items())
            audit_entries = await resolve(self.source.get_removal_audit_entries())
            bundle = evaluate_tick(items, audit_entries, settings, now)
        except Exception as exc:  # noqa: BLE001
            self.error_count += 1
            self.last_error = str(exc)
            logger.error("scheduler.tick_failed", error=str(exc), exc_info=True)
            await self._report_error(exc)
            return None
        finally:
            self._evaluating = False

        self.tick_count += 1
        self.latest_result = bundle
        logger.info(
            "scheduler.tick_complete",
            classified=len(bundle.classifications),
            alerts=len(bundle.alerts),
            sla_violations=len(bundle.sla_violations),
            risk_score=bundle.risk_score.score,
            skipped=bundle.skipped_count,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return bundle

    # ── Timer + Delivery ───────────────────────────────────────────────

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.interval.total_seconds()
        next_fire = loop.time() + interval
        while self.state == RUNNING:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            bundle = await self.run_once()
            if bundle is not None and self._channel is not None:
                self._channel.publish(bundle)

            next_fire += interval
            now = loop.time()
            if next_fire <= now:
                missed = int((now - next_fire) // interval) + 1
                logger.warning("scheduler.ticks_missed", missed=missed)
                next_fire += missed * interval

    async def _run_dispatcher(self) -> None:
        channel = self._channel
        while channel is not None:
            bundle = await channel.receive()
            await self._deliver(bundle)

    async def _deliver(self, bundle: ResultBundle) -> None:
        if self._on_result is None:
            return
        try:
            outcome = self._on_result(bundle)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:  # noqa: BLE001
            logger.error("scheduler.delivery_failed", error=str(exc), exc_info=True)

    async def _report_error(self, exc: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            outcome = self._on_error(exc)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as callback_exc:  # noqa: BLE001
            logger.error("scheduler.error_callback_failed", error=str(callback_exc))
