"""
Tick Evaluation — one full classify → alert → SLA → risk pass.

Input rows may be Item/AuditEntry objects or raw host mappings. A row that
cannot be read becomes a skipped item instead of failing the tick.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog

from compliance.alerts import build_alerts
from compliance.classifier import classify_items, expiry_instant
from compliance.models import (
    AuditEntry,
    ClassificationResult,
    EngineSettings,
    Item,
    LifecycleState,
    ResultBundle,
)
from compliance.risk import score_classifications
from compliance.sla import check_compliance
from core.clock import elapsed, resolve_timezone

logger = structlog.get_logger()


def coerce_items(rows: Iterable[Item | Mapping[str, Any]]) -> tuple[list[Item], int]:
    """Convert host rows to Items. Returns (items, unreadable row count)."""
    items: list[Item] = []
    unreadable = 0
    for row in rows:
        if isinstance(row, Item):
            items.append(row)
            continue
        try:
            items.append(Item.from_record(row))
        except (TypeError, ValueError, AttributeError) as exc:
            unreadable += 1
            logger.warning("evaluation.item_unreadable", error=str(exc))
    return items, unreadable


def coerce_audit_entries(rows: Iterable[AuditEntry | Mapping[str, Any]]) -> list[AuditEntry]:
    entries: list[AuditEntry] = []
    for row in rows:
        if isinstance(row, AuditEntry):
            entries.append(row)
        else:
            entries.append(AuditEntry.from_record(row))
    return entries


def group_by_location(
    items: list[Item],
    classifications: dict[str, ClassificationResult],
    default_location: str = "",
) -> dict[str, dict[str, list[str]]]:
    """Expired / expiring-soon item ids per location label, active items only."""
    locations: dict[str, dict[str, list[str]]] = {}
    for item in items:
        if not item.active:
            continue
        result = classifications.get(item.id)
        if result is None:
            continue
        bucket = locations.setdefault(item.location or default_location, {"expired": [], "expiring_soon": []})
        if result.state == LifecycleState.EXPIRED:
            bucket["expired"].append(item.id)
        elif result.state == LifecycleState.WARNING:
            bucket["expiring_soon"].append(item.id)
    return locations


def evaluate_tick(
    items: Iterable[Item | Mapping[str, Any]],
    audit_entries: Iterable[AuditEntry | Mapping[str, Any]],
    settings: EngineSettings,
    now: datetime,
) -> ResultBundle:
    """
    Compute the full result bundle for ``now`` (an aware datetime in the
    account timezone). Pure: no I/O beyond logging.
    """
    tz = resolve_timezone(settings.timezone)
    now = now.astimezone(tz)
    item_list, unreadable = coerce_items(items)
    entries = coerce_audit_entries(audit_entries)

    classifications, skipped = classify_items(item_list, now, settings.warning_days, tz)

    active_results = [classifications[i.id] for i in item_list if i.active and i.id in classifications]
    alerts = build_alerts(item_list, classifications, now)

    # Removed items stay in scope so late removals still count against the SLA
    past_expiry = []
    for item in item_list:
        expires_at = expiry_instant(item, tz)
        if expires_at is not None and elapsed(expires_at, now) > timedelta(0):
            past_expiry.append(item)
    violations = check_compliance(past_expiry, entries, settings.sla_threshold_minutes, now=now, tz=tz)

    risk = score_classifications(active_results)

    return ResultBundle(
        classifications=list(classifications.values()),
        alerts=alerts,
        sla_violations=violations,
        risk_score=risk,
        timestamp=now,
        timezone=settings.timezone,
        skipped_count=len(skipped) + unreadable,
        skipped_item_ids=skipped,
        locations=group_by_location(item_list, classifications, settings.default_location),
    )
