"""
SLA Monitor — time from expiry to logged removal (30-minute rule).

Two branches per expired item:
  - removed:     delay = removal - expiry      → status "resolved" when over threshold
  - not removed: delay = now - expiry          → status "pending" when over threshold

Pending violations are recomputed on every tick, so their delay keeps growing
until a removal is logged.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone, tzinfo

from compliance.models import AuditEntry, Item, SLAStatus, SLAViolation
from core.clock import elapsed, parse_timestamp

DEFAULT_SLA_THRESHOLD_MINUTES = 30
REMOVAL_ACTION = "removed"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def latest_removals(
    audit_entries: list[AuditEntry],
    tz: tzinfo = timezone.utc,
) -> dict[str, datetime]:
    """Most recent ``removed`` timestamp per item id. Unparseable entries are ignored."""
    latest: dict[str, datetime] = {}
    for entry in audit_entries:
        if entry.action != REMOVAL_ACTION:
            continue
        ts = parse_timestamp(entry.timestamp, tz)
        if ts is None:
            continue
        current = latest.get(entry.item_id)
        if current is None or elapsed(current, ts) > timedelta(0):
            latest[entry.item_id] = ts
    return latest


def _overdue_minutes(delay: timedelta, threshold: timedelta) -> int:
    return round_half_up((delay - threshold).total_seconds() / 60)


def check_compliance(
    expired_items: list[Item],
    removal_audit_entries: list[AuditEntry],
    threshold_minutes: int = DEFAULT_SLA_THRESHOLD_MINUTES,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[SLAViolation]:
    """
    Violations for items whose removal took (or is taking) longer than the threshold.

    A removal exactly at expiry + threshold is compliant. Items without a usable
    expiry are ignored. Performs no writes.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    tz = tz or now.tzinfo
    threshold = timedelta(minutes=threshold_minutes)
    removals = latest_removals(removal_audit_entries, tz)

    violations: list[SLAViolation] = []
    for item in expired_items:
        expired_at = parse_timestamp(item.expiry, tz)
        if expired_at is None:
            continue

        removed_at = removals.get(item.id)
        if removed_at is None and item.removed:
            # Removal stamped on the item but never written to the audit trail
            removed_at = parse_timestamp(item.removed_at, tz)

        if removed_at is not None:
            delay = elapsed(expired_at, removed_at)
            if delay > threshold:
                violations.append(
                    SLAViolation(
                        item_id=item.id,
                        expired_at=expired_at,
                        removed_at=removed_at,
                        delay_minutes=_overdue_minutes(delay, threshold),
                        status=SLAStatus.RESOLVED,
                    )
                )
            continue

        delay = elapsed(expired_at, now)
        if delay > threshold:
            violations.append(
                SLAViolation(
                    item_id=item.id,
                    expired_at=expired_at,
                    removed_at=None,
                    delay_minutes=_overdue_minutes(delay, threshold),
                    status=SLAStatus.PENDING,
                )
            )

    return violations
