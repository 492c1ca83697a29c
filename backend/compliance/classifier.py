"""
Expiry Classifier — maps an item and an instant to a lifecycle state.

Pure and deterministic: identical (item, now, warning_days) always yields the
identical result, so re-running a tick is idempotent.

States:
  - EXPIRED: days_until_expiry < 0
  - WARNING: 0 <= days_until_expiry <= warning_days
  - SAFE:    otherwise
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone, tzinfo

from compliance.models import ClassificationResult, Item, LifecycleState
from core.clock import elapsed, parse_timestamp

DEFAULT_WARNING_DAYS = 3
ONE_DAY = timedelta(days=1)


def expiry_instant(item: Item, tz: tzinfo) -> datetime | None:
    """The item's expiry as an aware instant, or None when missing/unparseable."""
    return parse_timestamp(item.expiry, tz)


def days_until(expires_at: datetime, now: datetime) -> int:
    """Whole days until ``expires_at``, rounded up at full precision (3.1 → 4, -1.5 → -1)."""
    return math.ceil(elapsed(now, expires_at) / ONE_DAY)


def classify_days(days: int, warning_days: int = DEFAULT_WARNING_DAYS) -> LifecycleState:
    if days < 0:
        return LifecycleState.EXPIRED
    if days <= warning_days:
        return LifecycleState.WARNING
    return LifecycleState.SAFE


def classify(
    item: Item,
    now: datetime,
    warning_days: int = DEFAULT_WARNING_DAYS,
    tz: tzinfo | None = None,
) -> ClassificationResult | None:
    """
    Classify one item at ``now``.

    Returns None for items without a usable expiry. Such items are reported
    as skipped, never defaulted to SAFE.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    tz = tz or now.tzinfo
    expires_at = expiry_instant(item, tz)
    if expires_at is None:
        return None
    days = days_until(expires_at, now)
    return ClassificationResult(
        item_id=item.id,
        days_until_expiry=days,
        state=classify_days(days, warning_days),
    )


def classify_items(
    items: list[Item],
    now: datetime,
    warning_days: int = DEFAULT_WARNING_DAYS,
    tz: tzinfo | None = None,
) -> tuple[dict[str, ClassificationResult], list[str]]:
    """
    Classify a batch. Returns ({item_id: result}, [skipped item ids]) in input order.
    """
    results: dict[str, ClassificationResult] = {}
    skipped: list[str] = []
    for item in items:
        result = classify(item, now, warning_days, tz)
        if result is None:
            skipped.append(item.id)
        else:
            results[item.id] = result
    return results, skipped
