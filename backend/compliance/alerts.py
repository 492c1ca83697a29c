"""
Alert Generator — Expiry and low-stock alerts from classified items.

Alert Types:
  - expired: item is past its expiry (always high priority)
  - expiring: item is inside the warning window (high when ≤ 1 day away)
  - low_stock: quantity at or below the item's reorder point (medium)

An item can carry an expiry alert and a low_stock alert at the same time.
Nothing here dispatches notifications; see alerts.notify for host-side delivery.
"""

from __future__ import annotations

from datetime import datetime

from compliance.classifier import classify
from compliance.models import (
    Alert,
    AlertType,
    ClassificationResult,
    EngineSettings,
    Item,
    LifecycleState,
    Priority,
)
from core.clock import resolve_timezone

# ──────────────────────────────────────────────────────────────────────────
# Priority Rules
# ──────────────────────────────────────────────────────────────────────────

URGENT_WARNING_DAYS = 1

PRIORITY_RANK = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


def classify_priority(result: ClassificationResult) -> Priority | None:
    """Priority of the expiry alert for a classified item; None for SAFE items."""
    if result.state == LifecycleState.EXPIRED:
        return Priority.HIGH
    if result.state == LifecycleState.WARNING:
        if result.days_until_expiry <= URGENT_WARNING_DAYS:
            return Priority.HIGH
        return Priority.MEDIUM
    return None


def is_low_stock(item: Item) -> bool:
    return item.reorder_point is not None and item.quantity <= item.reorder_point


def _sort_key(alert: Alert) -> tuple[int, int, float]:
    # None days sort after every numbered alert within a priority
    days = alert.days_until
    return (-PRIORITY_RANK[alert.priority], 1 if days is None else 0, days if days is not None else 0)


def sort_alerts(alerts: list[Alert]) -> list[Alert]:
    """Stable sort: priority descending, then most urgent (lowest days_until) first."""
    return sorted(alerts, key=_sort_key)


# ──────────────────────────────────────────────────────────────────────────
# Alert Construction
# ──────────────────────────────────────────────────────────────────────────


def _expiry_alert(item: Item, result: ClassificationResult, now: datetime) -> Alert | None:
    priority = classify_priority(result)
    if priority is None:
        return None

    days = result.days_until_expiry
    if result.state == LifecycleState.EXPIRED:
        alert_type = AlertType.EXPIRED
        message = f"{item.name} expired {abs(days)} day(s) ago"
    else:
        alert_type = AlertType.EXPIRING
        message = f"{item.name} expires in {days} day(s)"

    return Alert(
        type=alert_type,
        priority=priority,
        item_id=item.id,
        days_until=days,
        message=message,
        generated_at=now,
        item_name=item.name,
        location=item.location,
    )


def _low_stock_alert(item: Item, result: ClassificationResult | None, now: datetime) -> Alert:
    return Alert(
        type=AlertType.LOW_STOCK,
        priority=Priority.MEDIUM,
        item_id=item.id,
        days_until=result.days_until_expiry if result else None,
        message=f"{item.name} is low on stock ({item.quantity} remaining)",
        generated_at=now,
        item_name=item.name,
        location=item.location,
    )


def build_alerts(
    items: list[Item],
    classifications: dict[str, ClassificationResult],
    now: datetime,
) -> list[Alert]:
    """Alerts for already-classified items (used by the tick so items are classified once)."""
    alerts: list[Alert] = []
    for item in items:
        if not item.active:
            continue
        result = classifications.get(item.id)
        if result is not None:
            expiry_alert = _expiry_alert(item, result, now)
            if expiry_alert is not None:
                alerts.append(expiry_alert)
        if is_low_stock(item):
            alerts.append(_low_stock_alert(item, result, now))
    return sort_alerts(alerts)


def generate_alerts(
    items: list[Item],
    now: datetime,
    settings: EngineSettings | None = None,
) -> list[Alert]:
    """
    Prioritized alerts for all active items at ``now``.

    Deterministic for fixed (items, now, settings).
    """
    settings = settings or EngineSettings()
    tz = resolve_timezone(settings.timezone)
    classifications: dict[str, ClassificationResult] = {}
    for item in items:
        if not item.active:
            continue
        result = classify(item, now, settings.warning_days, tz)
        if result is not None:
            classifications[item.id] = result
    return build_alerts(items, classifications, now)
