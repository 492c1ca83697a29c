"""
Compliance Reports — end-of-day summary and audit-trail report.

Both return plain data for the host to render; no HTML/PDF/CSV here.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from compliance.classifier import classify
from compliance.models import AuditEntry, EngineSettings, Item, LifecycleState
from compliance.sla import REMOVAL_ACTION
from core.clock import parse_timestamp, resolve_timezone

RISK_LEVEL_THRESHOLDS = {
    "HIGH": 10,  # > 10 expired items
    "MEDIUM": 5,  # > 5 expired items
}
URGENT_DAYS = 1


@dataclass
class DailySummary:
    date: str
    timestamp: str
    metrics: dict[str, Any]
    compliance: dict[str, Any]
    outstanding_issues: list[dict[str, Any]] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)


@dataclass
class ComplianceReport:
    period: dict[str, str | None]
    total_actions: int
    actions_by_type: dict[str, int]
    actions_by_user: dict[str, int]
    actions_by_location: dict[str, int]
    removal_actions: list[AuditEntry]
    photos_attached: int


def _risk_level(expired_count: int) -> str:
    if expired_count > RISK_LEVEL_THRESHOLDS["HIGH"]:
        return "HIGH"
    if expired_count > RISK_LEVEL_THRESHOLDS["MEDIUM"]:
        return "MEDIUM"
    return "LOW"


def build_daily_summary(
    items: list[Item],
    now: datetime,
    settings: EngineSettings | None = None,
) -> DailySummary:
    """Key metrics, compliance status and outstanding issues for the local day of ``now``."""
    settings = settings or EngineSettings()
    tz = resolve_timezone(settings.timezone)
    now = now.astimezone(tz)
    today = now.date()

    active = [i for i in items if i.active]
    expired: list[tuple[Item, int]] = []
    expiring: list[tuple[Item, int]] = []
    safe = 0
    skipped = 0
    for item in active:
        result = classify(item, now, settings.warning_days, tz)
        if result is None:
            skipped += 1
        elif result.state == LifecycleState.EXPIRED:
            expired.append((item, result.days_until_expiry))
        elif result.state == LifecycleState.WARNING:
            expiring.append((item, result.days_until_expiry))
        else:
            safe += 1

    handled_today = 0
    for item in items:
        if not item.removed:
            continue
        removed_at = parse_timestamp(item.removed_at, tz)
        if removed_at is not None and removed_at.astimezone(tz).date() == today:
            handled_today += 1

    total_value = sum((i.unit_price or 0.0) * i.quantity for i in active)
    expired_value = sum((i.unit_price or 0.0) * i.quantity for i, _ in expired)

    issues: list[dict[str, Any]] = [
        {
            "type": "expired",
            "item_id": item.id,
            "item": item.name,
            "location": item.location,
            "days_overdue": abs(days),
        }
        for item, days in expired
    ]
    issues.extend(
        {
            "type": "expiring_urgent",
            "item_id": item.id,
            "item": item.name,
            "location": item.location,
            "days_until": days,
        }
        for item, days in expiring
        if days <= URGENT_DAYS
    )

    total = len(active)
    compliance_rate = round((total - len(expired)) / total * 100, 1) if total else 100.0

    return DailySummary(
        date=today.isoformat(),
        timestamp=now.isoformat(),
        metrics={
            "total_items": total,
            "expired": len(expired),
            "expiring_soon": len(expiring),
            "safe": safe,
            "skipped": skipped,
            "items_handled_today": handled_today,
            "total_value": round(total_value, 2),
            "expired_value": round(expired_value, 2),
        },
        compliance={
            "risk_level": _risk_level(len(expired)),
            "expired_count": len(expired),
            "expiring_soon_count": len(expiring),
            "total_items": total,
            "compliance_rate": compliance_rate,
        },
        outstanding_issues=issues,
        locations=sorted({i.location for i in active if i.location}),
    )


def build_compliance_report(
    audit_entries: list[AuditEntry],
    start: datetime | None = None,
    end: datetime | None = None,
) -> ComplianceReport:
    """Audit activity within [start, end], counted by action, user and location."""
    if start is not None and start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end is not None and end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    in_period: list[tuple[datetime, AuditEntry]] = []
    for entry in audit_entries:
        ts = parse_timestamp(entry.timestamp, timezone.utc)
        if ts is None:
            continue
        if start is not None and ts < start:
            continue
        if end is not None and ts > end:
            continue
        in_period.append((ts, entry))

    by_type = Counter(e.action for _, e in in_period)
    by_user = Counter(e.user_name or "System" for _, e in in_period)
    by_location = Counter(e.location for _, e in in_period if e.location)
    removals = [e for _, e in sorted(in_period, key=lambda pair: pair[0], reverse=True) if e.action == REMOVAL_ACTION]

    return ComplianceReport(
        period={
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
        total_actions=len(in_period),
        actions_by_type=dict(by_type),
        actions_by_user=dict(by_user),
        actions_by_location=dict(by_location),
        removal_actions=removals,
        photos_attached=sum(1 for _, e in in_period if e.photo),
    )
