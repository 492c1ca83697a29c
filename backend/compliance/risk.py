"""
Risk Scorer — account-level compliance risk (0–100, higher is worse).

Weights and band thresholds are fixed constants so scores stay comparable
across accounts and over time. Changing them is a versioned decision.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, tzinfo

from compliance.classifier import DEFAULT_WARNING_DAYS, classify
from compliance.models import ClassificationResult, Item, LifecycleState, RiskBand, RiskScoreSnapshot
from compliance.sla import round_half_up

RISK_MODEL_VERSION = "1"

EXPIRED_WEIGHT = 0.7
WARNING_WEIGHT = 0.3

BAND_THRESHOLDS = (
    (85, RiskBand.CRITICAL),
    (60, RiskBand.HIGH),
    (30, RiskBand.MEDIUM),
)


def classify_band(score: int) -> RiskBand:
    for threshold, band in BAND_THRESHOLDS:
        if score >= threshold:
            return band
    return RiskBand.LOW


def score_classifications(results: Iterable[ClassificationResult]) -> RiskScoreSnapshot:
    """Score a set of classifications for active items."""
    results = list(results)
    total = len(results)
    if total == 0:
        return RiskScoreSnapshot(
            score=0,
            band=RiskBand.LOW,
            expired_ratio=0.0,
            warning_ratio=0.0,
            total_items=0,
        )

    expired = sum(1 for r in results if r.state == LifecycleState.EXPIRED)
    warning = sum(1 for r in results if r.state == LifecycleState.WARNING)
    expired_ratio = expired / total
    warning_ratio = warning / total

    raw = expired_ratio * EXPIRED_WEIGHT + warning_ratio * WARNING_WEIGHT
    # Strip float noise (8.4999999...) before half-up rounding
    scaled = round(raw * 100, 9)
    risk_score = round_half_up(min(100.0, max(0.0, scaled)))

    return RiskScoreSnapshot(
        score=risk_score,
        band=classify_band(risk_score),
        expired_ratio=expired_ratio,
        warning_ratio=warning_ratio,
        total_items=total,
        expired_count=expired,
        warning_count=warning,
    )


def score(
    items: list[Item],
    now: datetime,
    warning_days: int = DEFAULT_WARNING_DAYS,
    tz: tzinfo | None = None,
) -> RiskScoreSnapshot:
    """Risk snapshot for the active, classifiable items in ``items``."""
    results = []
    for item in items:
        if not item.active:
            continue
        result = classify(item, now, warning_days, tz)
        if result is not None:
            results.append(result)
    return score_classifications(results)
