"""
Real-time fan-out of tick results via Redis pub/sub.

Dashboards subscribe to ``compliance:{account_id}`` and receive:
    {"type": "compliance_tick", "payload": {...summary...}}
    {"type": "alert", "payload": {...}}          one per high-priority alert
    {"type": "sla_violation", "payload": {...}}  one per violation
"""

import json

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from compliance.models import Priority, ResultBundle
from core.config import get_settings

logger = structlog.get_logger()


def channel_for(account_id: str) -> str:
    return f"compliance:{account_id}"


def build_messages(bundle: ResultBundle) -> list[str]:
    risk = bundle.risk_score
    messages = [
        json.dumps(
            {
                "type": "compliance_tick",
                "payload": {
                    "timestamp": bundle.timestamp.isoformat(),
                    "alert_count": len(bundle.alerts),
                    "sla_violation_count": len(bundle.sla_violations),
                    "skipped_count": bundle.skipped_count,
                    "risk_score": risk.score,
                    "risk_band": risk.band.value,
                },
            }
        )
    ]
    for alert in bundle.alerts:
        if alert.priority == Priority.HIGH:
            messages.append(json.dumps({"type": "alert", "payload": alert.to_dict()}))
    for violation in bundle.sla_violations:
        messages.append(json.dumps({"type": "sla_violation", "payload": violation.to_dict()}))
    return messages


async def publish_bundle(bundle: ResultBundle, account_id: str, redis_client=None) -> int:
    """
    Publish a tick's results. Returns number of subscribers notified
    (0 when Redis is unreachable).
    """
    owns_client = redis_client is None
    redis = redis_client or aioredis.from_url(get_settings().redis_url)
    channel = channel_for(account_id)
    try:
        total_subs = 0
        for payload in build_messages(bundle):
            total_subs += await redis.publish(channel, payload)
        return total_subs
    except RedisError as exc:
        logger.warning("publisher.publish_failed", channel=channel, error=str(exc))
        return 0
    finally:
        if owns_client:
            await redis.aclose()
