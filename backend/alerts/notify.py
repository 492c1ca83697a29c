"""Ready-made ``on_result`` callback that pushes each tick to Redis and email."""

from collections.abc import Awaitable, Callable

import structlog

from alerts.email import send_expiry_digest
from alerts.publisher import publish_bundle
from compliance.models import ResultBundle

logger = structlog.get_logger()


def build_notifier(
    account_id: str,
    *,
    recipients: list[str] | None = None,
    email: bool = True,
    redis_client=None,
) -> Callable[[ResultBundle], Awaitable[dict[str, int | bool]]]:
    """Return an async callback the host can pass to the scheduler as ``on_result``."""

    async def notify(bundle: ResultBundle) -> dict[str, int | bool]:
        subscribers = await publish_bundle(bundle, account_id, redis_client=redis_client)
        emailed = False
        if email:
            emailed = await send_expiry_digest(bundle.alerts, bundle.sla_violations, recipients)
        logger.info("notify.dispatched", account_id=account_id, subscribers=subscribers, emailed=emailed)
        return {"subscribers": subscribers, "emailed": emailed}

    return notify
