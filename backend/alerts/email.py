"""
Email Delivery for expiry alerts and SLA breaches.

Only expired-item alerts and SLA violations are mailed to avoid alert fatigue.
"""

import asyncio
from html import escape

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from compliance.models import Alert, AlertType, SLAViolation
from core.config import get_settings

logger = structlog.get_logger()


def build_digest_html(expired: list[Alert], violations: list[SLAViolation]) -> str:
    rows = "".join(
        f"<li><strong>{escape(a.item_name or a.item_id)}</strong> — "
        f"Location: {escape(a.location or 'Unknown')} — {escape(a.message)}</li>"
        for a in expired
    )
    sla_rows = "".join(
        f"<li>Item {escape(v.item_id)}: {v.delay_minutes} min over SLA ({v.status.value})</li>" for v in violations
    )
    return f"""
    <div style="font-family: Inter, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: #064e3b; color: white; padding: 24px; border-radius: 12px 12px 0 0;">
        <h1 style="margin: 0; font-size: 20px;">ShelfGuard Expiry Alert</h1>
      </div>
      <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0;">
        <p>You have {len(expired)} expired item(s) that require immediate attention:</p>
        <ul>{rows}</ul>
        {f'<p><strong>SLA violations ({len(violations)}):</strong></p><ul>{sla_rows}</ul>' if violations else ''}
        <p>Please remove these items from shelves immediately.</p>
      </div>
    </div>
    """


async def send_expiry_digest(
    alerts: list[Alert],
    violations: list[SLAViolation],
    recipients: list[str] | None = None,
) -> bool:
    """
    Send one digest email via SendGrid. Returns True if sent successfully;
    False when there is nothing urgent or email is not configured.
    """
    settings = get_settings()
    expired = [a for a in alerts if a.type == AlertType.EXPIRED]
    recipients = recipients if recipients is not None else settings.alert_recipients
    if not expired and not violations:
        return False
    if not settings.sendgrid_api_key or not recipients:
        logger.info("email.not_configured", expired=len(expired), violations=len(violations))
        return False

    subject = f"ShelfGuard Alert: {len(expired)} Item(s) Expired"
    if violations:
        subject += f", {len(violations)} SLA Violation(s)"

    try:
        sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
        email = Mail(
            from_email=settings.alert_from_email,
            to_emails=recipients,
            subject=subject,
            html_content=build_digest_html(expired, violations),
        )
        # sg.send is blocking HTTP
        response = await asyncio.to_thread(sg.send, email)
        return response.status_code in (200, 201, 202)
    except Exception as exc:  # noqa: BLE001
        logger.warning("email.send_failed", error=str(exc))
        return False
