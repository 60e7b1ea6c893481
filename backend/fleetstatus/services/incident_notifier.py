"""Incident notifier - emails status page subscribers about incidents."""
import asyncio
import html
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..exceptions import IncidentAlreadyNotified
from ..models import Incident, NotificationHistory, Subscriber, SubscriberSubscription
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock
from ..utils.formatters import format_timestamp
from .email_sender import SendResult, email_config_from_settings, email_sender_service

logger = logging.getLogger(__name__)

# Concurrent deliveries per batch
NOTIFY_BATCH_SIZE = 20

# Subscriber preference each incident type is matched against
INCIDENT_TYPE_TO_STATUS = {
    "outage": "down",
    "degraded": "degraded",
    "maintenance": "maintenance",
}

SEVERITY_EMOJI = {
    "critical": "\U0001F534",
    "major": "\U0001F7E0",
    "minor": "\U0001F7E1",
    "info": "\U0001F535",
}

STATUS_TEXT = {
    "investigating": "Investigating",
    "identified": "Identified",
    "monitoring": "Monitoring",
    "resolved": "Resolved",
}


@dataclass
class NotificationSummary:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def status_page_url() -> str:
    return f"{settings.app_url.rstrip('/')}/status"


def verification_url(token: str) -> str:
    return f"{status_page_url()}/verify?token={token}"


def unsubscribe_url(token: str) -> str:
    return f"{status_page_url()}/unsubscribe?token={token}"


def subscription_matches(subscription: SubscriberSubscription, incident: Incident) -> bool:
    """Whether one subscription covers the incident's type and scope."""
    wanted = INCIDENT_TYPE_TO_STATUS.get(incident.incident_type, "down")
    if wanted not in (subscription.notify_on_status or []):
        return False

    if subscription.subscription_type == "all_servers":
        return True
    if subscription.subscription_type == "server" and subscription.server_id is not None:
        return subscription.server_id in (incident.affected_servers or [])
    if subscription.subscription_type == "host" and subscription.host_id is not None:
        return subscription.host_id in (incident.affected_hosts or [])
    return False


def eligible_subscribers(subscribers: Iterable[Subscriber], incident: Incident) -> List[Subscriber]:
    """Active subscribers with at least one subscription matching the incident."""
    return [
        s for s in subscribers
        if s.is_active and any(subscription_matches(sub, incident) for sub in s.subscriptions)
    ]


def build_incident_subject(incident: Incident) -> str:
    emoji = SEVERITY_EMOJI.get(incident.severity, "⚪")
    return f"{emoji} {incident.title}"


def build_incident_text(incident: Incident, unsubscribe_link: str) -> str:
    company = settings.status_page_company_name
    return "\n".join([
        build_incident_subject(incident),
        "",
        f"Status: {STATUS_TEXT.get(incident.status, incident.status)}",
        f"Severity: {incident.severity.upper()}",
        f"Type: {incident.incident_type.upper()}",
        "",
        incident.description,
        "",
        f"Started: {format_timestamp(incident.started_at or incident.created_at)}",
        "",
        f"View full status page: {status_page_url()}",
        "",
        "---",
        f"You're receiving this because you subscribed to {company} status updates.",
        f"Unsubscribe: {unsubscribe_link}",
    ])


def build_incident_html(incident: Incident, unsubscribe_link: str) -> str:
    company = html.escape(settings.status_page_company_name)
    status = STATUS_TEXT.get(incident.status, incident.status)
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; color: #333; background: #f5f5f5;">
  <div style="max-width: 600px; margin: 20px auto; background: #fff; border-radius: 8px;">
    <div style="background: #667eea; color: #fff; padding: 24px; text-align: center;">
      <h1 style="margin: 0;">{company}</h1>
      <p style="margin: 4px 0 0 0;">Status Update</p>
    </div>
    <div style="padding: 24px;">
      <p style="font-size: 12px; font-weight: 600;">
        {html.escape(incident.severity.upper())} - {html.escape(incident.incident_type.upper())}
      </p>
      <h2 style="margin: 0 0 10px 0;">{html.escape(incident.title)}</h2>
      <p><strong>{html.escape(status)}</strong></p>
      <p style="color: #666;">{html.escape(incident.description)}</p>
      <p style="font-size: 14px; color: #888;">
        Started: {format_timestamp(incident.started_at or incident.created_at)}
      </p>
      <a href="{html.escape(status_page_url())}">View Status Page</a>
    </div>
    <div style="background: #f8f9fa; padding: 16px; text-align: center; font-size: 12px; color: #666;">
      <p>You're receiving this because you subscribed to {company} status updates.</p>
      <p><a href="{html.escape(unsubscribe_link)}">Unsubscribe</a> from these notifications</p>
    </div>
  </div>
</body>
</html>"""


class IncidentNotifier:
    """Sends incident, verification, and confirmation emails to subscribers."""

    def __init__(self, sender=None, config_factory=email_config_from_settings):
        self.sender = sender or email_sender_service
        self.config_factory = config_factory

    async def notify(self, session: AsyncSession, incident: Incident) -> NotificationSummary:
        """Email every eligible subscriber once and log each attempt.

        Raises:
            IncidentAlreadyNotified: notifications were already sent for this incident.
        """
        if incident.notified_at is not None:
            raise IncidentAlreadyNotified(incident.id)

        result = await session.execute(
            select(Subscriber)
            .options(selectinload(Subscriber.subscriptions))
            .where(Subscriber.is_verified.is_(True), Subscriber.unsubscribed_at.is_(None))
            .order_by(Subscriber.id)
        )
        recipients = eligible_subscribers(result.scalars().all(), incident)
        summary = NotificationSummary()

        if not recipients:
            logger.info(f"No eligible subscribers for incident {incident.id}")
        else:
            logger.info(f"Sending incident {incident.id} notification to {len(recipients)} subscriber(s)")

        config = self.config_factory()
        subject = build_incident_subject(incident)
        for start in range(0, len(recipients), NOTIFY_BATCH_SIZE):
            batch = recipients[start:start + NOTIFY_BATCH_SIZE]
            results = await asyncio.gather(*[
                self._send_incident(config, subject, incident, subscriber) for subscriber in batch
            ])
            for subscriber, send_result in zip(batch, results):
                if send_result.success:
                    summary.sent += 1
                else:
                    summary.failed += 1
                    summary.errors.append(f"{subscriber.email}: {send_result.error}")
                session.add(NotificationHistory(
                    incident_id=incident.id,
                    recipient_email=subscriber.email,
                    recipient_name=subscriber.name,
                    status="sent" if send_result.success else "failed",
                    error_message=send_result.error,
                    sent_at=utcnow(),
                ))

        incident.notified_at = utcnow()
        await retry_on_lock(session.commit)

        if summary.failed:
            logger.error(f"Incident {incident.id}: {summary.failed} notification(s) failed")
        return summary

    async def _send_incident(self, config, subject, incident, subscriber) -> SendResult:
        link = unsubscribe_url(subscriber.unsubscribe_token)
        return await self.sender.send_email(
            config,
            [subscriber.email],
            subject,
            build_incident_text(incident, link),
            build_incident_html(incident, link),
        )

    async def send_verification(self, subscriber: Subscriber) -> SendResult:
        company = settings.status_page_company_name
        link = verification_url(subscriber.verification_token)
        text_body = (
            f"Hi {subscriber.name},\n\n"
            f"Please confirm your subscription to {company} status updates:\n"
            f"{link}\n\n"
            "If you didn't request this, you can ignore this email."
        )
        html_body = (
            f"<p>Hi {html.escape(subscriber.name)},</p>"
            f"<p>Please confirm your subscription to {html.escape(company)} status updates.</p>"
            f'<p><a href="{html.escape(link)}">Verify Email Address</a></p>'
            "<p>If you didn't request this, you can ignore this email.</p>"
        )
        result = await self.sender.send_email(
            self.config_factory(),
            [subscriber.email],
            f"Verify your subscription to {company} status updates",
            text_body,
            html_body,
        )
        if not result.success:
            logger.error(f"Failed to send verification email to {subscriber.email}: {result.error}")
        return result

    async def send_subscription_confirmation(self, subscriber: Subscriber) -> SendResult:
        company = settings.status_page_company_name
        link = unsubscribe_url(subscriber.unsubscribe_token)
        text_body = (
            "Subscription Confirmed\n\n"
            "Your email has been verified successfully!\n\n"
            "You'll now receive notifications about:\n"
            "- Service outages and degradations\n"
            "- Scheduled maintenance windows\n"
            "- Incident resolutions\n\n"
            f"View status page: {status_page_url()}\n\n"
            f"Unsubscribe: {link}"
        )
        html_body = (
            "<h1>Subscription Confirmed</h1>"
            "<p>Your email has been verified successfully!</p>"
            f'<p><a href="{html.escape(status_page_url())}">View Status Page</a></p>'
            f'<p><a href="{html.escape(link)}">Unsubscribe</a></p>'
        )
        result = await self.sender.send_email(
            self.config_factory(),
            [subscriber.email],
            f"You're subscribed to {company} status updates",
            text_body,
            html_body,
        )
        if not result.success:
            logger.error(f"Failed to send confirmation email to {subscriber.email}: {result.error}")
        return result


# Global instance
incident_notifier = IncidentNotifier()
