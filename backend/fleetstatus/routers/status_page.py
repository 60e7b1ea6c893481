"""Public status page API - overall status, incidents, and email subscriptions."""
import logging
import secrets
from datetime import timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..database import get_db
from ..models import Host, Incident, Server, ServerEvent, Subscriber, SubscriberSubscription
from ..models.subscriber import DEFAULT_NOTIFY_ON_STATUS
from ..schemas.status import (
    PublicIncident,
    PublicIncidentUpdate,
    PublicStatus,
    ServerCounts,
    StatusPageBranding,
    SubscribeRequest,
)
from ..services.incident_notifier import incident_notifier, status_page_url
from ..services.status_page import SERVER_STATUSES, overall_status, public_updates, uptime_percentage
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/status", tags=["status-page"])

RESOLVED_INCIDENT_WINDOW_DAYS = 7
UPTIME_WINDOW_DAYS = 90


async def _server_counts(db: AsyncSession) -> ServerCounts:
    result = await db.execute(
        select(Server.current_status, func.count()).group_by(Server.current_status)
    )
    counts = ServerCounts()
    for status, count in result.all():
        counts.total += count
        if status in SERVER_STATUSES:
            setattr(counts, status, getattr(counts, status) + count)
        else:
            counts.unknown += count
    return counts


async def _host_names(db: AsyncSession, incidents: List[Incident]) -> Dict[int, str]:
    host_ids = {host_id for incident in incidents for host_id in (incident.affected_hosts or [])}
    if not host_ids:
        return {}
    result = await db.execute(select(Host.id, Host.name).where(Host.id.in_(host_ids)))
    return dict(result.all())


def _public_incident(incident: Incident, host_names: Dict[int, str]) -> PublicIncident:
    return PublicIncident(
        id=incident.id,
        title=incident.title,
        description=incident.description,
        incident_type=incident.incident_type,
        severity=incident.severity,
        status=incident.status,
        started_at=incident.started_at,
        resolved_at=incident.resolved_at,
        affected_host_names=[
            host_names[h] for h in (incident.affected_hosts or []) if h in host_names
        ],
        updates=[
            PublicIncidentUpdate(
                id=u.id, message=u.message, update_type=u.update_type, created_at=u.created_at
            )
            for u in public_updates(incident.updates)
        ],
    )


@router.get("", response_model=PublicStatus)
async def get_public_status(db: AsyncSession = Depends(get_db)):
    """Overall system status plus active and recently resolved incidents. No login needed."""
    now = utcnow()
    counts = await _server_counts(db)

    active = (await db.execute(
        select(Incident)
        .options(selectinload(Incident.updates))
        .where(Incident.status != "resolved")
        .order_by(Incident.started_at.desc(), Incident.id.desc())
    )).scalars().all()

    resolved = (await db.execute(
        select(Incident)
        .options(selectinload(Incident.updates))
        .where(
            Incident.status == "resolved",
            Incident.resolved_at >= now - timedelta(days=RESOLVED_INCIDENT_WINDOW_DAYS),
        )
        .order_by(Incident.resolved_at.desc(), Incident.id.desc())
    )).scalars().all()

    host_names = await _host_names(db, list(active) + list(resolved))

    uptime = None
    if settings.status_page_show_uptime:
        statuses = (await db.execute(
            select(ServerEvent.status).where(
                ServerEvent.event_type == "status_change",
                ServerEvent.status.in_(SERVER_STATUSES),
                ServerEvent.created_at >= now - timedelta(days=UPTIME_WINDOW_DAYS),
            )
        )).scalars().all()
        uptime = f"{uptime_percentage(statuses):.2f}"

    return PublicStatus(
        status=overall_status(counts.model_dump()),
        config=StatusPageBranding(
            company_name=settings.status_page_company_name,
            support_email=settings.status_page_support_email,
            support_url=settings.status_page_support_url,
            show_uptime_percentage=settings.status_page_show_uptime,
        ),
        servers=counts,
        uptime_percentage=uptime,
        active_incidents=[_public_incident(i, host_names) for i in active],
        resolved_incidents=[_public_incident(i, host_names) for i in resolved],
        last_updated=now,
    )


@router.post("/subscribe")
async def subscribe(data: SubscribeRequest, db: AsyncSession = Depends(get_db)):
    """Subscribe an email address to incident notifications.

    New subscribers get a verification email. Unverified addresses get it again.
    """
    result = await db.execute(select(Subscriber).where(Subscriber.email == data.email))
    existing = result.scalar_one_or_none()

    if existing is not None:
        if existing.unsubscribed_at is not None:
            raise HTTPException(
                status_code=400,
                detail="This email has unsubscribed. Please contact support to resubscribe.",
            )
        if existing.is_verified:
            raise HTTPException(status_code=400, detail="This email is already subscribed")

        await incident_notifier.send_verification(existing)
        return {"message": "Verification email resent"}

    subscriber = Subscriber(
        name=data.name,
        email=data.email,
        company=data.company,
        verification_token=secrets.token_hex(32),
        unsubscribe_token=secrets.token_hex(32),
    )
    subscriber.subscriptions.append(SubscriberSubscription(
        subscription_type="all_servers",
        notify_on_status=list(DEFAULT_NOTIFY_ON_STATUS),
    ))
    db.add(subscriber)
    await retry_on_lock(db.commit)
    logger.info(f"New status page subscriber: {subscriber.email}")

    # Delivery failures are logged; the subscription still stands
    await incident_notifier.send_verification(subscriber)
    return {"message": "Please check your email to verify your subscription"}


@router.get("/verify")
async def verify_subscription(token: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Confirm a subscription from the emailed link, then redirect to the status page."""
    if not token:
        raise HTTPException(status_code=400, detail="Verification token is required")

    result = await db.execute(select(Subscriber).where(Subscriber.verification_token == token))
    subscriber = result.scalar_one_or_none()
    if subscriber is None:
        raise HTTPException(status_code=400, detail="Invalid or expired verification token")
    if subscriber.is_verified:
        raise HTTPException(status_code=400, detail="Email is already verified")

    subscriber.is_verified = True
    subscriber.verified_at = utcnow()
    await retry_on_lock(db.commit)
    logger.info(f"Subscriber verified: {subscriber.email}")

    await incident_notifier.send_subscription_confirmation(subscriber)
    return RedirectResponse(f"{status_page_url()}?verified=true")


@router.get("/unsubscribe")
async def unsubscribe(token: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Stop incident emails for the subscriber owning the token."""
    if not token:
        raise HTTPException(status_code=400, detail="Unsubscribe token is required")

    result = await db.execute(select(Subscriber).where(Subscriber.unsubscribe_token == token))
    subscriber = result.scalar_one_or_none()
    if subscriber is None:
        raise HTTPException(status_code=400, detail="Invalid unsubscribe token")
    if subscriber.unsubscribed_at is not None:
        raise HTTPException(status_code=400, detail="Email is already unsubscribed")

    subscriber.unsubscribed_at = utcnow()
    await retry_on_lock(db.commit)
    logger.info(f"Subscriber unsubscribed: {subscriber.email}")

    return RedirectResponse(f"{status_page_url()}?unsubscribed=true")
