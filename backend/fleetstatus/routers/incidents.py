"""Incident admin API - incident CRUD, timeline updates, and subscriber notifications."""
import logging
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..auth import require_admin
from ..database import get_db
from ..exceptions import IncidentAlreadyNotified
from ..models import Incident, IncidentUpdate, NotificationHistory, Profile, Server, ServerEvent
from ..schemas.incident import (
    IncidentCreate,
    IncidentPatch,
    IncidentResponse,
    IncidentsPage,
    IncidentUpdateCreate,
    IncidentUpdateResponse,
    NotificationHistoryResponse,
    NotifyResponse,
)
from ..services.incident_notifier import incident_notifier
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/incidents", tags=["incidents"])

# Columns that a PATCH cannot set to null
NON_NULLABLE_FIELDS = ("title", "description", "incident_type", "severity", "status")


async def _get_incident(db: AsyncSession, incident_id: int) -> Incident:
    result = await db.execute(
        select(Incident)
        .options(selectinload(Incident.updates))
        .where(Incident.id == incident_id)
        .execution_options(populate_existing=True)
    )
    incident = result.scalar_one_or_none()
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


async def _resolve_affected_servers(
    db: AsyncSession, server_ids: Iterable[int], host_ids: Iterable[int]
) -> List[int]:
    """Selected servers plus every server on the selected hosts. Unknown ids are dropped."""
    server_ids, host_ids = list(server_ids or []), list(host_ids or [])
    if not server_ids and not host_ids:
        return []
    result = await db.execute(
        select(Server.id)
        .where(or_(Server.id.in_(server_ids), Server.host_id.in_(host_ids)))
        .order_by(Server.id)
    )
    return list(result.scalars().all())


def _log_incident_events(
    db: AsyncSession,
    server_ids: Iterable[int],
    status: str,
    message: str,
    payload: dict,
) -> None:
    """Record an incident change in each affected server's event log."""
    for server_id in server_ids:
        db.add(ServerEvent(
            server_id=server_id,
            event_type="status_change",
            event_source="manual",
            status=status,
            message=message,
            payload=payload,
        ))


async def _notify_subscribers(db: AsyncSession, incident: Incident) -> None:
    """Send notifications without failing the request that triggered them."""
    try:
        summary = await incident_notifier.notify(db, incident)
        logger.info(f"Notifications for incident {incident.id}: {summary.sent} sent, {summary.failed} failed")
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to send notifications for incident {incident.id}: {type(e).__name__}: {e}")


@router.get("", response_model=IncidentsPage)
async def list_incidents(
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """List incidents, newest first. `status=all` is the same as no filter."""
    filters = []
    if status and status != "all":
        filters.append(Incident.status == status)

    total = (await db.execute(
        select(func.count()).select_from(Incident).where(*filters)
    )).scalar() or 0

    result = await db.execute(
        select(Incident)
        .options(selectinload(Incident.updates))
        .where(*filters)
        .order_by(Incident.created_at.desc(), Incident.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return IncidentsPage(
        incidents=[IncidentResponse.model_validate(i) for i in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", status_code=201)
async def create_incident(
    data: IncidentCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_admin),
):
    """Open an incident, post its first timeline entry, and optionally email subscribers."""
    now = utcnow()
    affected = await _resolve_affected_servers(db, data.affected_servers, data.affected_hosts)

    incident = Incident(
        title=data.title,
        description=data.description,
        incident_type=data.incident_type,
        severity=data.severity,
        status=data.status,
        affected_servers=affected,
        affected_hosts=list(data.affected_hosts),
        started_at=now,
        resolved_at=now if data.status == "resolved" else None,
        notify_subscribers=data.notify_subscribers,
        created_by=user.id,
    )
    incident.updates.append(IncidentUpdate(
        message=data.description,
        update_type="investigating",
        created_by=user.id,
        created_at=now,
    ))
    db.add(incident)
    await db.flush()

    _log_incident_events(db, affected, "incident", f"Incident created: {incident.title}", {
        "incident_id": incident.id,
        "incident_type": incident.incident_type,
        "severity": incident.severity,
        "created_by_email": user.email,
    })
    await retry_on_lock(db.commit)
    logger.info(f"Incident created: {incident.title} ({incident.id}), {len(affected)} server(s) affected")

    if data.notify_subscribers:
        await _notify_subscribers(db, incident)

    incident = await _get_incident(db, incident.id)
    return {"incident": IncidentResponse.model_validate(incident)}


@router.get("/{incident_id}")
async def get_incident(
    incident_id: int,
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    return {"incident": IncidentResponse.model_validate(await _get_incident(db, incident_id))}


@router.patch("/{incident_id}")
async def update_incident(
    incident_id: int,
    data: IncidentPatch,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_admin),
):
    """Edit an incident.

    Resolving without a resolved_at stamps the current time. Status changes
    and newly affected servers are written to the servers' event logs. With
    notify_subscribers, a status change on an already notified incident
    emails subscribers again.
    """
    incident = await _get_incident(db, incident_id)
    previous_status = incident.status
    previous_servers = list(incident.affected_servers or [])
    was_notified = incident.notified_at is not None

    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key not in NON_NULLABLE_FIELDS
    }
    notify = changes.pop("notify_subscribers", None)

    if "affected_servers" in changes or "affected_hosts" in changes:
        server_ids = changes.pop("affected_servers", previous_servers) or []
        host_ids = changes.get("affected_hosts", incident.affected_hosts) or []
        changes["affected_hosts"] = list(host_ids)
        incident.affected_servers = await _resolve_affected_servers(db, server_ids, host_ids)

    for key, value in changes.items():
        setattr(incident, key, value)

    status_changed = incident.status != previous_status
    if status_changed and incident.status == "resolved" and "resolved_at" not in changes:
        incident.resolved_at = utcnow()

    if status_changed:
        _log_incident_events(
            db,
            incident.affected_servers or [],
            f"incident_{incident.status}",
            f"Incident status changed to {incident.status}: {incident.title}",
            {
                "incident_id": incident.id,
                "old_status": previous_status,
                "new_status": incident.status,
                "updated_by_email": user.email,
            },
        )

    added = [s for s in (incident.affected_servers or []) if s not in previous_servers]
    if added:
        _log_incident_events(db, added, f"incident_{incident.status}", f"Added to incident: {incident.title}", {
            "incident_id": incident.id,
            "incident_type": incident.incident_type,
            "severity": incident.severity,
            "added_by_email": user.email,
        })

    await retry_on_lock(db.commit)
    logger.info(f"Incident updated: {incident.id} ({previous_status} -> {incident.status})")

    if notify and was_notified and status_changed:
        incident.notified_at = None
        await _notify_subscribers(db, incident)

    incident = await _get_incident(db, incident_id)
    return {"incident": IncidentResponse.model_validate(incident)}


@router.delete("/{incident_id}")
async def delete_incident(
    incident_id: int,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_admin),
):
    """Delete an incident and note the removal on each affected server."""
    incident = await _get_incident(db, incident_id)

    _log_incident_events(db, incident.affected_servers or [], "incident_removed", f"Incident removed: {incident.title}", {
        "incident_id": incident.id,
        "action": "deleted",
        "deleted_by_email": user.email,
    })
    await db.delete(incident)
    await retry_on_lock(db.commit)
    logger.info(f"Incident deleted: {incident_id}")
    return {"success": True}


@router.post("/{incident_id}/updates", status_code=201)
async def add_incident_update(
    incident_id: int,
    data: IncidentUpdateCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(require_admin),
):
    """Post a timeline entry. A "resolved" entry also resolves the incident."""
    incident = await _get_incident(db, incident_id)

    update = IncidentUpdate(
        incident_id=incident.id,
        message=data.message,
        update_type=data.update_type,
        created_by=user.id,
    )
    db.add(update)

    if data.update_type == "resolved":
        incident.status = "resolved"
        incident.resolved_at = utcnow()

    await retry_on_lock(db.commit)
    return {"update": IncidentUpdateResponse.model_validate(update)}


@router.post("/{incident_id}/notify", response_model=NotifyResponse)
async def notify_incident(
    incident_id: int,
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Email eligible subscribers about an incident. Allowed once per incident."""
    incident = await _get_incident(db, incident_id)
    try:
        summary = await incident_notifier.notify(db, incident)
    except IncidentAlreadyNotified as e:
        raise HTTPException(status_code=400, detail=str(e))

    if summary.sent == 0 and summary.failed == 0:
        message = "No eligible subscribers found"
    else:
        message = "Notifications sent successfully"
    return NotifyResponse(message=message, sent=summary.sent, failed=summary.failed, errors=summary.errors)


@router.get("/{incident_id}/notifications")
async def list_incident_notifications(
    incident_id: int,
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Notification history for an incident, newest first."""
    await _get_incident(db, incident_id)
    result = await db.execute(
        select(NotificationHistory)
        .where(NotificationHistory.incident_id == incident_id)
        .order_by(NotificationHistory.sent_at.desc(), NotificationHistory.id.desc())
    )
    return {
        "notifications": [
            NotificationHistoryResponse.model_validate(n) for n in result.scalars().all()
        ]
    }
