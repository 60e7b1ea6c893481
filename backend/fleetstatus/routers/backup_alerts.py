"""Backup alert suppression API - silence small-file alerts per backup event."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..auth import require_admin
from ..database import get_db
from ..models import ServerEvent
from ..models.server_event import BACKUP_EVENT_TYPES
from ..schemas.backup_monitoring import SmallFileEvent, SmallFileServer, SuppressRequest
from ..services.backup_check import SMALL_FILE_THRESHOLD_BYTES
from ..services.backup_store import BACKUP_FILE_SUFFIX
from ..utils.db_utils import retry_on_lock
from ..utils.formatters import BYTES_PER_MB

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/backup-alerts", tags=["backup-alerts"])

SMALL_FILE_EVENTS_LIMIT = 100


@router.post("/suppress")
async def suppress_alert(
    data: SuppressRequest,
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """Suppress (or re-enable) file size alerts for one backup event."""
    if data.event_id is None:
        raise HTTPException(status_code=400, detail="event_id is required")

    result = await db.execute(select(ServerEvent).where(ServerEvent.id == data.event_id))
    event = result.scalar_one_or_none()
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")

    event.backup_file_size_alert_suppressed = data.suppressed
    await retry_on_lock(db.commit)

    action = "suppressed" if data.suppressed else "enabled"
    logger.info(f"File size alerts {action} for event {event.id} ({event.backup_database})")
    return {
        "success": True,
        "event": {
            "id": event.id,
            "backup_database": event.backup_database,
            "backup_file_size": event.backup_file_size,
        },
        "message": f"Alerts {action} for {event.backup_database}",
    }


@router.get("/suppress")
async def list_small_file_events(
    db: AsyncSession = Depends(get_db),
    _admin=Depends(require_admin),
):
    """List recent backup events whose file is under the small-file threshold."""
    result = await db.execute(
        select(ServerEvent)
        .options(selectinload(ServerEvent.server))
        .where(
            ServerEvent.event_type.in_(BACKUP_EVENT_TYPES),
            ServerEvent.backup_database.ilike(f"%{BACKUP_FILE_SUFFIX}"),
            ServerEvent.backup_file_size.is_not(None),
            ServerEvent.backup_file_size < SMALL_FILE_THRESHOLD_BYTES,
        )
        .order_by(ServerEvent.created_at.desc(), ServerEvent.id.desc())
        .limit(SMALL_FILE_EVENTS_LIMIT)
    )

    events = [
        SmallFileEvent(
            id=e.id,
            created_at=e.created_at,
            backup_database=e.backup_database,
            backup_file_size=e.backup_file_size,
            backup_file_size_alert_suppressed=bool(e.backup_file_size_alert_suppressed),
            server=SmallFileServer(id=e.server.id, name=e.server.name) if e.server else None,
        )
        for e in result.scalars().all()
    ]
    return {
        "success": True,
        "events": events,
        "threshold_mb": SMALL_FILE_THRESHOLD_BYTES / BYTES_PER_MB,
    }
