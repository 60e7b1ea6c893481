"""Server API endpoints - registry CRUD and event history."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..auth import get_current_user, require_editor
from ..database import get_db
from ..models import Host, Server, ServerEvent
from ..schemas.server import (
    EventCreate,
    EventResponse,
    EventsPage,
    Pagination,
    ServerCreate,
    ServerResponse,
    ServerUpdate,
)
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/servers", tags=["servers"])

# Columns that a PATCH cannot set to null
NON_NULLABLE_FIELDS = ("name", "current_status", "backup_monitoring_excluded")


async def _get_server(db: AsyncSession, server_id: int) -> Server:
    result = await db.execute(
        select(Server)
        .options(selectinload(Server.host))
        .where(Server.id == server_id)
        .execution_options(populate_existing=True)
    )
    server = result.scalar_one_or_none()
    if server is None:
        raise HTTPException(status_code=404, detail="Server not found")
    return server


async def _check_host(db: AsyncSession, host_id: Optional[int]) -> None:
    if host_id is None:
        return
    result = await db.execute(select(Host.id).where(Host.id == host_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Host not found")


@router.get("", response_model=List[ServerResponse])
async def list_servers(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """List all servers with their host names."""
    result = await db.execute(
        select(Server).options(selectinload(Server.host)).order_by(Server.name)
    )
    return result.scalars().all()


@router.get("/{server_id}", response_model=ServerResponse)
async def get_server(
    server_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    return await _get_server(db, server_id)


@router.post("", response_model=ServerResponse, status_code=201)
async def create_server(
    data: ServerCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(require_editor),
):
    """Create a new server."""
    await _check_host(db, data.host_id)

    server = Server(
        name=data.name,
        host_id=data.host_id,
        server_type=data.server_type,
        ip_address=data.ip_address,
        current_status=data.current_status,
    )
    db.add(server)
    await retry_on_lock(db.commit)
    logger.info(f"Server created: {server.name} ({server.id})")
    return await _get_server(db, server.id)


@router.patch("/{server_id}", response_model=ServerResponse)
async def update_server(
    server_id: int,
    data: ServerUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(require_editor),
):
    """Update a server.

    Turning backup monitoring exclusion off clears the reason and review date.
    A server can only be excluded with both a reason and a review date.
    """
    server = await _get_server(db, server_id)
    updates = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key not in NON_NULLABLE_FIELDS
    }

    if "host_id" in updates:
        await _check_host(db, updates["host_id"])

    if "current_status" in updates and updates["current_status"] != server.current_status:
        server.last_status_change = utcnow()

    for key, value in updates.items():
        setattr(server, key, value)

    if not server.backup_monitoring_excluded:
        server.backup_monitoring_disabled_reason = None
        server.backup_monitoring_review_date = None
    elif not server.backup_monitoring_disabled_reason or server.backup_monitoring_review_date is None:
        await db.rollback()
        raise HTTPException(
            status_code=422,
            detail="Excluded servers require a disabled reason and a review date",
        )

    await retry_on_lock(db.commit)
    return await _get_server(db, server_id)


@router.delete("/{server_id}")
async def delete_server(
    server_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(require_editor),
):
    """Delete a server and its events."""
    server = await _get_server(db, server_id)
    await db.delete(server)
    await retry_on_lock(db.commit)
    logger.info(f"Server deleted: {server_id}")
    return {"success": True}


@router.get("/{server_id}/events", response_model=EventsPage)
async def list_server_events(
    server_id: int,
    type: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Event history for one server, newest first."""
    await _get_server(db, server_id)

    filters = [ServerEvent.server_id == server_id]
    if type:
        filters.append(ServerEvent.event_type == type)
    if source:
        filters.append(ServerEvent.event_source == source)

    total = (await db.execute(
        select(func.count()).select_from(ServerEvent).where(*filters)
    )).scalar() or 0

    result = await db.execute(
        select(ServerEvent)
        .where(*filters)
        .order_by(ServerEvent.created_at.desc(), ServerEvent.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return EventsPage(
        events=[EventResponse.model_validate(e) for e in result.scalars().all()],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            has_more=total > offset + limit,
        ),
    )


@router.post("/{server_id}/events", response_model=EventResponse, status_code=201)
async def create_server_event(
    server_id: int,
    data: EventCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(require_editor),
):
    """Record an event for a server (e.g. a manually logged backup)."""
    await _get_server(db, server_id)

    values = data.model_dump(exclude_none=True)
    event = ServerEvent(server_id=server_id, **values)
    db.add(event)
    await retry_on_lock(db.commit)
    logger.info(f"Event recorded for server {server_id}: {event.event_type}")
    return event
