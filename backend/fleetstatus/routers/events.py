"""Global event feed API - recent events across all servers."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..auth import get_current_user
from ..database import get_db
from ..models import ServerEvent
from ..schemas.server import EventsFeed, FeedEvent

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("", response_model=EventsFeed)
async def list_events(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    """Events for every server, newest first, one page at a time."""
    offset = (page - 1) * page_size
    total = (await db.execute(select(func.count()).select_from(ServerEvent))).scalar() or 0

    result = await db.execute(
        select(ServerEvent)
        .options(selectinload(ServerEvent.server))
        .order_by(ServerEvent.created_at.desc(), ServerEvent.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    return EventsFeed(
        events=[FeedEvent.model_validate(e) for e in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        has_more=total > offset + page_size,
    )
