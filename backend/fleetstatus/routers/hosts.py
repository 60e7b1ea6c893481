"""Host API endpoints."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, require_editor
from ..database import get_db
from ..models import Host
from ..schemas.server import HostCreate, HostResponse
from ..utils.db_utils import retry_on_lock

router = APIRouter(prefix="/api/hosts", tags=["hosts"])


@router.get("", response_model=List[HostResponse])
async def list_hosts(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    result = await db.execute(select(Host).order_by(Host.name))
    return result.scalars().all()


@router.post("", response_model=HostResponse, status_code=201)
async def create_host(
    data: HostCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(require_editor),
):
    """Create a host. Names are unique."""
    existing = await db.execute(select(Host.id).where(Host.name == data.name))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Host name already exists")

    host = Host(name=data.name, location=data.location, description=data.description)
    db.add(host)
    await retry_on_lock(db.commit)
    return host
